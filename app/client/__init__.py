"""
Clients de l'API ChantierPro Auth

- session_monitor: Extension automatique de session (activite, expiration)
- web_session: Renouvellement de session via httpx
"""
from app.client.session_monitor import SessionExtensionMonitor, SessionRenewalError
from app.client.web_session import WebSessionClient

__all__ = ["SessionExtensionMonitor", "SessionRenewalError", "WebSessionClient"]
