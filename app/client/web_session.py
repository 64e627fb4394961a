"""
Client HTTP de session web (httpx)

Fournit le callback de renouvellement du SessionExtensionMonitor:
POST /api/v1/auth/session/refresh avec le token courant, qui est remplace
par le token renvoye par l'API.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from app.client.session_monitor import SessionRenewalError

logger = logging.getLogger(__name__)

SESSION_PATH = "/api/v1/auth/session"
REFRESH_PATH = "/api/v1/auth/session/refresh"


def _parse_expiry(data: Any) -> datetime:
    """Lit expiresAt (ISO 8601) dans la reponse de l'API"""
    try:
        return datetime.fromisoformat(data["expiresAt"])
    except (KeyError, TypeError, ValueError):
        raise SessionRenewalError("Date d'expiration absente ou invalide")


class WebSessionClient:
    """
    Client de session web.

    Args:
        base_url: URL de l'API (ex: https://app.chantierpro.fr)
        token: Token de session courant
        timeout: Timeout HTTP en secondes
        transport: Transport httpx (tests: httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            raise SessionRenewalError("Aucune session")
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, path: str) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
        ) as client:
            try:
                response = await client.request(method, path, headers=self._headers())
                response.raise_for_status()
            except httpx.TimeoutException:
                logger.error("Timeout lors du renouvellement de session")
                raise SessionRenewalError("Timeout")
            except httpx.HTTPStatusError as e:
                raise SessionRenewalError(f"Session refusee ({e.response.status_code})")
            except httpx.HTTPError as e:
                logger.error(f"Erreur HTTP session: {e}")
                raise SessionRenewalError("Erreur de communication avec l'API")
            try:
                return response.json()
            except ValueError:
                raise SessionRenewalError("Reponse de session illisible")

    async def get_expiry(self) -> datetime:
        """Date d'expiration de la session courante"""
        data = await self._request("GET", SESSION_PATH)
        return _parse_expiry(data)

    async def renew(self) -> datetime:
        """
        Renouvelle la session.

        Returns:
            Nouvelle date d'expiration

        Raises:
            SessionRenewalError: Echec reseau ou session refusee
        """
        data = await self._request("POST", REFRESH_PATH)
        expires_at = _parse_expiry(data)
        token = data.get("token")
        if not isinstance(token, str) or not token:
            raise SessionRenewalError("Reponse de session sans token")
        self.token = token
        return expires_at
