"""
Modeles SQLAlchemy pour ChantierPro Auth
Export tous les modeles pour faciliter les imports

Modules disponibles:
- base: Classes de base et mixins (Base, TimestampMixin, SoftDeleteMixin)
- user: Model User (identifiants, role, etat 2FA)
- audit: Model AuditLog et vocabulaire AuditAction / AuditResource
- mobile: Models MobileSession et PushSubscription
"""
from app.models.base import Base, TimestampMixin, SoftDeleteMixin, utc_now
from app.models.user import User, UserRole
from app.models.audit import ANONYMOUS_USER, AuditAction, AuditLog, AuditResource
from app.models.mobile import MobileSession, PushSubscription

__all__ = [
    "Base",
    "TimestampMixin",
    "SoftDeleteMixin",
    "utc_now",
    "User",
    "UserRole",
    "AuditLog",
    "AuditAction",
    "AuditResource",
    "ANONYMOUS_USER",
    "MobileSession",
    "PushSubscription",
]
