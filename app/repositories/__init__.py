"""
Repositories pour ChantierPro Auth
Pattern Repository pour isolation acces DB

Modules disponibles:
- base: Repository generique et pagination par offset
- user: Utilisateurs et etat 2FA
- audit_log: Journal d'audit (append-only)
- mobile: Sessions mobiles et abonnements push
"""
from app.repositories.base import (
    BaseRepository,
    OffsetPage,
    PaginationError,
    RepositoryException,
)
from app.repositories.user import UserRepository
from app.repositories.audit_log import AuditLogRepository
from app.repositories.mobile import MobileSessionRepository, PushSubscriptionRepository

__all__ = [
    "BaseRepository",
    "OffsetPage",
    "PaginationError",
    "RepositoryException",
    "UserRepository",
    "AuditLogRepository",
    "MobileSessionRepository",
    "PushSubscriptionRepository",
]
