"""
Model pour le journal d'audit de securite.

AuditLog enregistre chaque action sensible (connexion, 2FA, acces refuse,
export, ...) avec son auteur, sa provenance et son contexte.

Le journal est append-only: aucune operation de mise a jour ou de
suppression n'est exposee par l'application. La retention est geree
en dehors de ce service.
"""
import enum
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Index, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, BigIntegerPK, JSONType, utc_now

# Utilisateur des evenements pre-authentification
ANONYMOUS_USER = "anonymous"


class AuditAction(str, enum.Enum):
    """Vocabulaire ferme des actions auditees"""
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"
    ACCESS_DENIED = "ACCESS_DENIED"
    CHANTIER_CREATE = "CHANTIER_CREATE"
    CHANTIER_UPDATE = "CHANTIER_UPDATE"
    CHANTIER_DELETE = "CHANTIER_DELETE"
    USER_CREATE = "USER_CREATE"
    USER_UPDATE = "USER_UPDATE"
    USER_DELETE = "USER_DELETE"
    TWO_FA_SUCCESS = "TWO_FA_SUCCESS"
    TWO_FA_FAILED = "TWO_FA_FAILED"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"
    PERMISSION_CHANGE = "PERMISSION_CHANGE"
    DATA_EXPORT = "DATA_EXPORT"
    DATA_IMPORT = "DATA_IMPORT"
    SYSTEM_ACCESS = "SYSTEM_ACCESS"


class AuditResource(str, enum.Enum):
    """Types de ressources auditees"""
    CHANTIER = "chantier"
    USER = "user"
    DEVIS = "devis"
    DOCUMENT = "document"
    SYSTEM = "system"
    AUTH = "auth"


class AuditLog(Base):
    """
    Entree du journal d'audit.

    Attributs:
        id: Identifiant unique auto-incremente
        user_id: ID de l'utilisateur ou "anonymous" avant authentification
        action: Action (valeur de AuditAction)
        resource: Ressource visee, eventuellement composite ("chantier:42")
        ip: Adresse IP d'origine
        user_agent: User-Agent du client
        timestamp: Horodatage UTC de l'evenement
        details: Contexte libre (JSON), jamais de mot de passe ni de secret
    """

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True)

    # Texte (et non FK) pour accepter la sentinelle "anonymous"
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    resource: Mapped[str] = mapped_column(Text, nullable=False)
    ip: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False
    )
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    __table_args__ = (
        Index("ix_audit_logs_filters", "user_id", "action", "resource", "timestamp"),
        Index("ix_audit_logs_timestamp", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action='{self.action}', user_id='{self.user_id}')>"
