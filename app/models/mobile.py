"""
Models pour les clients mobiles.

Ce module contient les modeles SQLAlchemy pour:
- MobileSession: Session d'un appareil mobile, unique par (user_id, device_id)
- PushSubscription: Abonnement Web Push d'un appareil, unique par (user_id, endpoint)

Les deux modeles sont desactives logiquement (is_active=False) et jamais
supprimes, pour conserver l'historique.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, BigIntegerPK, SoftDeleteMixin, TimestampMixin


class MobileSession(Base, TimestampMixin, SoftDeleteMixin):
    """
    Session d'un appareil mobile.

    Attributs:
        id: Identifiant unique
        user_id: FK vers l'utilisateur
        device_id: Identifiant fourni par l'appareil
        platform: Plateforme (ios, android, ...)
        app_version: Version de l'application mobile
        user_agent: User-Agent de l'appareil
        last_activity: Derniere requete authentifiee
        is_active: False apres logout
    """

    __tablename__ = "mobile_sessions"

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigIntegerPK,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    device_id: Mapped[str] = mapped_column(Text, nullable=False)
    platform: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    app_version: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_activity: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "device_id", name="uq_mobile_sessions_user_device"),
    )

    def __repr__(self) -> str:
        return f"<MobileSession(user_id={self.user_id}, device_id='{self.device_id}', active={self.is_active})>"


class PushSubscription(Base, TimestampMixin, SoftDeleteMixin):
    """
    Abonnement Web Push d'un appareil.

    Attributs:
        id: Identifiant unique
        user_id: FK vers l'utilisateur
        endpoint: URL du service push
        p256dh: Cle publique ECDH du client
        auth: Secret d'authentification du client
        device_id: Appareil associe (optionnel)
        is_active: False apres desabonnement
    """

    __tablename__ = "push_subscriptions"

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigIntegerPK,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    endpoint: Mapped[str] = mapped_column(Text, nullable=False)
    p256dh: Mapped[str] = mapped_column(Text, nullable=False)
    auth: Mapped[str] = mapped_column(Text, nullable=False)
    device_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "endpoint", name="uq_push_subscriptions_user_endpoint"),
    )

    def __repr__(self) -> str:
        return f"<PushSubscription(user_id={self.user_id}, active={self.is_active})>"
