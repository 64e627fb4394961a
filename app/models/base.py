"""
Classes de base et mixins pour les modeles SQLAlchemy
Timestamps automatiques et desactivation logique
Compatible SQLAlchemy 2.0 avec Mapped types
"""
from datetime import datetime, timezone

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Integer, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# BIGINT en PostgreSQL, INTEGER en SQLite (autoincrement de la rowid)
BigIntegerPK = BigInteger().with_variant(Integer, "sqlite")

# JSONB en PostgreSQL, JSON ailleurs
JSONType = JSON().with_variant(JSONB, "postgresql")


class Base(DeclarativeBase):
    """Classe de base pour tous les modeles SQLAlchemy"""
    pass


class TimestampMixin:
    """
    Mixin pour ajouter created_at et updated_at automatiques.
    updated_at est mis a jour automatiquement a chaque modification.
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


class SoftDeleteMixin:
    """
    Mixin pour la desactivation logique.
    Les enregistrements ne sont pas supprimes mais marques inactifs.
    """
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False
    )

    def soft_delete(self) -> None:
        """Marque l'enregistrement comme inactif"""
        self.is_active = False

    def restore(self) -> None:
        """Reactive un enregistrement desactive"""
        self.is_active = True


def utc_now() -> datetime:
    """Retourne l'heure actuelle en UTC (timezone-aware)"""
    return datetime.now(timezone.utc)
