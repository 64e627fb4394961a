"""
Model User pour l'authentification
Identifiants, role et etat 2FA (secret TOTP, codes de secours)
"""
import enum
import json
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, Enum, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, BigIntegerPK, TimestampMixin


class UserRole(str, enum.Enum):
    """Roles de l'application (enum ferme, pas de moteur de permissions)"""
    ADMIN = "ADMIN"
    COMMERCIAL = "COMMERCIAL"
    CLIENT = "CLIENT"
    OUVRIER = "OUVRIER"


class User(Base, TimestampMixin):
    """
    Represente un utilisateur du systeme.

    Attributs:
        id: Identifiant unique
        email: Email unique, normalise en minuscules
        password_hash: Hash bcrypt du mot de passe (NULL si pas de mot de passe)
        name: Nom affiche (optionnel)
        phone: Telephone (optionnel)
        company: Societe (optionnel)
        role: Role applicatif
        is_active: Compte actif ou desactive
        two_factor_secret: Secret TOTP base32 (present des le setup)
        two_factor_enabled: 2FA active (uniquement apres une premiere verification)
        two_factor_backup_codes: Liste JSON des codes de secours restants

    Notes:
        - two_factor_enabled=True implique two_factor_secret non NULL
        - Un code de secours consomme est retire definitivement de la liste
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True)

    # Authentification
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True, index=True)
    password_hash: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Profil
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    company: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role"),
        default=UserRole.CLIENT,
        nullable=False
    )

    # Etat du compte
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    # 2FA
    two_factor_secret: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    two_factor_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    two_factor_backup_codes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role={self.role})>"

    @property
    def display_name(self) -> str:
        """Retourne le nom ou la partie locale de l'email si non renseigne"""
        if self.name and self.name.strip():
            return self.name
        return self.email.split("@")[0]

    @property
    def has_password(self) -> bool:
        """Verifie si l'utilisateur a un mot de passe"""
        return self.password_hash is not None

    @property
    def backup_codes(self) -> List[str]:
        """Codes de secours restants (liste vide si aucun)"""
        if not self.two_factor_backup_codes:
            return []
        return json.loads(self.two_factor_backup_codes)

    def update_last_login(self) -> None:
        """Met a jour la date de derniere connexion"""
        self.last_login_at = datetime.now(timezone.utc)
