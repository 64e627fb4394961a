"""
Schemas Pydantic pour l'authentification web
Inscription, login (avec etape 2FA), session
"""
from datetime import datetime
from typing import Optional

from pydantic import Field

from app.core.security import PASSWORD_MAX_LENGTH
from app.models.user import UserRole
from app.schemas.base import BaseSchema


class RegisterRequest(BaseSchema):
    """
    Requete d'inscription.

    Les regles metier (format email, force du mot de passe) sont verifiees
    par le service; le schema ne borne que les tailles.
    """
    name: Optional[str] = Field(None, max_length=200, description="Nom affiche")
    email: Optional[str] = Field(None, max_length=320, description="Adresse email")
    password: Optional[str] = Field(None, max_length=PASSWORD_MAX_LENGTH, description="Mot de passe")
    phone: Optional[str] = Field(None, max_length=50)
    company: Optional[str] = Field(None, max_length=200)


class LoginRequest(BaseSchema):
    """Requete de connexion"""
    email: Optional[str] = Field(None, max_length=320, description="Adresse email")
    password: Optional[str] = Field(None, max_length=128, description="Mot de passe")


class TwoFactorLoginRequest(BaseSchema):
    """Seconde etape du login quand la 2FA est active"""
    pending_token: str = Field(..., min_length=1, description="Token intermediaire du login")
    code: str = Field(..., min_length=1, max_length=20, description="Code TOTP ou code de secours")


class UserResponse(BaseSchema):
    """Utilisateur expose par l'API (jamais de hash ni de secret)"""
    id: int
    email: str
    name: Optional[str] = None
    role: UserRole
    company: Optional[str] = None
    phone: Optional[str] = None
    two_factor_enabled: bool = False
    created_at: Optional[datetime] = None


class SessionResponse(BaseSchema):
    """Session web emise ou courante"""
    user: UserResponse
    token: Optional[str] = Field(None, description="Token de session (Bearer ou cookie)")
    expires_at: datetime


class LoginResponse(BaseSchema):
    """
    Response du login.

    Deux formes:
    - 2FA inactive: user, token, expiresAt
    - 2FA active: twoFactorRequired=true et pendingToken (5 minutes)
    """
    two_factor_required: bool = False
    pending_token: Optional[str] = None
    user: Optional[UserResponse] = None
    token: Optional[str] = None
    expires_at: Optional[datetime] = None


class SessionRefreshResponse(BaseSchema):
    """Response du renouvellement de session"""
    token: str
    expires_at: datetime
    renewed: bool
