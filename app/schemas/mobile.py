"""
Schemas Pydantic pour les clients mobiles
Login, refresh, profil et abonnements push
"""
from typing import List, Optional

from pydantic import Field

from app.models.user import UserRole
from app.schemas.base import BaseSchema


class DeviceInfoSchema(BaseSchema):
    """Description de l'appareil"""
    platform: Optional[str] = Field(None, max_length=50)
    version: Optional[str] = Field(None, max_length=50)
    user_agent: Optional[str] = Field(None, max_length=500)


class MobileLoginRequest(BaseSchema):
    """Requete de login mobile"""
    email: Optional[str] = Field(None, max_length=320)
    password: Optional[str] = Field(None, max_length=128)
    device_id: str = Field(..., min_length=1, max_length=200)
    device_info: Optional[DeviceInfoSchema] = None
    two_factor_code: Optional[str] = Field(None, max_length=20, description="Requis si la 2FA est active")


class MobileUserResponse(BaseSchema):
    """Utilisateur renvoye au client mobile"""
    id: int
    email: str
    name: Optional[str] = None
    role: UserRole
    company: Optional[str] = None


class MobileTokensResponse(BaseSchema):
    """Paire de tokens mobile"""
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"


class MobileLoginResponse(BaseSchema):
    """Response du login mobile"""
    success: bool = True
    user: MobileUserResponse
    tokens: MobileTokensResponse
    message: str = "Connexion mobile reussie"


class MobileRefreshRequest(BaseSchema):
    """Requete de refresh"""
    refresh_token: str = Field(..., min_length=1)


class MobileRefreshResponse(BaseSchema):
    """Nouvelle paire de tokens"""
    success: bool = True
    tokens: MobileTokensResponse


class MobileMeResponse(BaseSchema):
    """Profil courant et permissions du token"""
    user: MobileUserResponse
    device_id: str
    permissions: List[str]


class PushKeys(BaseSchema):
    """Cles Web Push du client"""
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class PushSubscriptionSchema(BaseSchema):
    """Abonnement Web Push (format PushSubscription du navigateur)"""
    endpoint: str = Field(..., min_length=1, max_length=2000)
    keys: PushKeys
    expiration_time: Optional[int] = None


class PushSubscribeRequest(BaseSchema):
    """Requete d'abonnement push"""
    user_id: int
    subscription: PushSubscriptionSchema
