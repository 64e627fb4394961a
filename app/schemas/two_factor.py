"""
Schemas Pydantic pour la 2FA
"""
from typing import List, Optional

from pydantic import Field

from app.schemas.base import BaseSchema
from app.services.two_factor import TwoFactorState


class TwoFactorSetupResponse(BaseSchema):
    """Secret TOTP et QR code (affiches une seule fois)"""
    secret: str
    qr_code: str = Field(..., description="QR code PNG en data URL")
    manual_entry_key: str


class TwoFactorStatusResponse(BaseSchema):
    """Statut 2FA de l'utilisateur courant"""
    enabled: bool
    configured: bool
    state: TwoFactorState


class TwoFactorVerifyRequest(BaseSchema):
    """Verification d'un code pour une action"""
    code: str = Field(..., min_length=1, max_length=20, description="Code TOTP ou code de secours")
    action: str = Field(..., max_length=30, description="enable, disable ou verify-login")


class TwoFactorVerifyResponse(BaseSchema):
    """Resultat d'une verification"""
    success: bool = True
    message: Optional[str] = None
    backup_codes: Optional[List[str]] = Field(
        None,
        description="Codes de secours, retournes une seule fois a l'activation"
    )
