"""
Endpoints 2FA (TOTP) pour ChantierPro Auth.

Ce module gere les endpoints:
- POST /auth/2fa/setup: Genere un secret et son QR code
- GET /auth/2fa/status: Etat 2FA de l'utilisateur courant
- POST /auth/2fa/verify: Verifie un code (enable, disable, verify-login)
"""
from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from app.api.errors import to_http_exception
from app.core.dependencies import (
    ClientContext,
    get_client_context,
    get_current_user,
    get_two_factor_service,
)
from app.models import User
from app.schemas.two_factor import (
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
    TwoFactorVerifyRequest,
    TwoFactorVerifyResponse,
)
from app.services.exceptions import ServiceException
from app.services.two_factor import TwoFactorService


router = APIRouter(prefix="/auth/2fa", tags=["2FA"])


@router.post(
    "/setup",
    response_model=TwoFactorSetupResponse,
    summary="Configurer la 2FA",
    description="Genere un secret TOTP en attente de verification et son QR code"
)
async def setup_two_factor(
    current_user: User = Depends(get_current_user),
    two_factor_service: TwoFactorService = Depends(get_two_factor_service),
):
    """
    Demarre la configuration 2FA.

    Le secret n'est pas actif tant qu'un code n'a pas ete verifie avec
    action=enable.
    """
    data = await run_in_threadpool(two_factor_service.setup, current_user)
    return TwoFactorSetupResponse(**data)


@router.get(
    "/status",
    response_model=TwoFactorStatusResponse,
    summary="Statut 2FA",
)
def get_two_factor_status(
    current_user: User = Depends(get_current_user),
    two_factor_service: TwoFactorService = Depends(get_two_factor_service),
):
    """Retourne enabled, configured et l'etat de la machine 2FA"""
    return TwoFactorStatusResponse(**two_factor_service.status(current_user))


@router.post(
    "/verify",
    response_model=TwoFactorVerifyResponse,
    response_model_exclude_none=True,
    summary="Verifier un code 2FA",
    description="Verifie un code TOTP ou de secours et applique l'action demandee"
)
async def verify_two_factor(
    payload: TwoFactorVerifyRequest,
    current_user: User = Depends(get_current_user),
    client: ClientContext = Depends(get_client_context),
    two_factor_service: TwoFactorService = Depends(get_two_factor_service),
):
    """
    Verifie un code pour une action.

    - enable: active la 2FA et retourne les codes de secours (une seule fois)
    - disable: desactive la 2FA et efface secret et codes
    - verify-login: verifie seulement le code

    Raises:
        400: 2FA non configuree, non active ou action inconnue
        401: Code invalide
    """
    try:
        result = await run_in_threadpool(
            two_factor_service.verify,
            current_user,
            payload.code,
            payload.action,
            client.ip,
            client.user_agent,
        )
    except ServiceException as e:
        raise to_http_exception(e)

    return TwoFactorVerifyResponse(**result)
