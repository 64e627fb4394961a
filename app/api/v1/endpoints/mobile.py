"""
Endpoints pour l'application mobile ChantierPro.

Ce module gere les endpoints:
- POST /mobile/auth/login: Login appareil (rate limit AUTH)
- POST /mobile/auth/refresh: Nouvelle paire de tokens
- POST /mobile/auth/logout: Desactive la session de l'appareil
- GET /mobile/auth/me: Profil et permissions du token
- POST /mobile/push/subscribe: Abonnement Web Push
- DELETE /mobile/push/subscribe: Desabonnement (soft)
"""
from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool

from app.api.errors import to_http_exception
from app.core.dependencies import (
    ClientContext,
    enforce_login_rate_limit,
    get_client_context,
    get_mobile_claims,
    get_mobile_session_service,
)
from app.core.exceptions import NotFound
from app.schemas.base import ResponseBase
from app.schemas.mobile import (
    MobileLoginRequest,
    MobileLoginResponse,
    MobileMeResponse,
    MobileRefreshRequest,
    MobileRefreshResponse,
    MobileTokensResponse,
    MobileUserResponse,
    PushSubscribeRequest,
)
from app.services.exceptions import ServiceException
from app.services.mobile_session import (
    DeviceInfo,
    MobileSessionService,
    MobileTokenClaims,
    MobileTokenPair,
)


router = APIRouter(prefix="/mobile", tags=["Mobile"])


def _tokens_response(tokens: MobileTokenPair) -> MobileTokensResponse:
    return MobileTokensResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
        token_type=tokens.token_type,
    )


# ============================================
# Authentification
# ============================================

@router.post(
    "/auth/login",
    response_model=MobileLoginResponse,
    dependencies=[Depends(enforce_login_rate_limit)],
    summary="Login mobile",
    description="Authentifie un appareil et retourne access + refresh token"
)
async def mobile_login(
    payload: MobileLoginRequest,
    client: ClientContext = Depends(get_client_context),
    service: MobileSessionService = Depends(get_mobile_session_service),
):
    """
    Login d'un appareil mobile.

    Si la 2FA est active, twoFactorCode est requis (401 TWO_FACTOR_REQUIRED
    sinon).

    Raises:
        400: Champs manquants
        401: Identifiants ou code 2FA invalides
        429: Trop de tentatives
    """
    info = payload.device_info
    device_info = DeviceInfo(
        platform=info.platform if info else None,
        version=info.version if info else None,
        user_agent=(info.user_agent if info and info.user_agent else client.user_agent),
    )

    try:
        result = await run_in_threadpool(
            service.login,
            payload.email,
            payload.password,
            payload.device_id,
            device_info,
            payload.two_factor_code,
            client.ip,
        )
    except ServiceException as e:
        raise to_http_exception(e)

    return MobileLoginResponse(
        user=MobileUserResponse.model_validate(result.user),
        tokens=_tokens_response(result.tokens),
    )


@router.post(
    "/auth/refresh",
    response_model=MobileRefreshResponse,
    summary="Refresh mobile",
)
def mobile_refresh(
    payload: MobileRefreshRequest,
    service: MobileSessionService = Depends(get_mobile_session_service),
):
    """
    Emet une nouvelle paire a partir du refresh token.

    Raises:
        401: Refresh token invalide ou session d'appareil desactivee
    """
    try:
        tokens = service.refresh(payload.refresh_token)
    except ServiceException as e:
        raise to_http_exception(e)

    return MobileRefreshResponse(tokens=_tokens_response(tokens))


@router.post(
    "/auth/logout",
    response_model=ResponseBase,
    summary="Logout mobile",
)
def mobile_logout(
    claims: MobileTokenClaims = Depends(get_mobile_claims),
    client: ClientContext = Depends(get_client_context),
    service: MobileSessionService = Depends(get_mobile_session_service),
):
    """Desactive la session de l'appareil (l'enregistrement est conserve)"""
    service.logout(claims, ip=client.ip, user_agent=client.user_agent)
    return ResponseBase(message="Deconnexion reussie")


@router.get(
    "/auth/me",
    response_model=MobileMeResponse,
    summary="Profil mobile",
)
def mobile_me(
    claims: MobileTokenClaims = Depends(get_mobile_claims),
    service: MobileSessionService = Depends(get_mobile_session_service),
):
    """Retourne l'utilisateur, l'appareil et les permissions du token"""
    try:
        user = service.get_user(claims)
    except ServiceException as e:
        raise to_http_exception(e)

    return MobileMeResponse(
        user=MobileUserResponse.model_validate(user),
        device_id=claims.device_id,
        permissions=claims.permissions,
    )


# ============================================
# Push
# ============================================

@router.post(
    "/push/subscribe",
    response_model=ResponseBase,
    summary="Abonnement push",
)
def push_subscribe(
    payload: PushSubscribeRequest,
    claims: MobileTokenClaims = Depends(get_mobile_claims),
    client: ClientContext = Depends(get_client_context),
    service: MobileSessionService = Depends(get_mobile_session_service),
):
    """
    Enregistre l'abonnement push de l'appareil.

    Raises:
        403: userId different de l'utilisateur du token
    """
    try:
        service.subscribe(
            claims,
            user_id=payload.user_id,
            endpoint=payload.subscription.endpoint,
            p256dh=payload.subscription.keys.p256dh,
            auth=payload.subscription.keys.auth,
            ip=client.ip,
            user_agent=client.user_agent,
        )
    except ServiceException as e:
        raise to_http_exception(e)

    return ResponseBase(message="Abonnement enregistre")


@router.delete(
    "/push/subscribe",
    response_model=ResponseBase,
    summary="Desabonnement push",
)
def push_unsubscribe(
    endpoint: str = Query(..., min_length=1, max_length=2000),
    claims: MobileTokenClaims = Depends(get_mobile_claims),
    service: MobileSessionService = Depends(get_mobile_session_service),
):
    """
    Desactive l'abonnement (soft delete).

    Raises:
        404: Aucun abonnement actif pour cet endpoint
    """
    if not service.unsubscribe(claims, endpoint):
        raise NotFound("Abonnement introuvable")
    return ResponseBase(message="Abonnement supprime")
