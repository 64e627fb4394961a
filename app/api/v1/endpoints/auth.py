"""
Endpoints d'authentification web pour ChantierPro Auth
Inscription, login (avec etape 2FA), session, logout

Ce module gere les endpoints:
- POST /auth/register: Inscription publique (role CLIENT)
- POST /auth/login: Connexion email/password (rate limit AUTH)
- POST /auth/login/2fa: Seconde etape si la 2FA est active
- GET /auth/session: Session courante
- POST /auth/session/refresh: Renouvellement de la session
- POST /auth/logout: Deconnexion (efface le cookie)
"""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Response, status
from starlette.concurrency import run_in_threadpool

from app.api.errors import to_http_exception
from app.core.config import get_settings
from app.core.dependencies import (
    ClientContext,
    enforce_login_rate_limit,
    get_audit_service,
    get_auth_service,
    get_client_context,
    get_current_session,
    get_current_user,
    get_session_token,
    get_two_factor_service,
    get_user_repository,
    get_web_session_issuer,
)
from app.core.exceptions import InvalidSession
from app.models import User
from app.repositories.user import UserRepository
from app.schemas.auth import (
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    SessionRefreshResponse,
    SessionResponse,
    TwoFactorLoginRequest,
    UserResponse,
)
from app.schemas.base import ResponseBase
from app.services.audit import AuditService
from app.services.auth import AuthService
from app.services.exceptions import ServiceException
from app.services.two_factor import TwoFactorAction, TwoFactorService
from app.services.web_session import IssuedWebSession, WebSessionClaims, WebSessionIssuer

logger = logging.getLogger(__name__)
settings = get_settings()


router = APIRouter(prefix="/auth", tags=["Authentication"])


def _set_session_cookie(response: Response, session: IssuedWebSession) -> None:
    """Pose le cookie httpOnly de session"""
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session.token,
        max_age=settings.WEB_SESSION_MAX_AGE,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


async def _open_session(
    user: User,
    response: Response,
    client: ClientContext,
    auth_service: AuthService,
    issuer: WebSessionIssuer,
) -> LoginResponse:
    """Finalise un login: derniere connexion, audit, token et cookie"""
    try:
        await run_in_threadpool(
            auth_service.record_login_success, user, ip=client.ip, user_agent=client.user_agent
        )
    except ServiceException as e:
        raise to_http_exception(e)

    session = issuer.issue(user)
    _set_session_cookie(response, session)

    return LoginResponse(
        two_factor_required=False,
        user=UserResponse.model_validate(user),
        token=session.token,
        expires_at=session.expires_at,
    )


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Inscription publique",
    description="Cree un compte CLIENT; le mot de passe n'est jamais renvoye"
)
async def register(
    payload: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    Inscription d'un nouvel utilisateur.

    Raises:
        400: Champ manquant, email invalide ou mot de passe trop faible
        409: Email deja utilise
        503: Base indisponible
    """
    try:
        user = await run_in_threadpool(
            auth_service.register,
            payload.name,
            payload.email,
            payload.password,
            payload.phone,
            payload.company,
        )
    except ServiceException as e:
        raise to_http_exception(e)

    return UserResponse.model_validate(user)


@router.post(
    "/login",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(enforce_login_rate_limit)],
    summary="Connexion utilisateur",
    description="Authentifie par email/password; demande un code si la 2FA est active"
)
async def login(
    payload: LoginRequest,
    response: Response,
    client: ClientContext = Depends(get_client_context),
    auth_service: AuthService = Depends(get_auth_service),
    issuer: WebSessionIssuer = Depends(get_web_session_issuer),
):
    """
    Authentifie un utilisateur avec email et mot de passe.

    Retourne (sans 2FA): user, token, expiresAt et pose le cookie de session.
    Retourne (avec 2FA): twoFactorRequired=true et pendingToken a presenter
    a POST /auth/login/2fa.
    """
    try:
        user = await run_in_threadpool(
            auth_service.authenticate,
            payload.email,
            payload.password,
            client.ip,
            client.user_agent,
        )
    except ServiceException as e:
        raise to_http_exception(e)

    if user.two_factor_enabled:
        logger.info(f"2FA requise pour user_id={user.id}")
        return LoginResponse(
            two_factor_required=True,
            pending_token=issuer.issue_pending_two_factor(user),
        )

    return await _open_session(user, response, client, auth_service, issuer)


@router.post(
    "/login/2fa",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(enforce_login_rate_limit)],
    summary="Completer le login 2FA",
    description="Verifie le code TOTP (ou un code de secours) apres le login initial"
)
async def login_two_factor(
    payload: TwoFactorLoginRequest,
    response: Response,
    client: ClientContext = Depends(get_client_context),
    auth_service: AuthService = Depends(get_auth_service),
    two_factor_service: TwoFactorService = Depends(get_two_factor_service),
    issuer: WebSessionIssuer = Depends(get_web_session_issuer),
    user_repo: UserRepository = Depends(get_user_repository),
):
    """
    Seconde etape du login.

    Raises:
        401: Token intermediaire invalide/expire ou code invalide
    """
    try:
        user_id = issuer.decode_pending_two_factor(payload.pending_token)
        user = await run_in_threadpool(user_repo.get, user_id)
        if user is None or not user.is_active:
            raise InvalidSession()

        await run_in_threadpool(
            two_factor_service.verify,
            user,
            payload.code,
            TwoFactorAction.VERIFY_LOGIN.value,
            client.ip,
            client.user_agent,
        )
    except ServiceException as e:
        raise to_http_exception(e)

    return await _open_session(user, response, client, auth_service, issuer)


@router.get(
    "/session",
    response_model=SessionResponse,
    response_model_exclude_none=True,
    summary="Session courante",
)
def get_session(
    claims: WebSessionClaims = Depends(get_current_session),
    current_user: User = Depends(get_current_user),
):
    """Retourne l'utilisateur et l'expiration de la session courante"""
    return SessionResponse(
        user=UserResponse.model_validate(current_user),
        expires_at=claims.expires_at,
    )


@router.post(
    "/session/refresh",
    response_model=SessionRefreshResponse,
    summary="Renouveler la session",
    description="Re-emet le token si 24h se sont ecoulees depuis son emission"
)
def refresh_session(
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    issuer: WebSessionIssuer = Depends(get_web_session_issuer),
):
    """
    Renouvellement glissant de la session web.

    Raises:
        401: Token invalide/expire ou utilisateur desactive
    """
    try:
        session = issuer.refresh(token)
    except ServiceException as e:
        raise to_http_exception(e)

    renewed = session.token != token
    if renewed:
        _set_session_cookie(response, session)

    return SessionRefreshResponse(
        token=session.token,
        expires_at=session.expires_at,
        renewed=renewed,
    )


@router.post(
    "/logout",
    response_model=ResponseBase,
    summary="Deconnexion",
    description="Efface le cookie de session (session stateless)"
)
def logout(
    response: Response,
    background_tasks: BackgroundTasks,
    claims: WebSessionClaims = Depends(get_current_session),
    client: ClientContext = Depends(get_client_context),
    audit_service: AuditService = Depends(get_audit_service),
):
    """Deconnexion de la session web courante"""
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    background_tasks.add_task(
        audit_service.log_logout, claims.user_id, client.ip, client.user_agent
    )
    logger.info(f"Logout web user_id={claims.user_id}")
    return ResponseBase(message="Deconnexion reussie")
