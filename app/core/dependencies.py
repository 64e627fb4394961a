"""
Dependencies FastAPI pour ChantierPro Auth
Injection de dependances pour DB, services, sessions et rate limiting
"""
import logging
from dataclasses import dataclass
from typing import Callable, Generator, Optional

from fastapi import BackgroundTasks, Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.database import SessionLocal
from app.core.exceptions import InvalidSession, PermissionDenied, RateLimitExceeded
from app.core.logging import set_request_context
from app.core.redis import get_redis_client
from app.models import User, UserRole
from app.models.audit import AuditResource
from app.repositories.mobile import MobileSessionRepository, PushSubscriptionRepository
from app.repositories.user import UserRepository
from app.services.audit import AuditService
from app.services.auth import AuthService
from app.services.exceptions import InvalidSessionError
from app.services.mobile_session import MobileSessionService, MobileTokenClaims
from app.services.rate_limit import (
    RateLimiter,
    RateLimitResult,
    RateLimitType,
    RedisRateLimitBackend,
    build_identifier,
    get_client_ip,
    get_rate_limit_rules,
)
from app.services.two_factor import TwoFactorService
from app.services.web_session import WebSessionClaims, WebSessionIssuer

logger = logging.getLogger(__name__)


# ============================================
# Security Scheme
# ============================================

# Bearer token auth (le cookie de session est lu en fallback)
security = HTTPBearer(auto_error=False)


# ============================================
# Database Session
# ============================================

def get_session_factory() -> Callable[[], Session]:
    """
    Fabrique de sessions pour les ecritures hors transaction de requete
    (audit, last_activity mobile).
    """
    return SessionLocal


def get_db(
    session_factory: Callable[[], Session] = Depends(get_session_factory)
) -> Generator[Session, None, None]:
    """
    Fournit une session DB avec auto-commit/rollback.
    Utilise comme dependance FastAPI.

    Yields:
        Session SQLAlchemy
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ============================================
# Client Context
# ============================================

@dataclass
class ClientContext:
    """Provenance de la requete (audit, rate limiting)"""
    ip: str
    user_agent: Optional[str]

    @property
    def identifier(self) -> str:
        return build_identifier(self.ip, self.user_agent)


def get_client_context(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> ClientContext:
    """Extrait IP et User-Agent du client"""
    return ClientContext(
        ip=get_client_ip(request.headers, settings.TRUSTED_PROXY_HEADER),
        user_agent=request.headers.get("user-agent"),
    )


# ============================================
# Rate Limiting
# ============================================

_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """
    Retourne le rate limiter global.

    Redis est utilise s'il est configure et joignable au premier appel,
    sinon le stockage memoire (mono-instance).
    """
    global _rate_limiter

    if _rate_limiter is None:
        settings = get_settings()
        redis_client = get_redis_client()
        backend = RedisRateLimitBackend(redis_client) if redis_client is not None else None
        _rate_limiter = RateLimiter(
            rules=get_rate_limit_rules(settings.is_production),
            backend=backend,
        )
        logger.info(f"Rate limiter initialise (backend={_rate_limiter.backend.name})")

    return _rate_limiter


def reset_rate_limiter() -> None:
    """Oublie le rate limiter global (tests, rechargement de config)"""
    global _rate_limiter
    _rate_limiter = None


# ============================================
# Repositories
# ============================================

def get_user_repository(
    db: Session = Depends(get_db)
) -> UserRepository:
    """Fournit le repository User"""
    return UserRepository(db)


def get_mobile_session_repository(
    db: Session = Depends(get_db)
) -> MobileSessionRepository:
    """Fournit le repository MobileSession"""
    return MobileSessionRepository(db)


def get_push_subscription_repository(
    db: Session = Depends(get_db)
) -> PushSubscriptionRepository:
    """Fournit le repository PushSubscription"""
    return PushSubscriptionRepository(db)


# ============================================
# Services
# ============================================

def get_audit_service(
    session_factory: Callable[[], Session] = Depends(get_session_factory)
) -> AuditService:
    """Fournit le service Audit (sessions DB dediees)"""
    return AuditService(session_factory=session_factory)


def get_auth_service(
    background_tasks: BackgroundTasks,
    user_repo: UserRepository = Depends(get_user_repository),
    audit_service: AuditService = Depends(get_audit_service),
) -> AuthService:
    """Fournit le verificateur d'identifiants; les audits de succes partent en tache de fond"""
    return AuthService(
        user_repository=user_repo,
        audit_service=audit_service,
        defer=background_tasks.add_task,
    )


def get_two_factor_service(
    background_tasks: BackgroundTasks,
    user_repo: UserRepository = Depends(get_user_repository),
    audit_service: AuditService = Depends(get_audit_service),
) -> TwoFactorService:
    """Fournit le moteur 2FA"""
    return TwoFactorService(
        user_repository=user_repo,
        audit_service=audit_service,
        defer=background_tasks.add_task,
    )


def get_web_session_issuer(
    user_repo: UserRepository = Depends(get_user_repository),
) -> WebSessionIssuer:
    """Fournit l'emetteur de sessions web"""
    return WebSessionIssuer(user_repository=user_repo)


def get_mobile_session_service(
    background_tasks: BackgroundTasks,
    auth_service: AuthService = Depends(get_auth_service),
    two_factor_service: TwoFactorService = Depends(get_two_factor_service),
    user_repo: UserRepository = Depends(get_user_repository),
    mobile_session_repo: MobileSessionRepository = Depends(get_mobile_session_repository),
    push_repo: PushSubscriptionRepository = Depends(get_push_subscription_repository),
    audit_service: AuditService = Depends(get_audit_service),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> MobileSessionService:
    """Fournit l'emetteur de sessions mobiles"""
    return MobileSessionService(
        auth_service=auth_service,
        user_repository=user_repo,
        mobile_session_repository=mobile_session_repo,
        push_subscription_repository=push_repo,
        audit_service=audit_service,
        session_factory=session_factory,
        two_factor_service=two_factor_service,
        defer=background_tasks.add_task,
    )


# ============================================
# Web Authentication
# ============================================

def get_session_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> Optional[str]:
    """Token de session: header Bearer, sinon cookie de session"""
    if credentials is not None:
        return credentials.credentials
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


def get_current_session(
    token: Optional[str] = Depends(get_session_token),
    issuer: WebSessionIssuer = Depends(get_web_session_issuer),
) -> WebSessionClaims:
    """
    Decode la session web courante.

    Raises:
        InvalidSession 401: Token absent, invalide ou expire
    """
    try:
        claims = issuer.decode(token)
    except InvalidSessionError as e:
        logger.debug(f"Session refusee: {e.reason}")
        raise InvalidSession(headers={"WWW-Authenticate": "Bearer"})

    set_request_context(user_id=str(claims.user_id))
    return claims


def get_current_user(
    claims: WebSessionClaims = Depends(get_current_session),
    user_repo: UserRepository = Depends(get_user_repository),
) -> User:
    """
    Recupere l'utilisateur de la session web.

    Raises:
        InvalidSession 401: Utilisateur inconnu ou desactive (message generique)
    """
    user = user_repo.get(claims.user_id)

    if user is None or not user.is_active:
        logger.debug(f"Session pour un utilisateur absent ou inactif: user_id={claims.user_id}")
        raise InvalidSession(headers={"WWW-Authenticate": "Bearer"})

    return user


def require_admin(
    request: Request,
    current_user: User = Depends(get_current_user),
    audit_service: AuditService = Depends(get_audit_service),
    client: ClientContext = Depends(get_client_context),
) -> User:
    """
    Exige le role ADMIN; un refus est audite (ACCESS_DENIED).

    Raises:
        PermissionDenied 403: Role insuffisant
    """
    if current_user.role != UserRole.ADMIN:
        logger.warning(f"Acces admin refuse pour user_id={current_user.id}")
        audit_service.log_access_denied(
            current_user.id,
            AuditResource.SYSTEM.value,
            client.ip,
            client.user_agent,
            {"path": request.url.path, "required_role": UserRole.ADMIN.value},
        )
        raise PermissionDenied("Acces reserve aux administrateurs")
    return current_user


# ============================================
# Mobile Authentication
# ============================================

def get_mobile_claims(
    background_tasks: BackgroundTasks,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    service: MobileSessionService = Depends(get_mobile_session_service),
) -> MobileTokenClaims:
    """
    Valide l'access token mobile et planifie la mise a jour de last_activity.

    Raises:
        InvalidSession 401: Token absent ou invalide
    """
    claims = service.validate_request(credentials.credentials if credentials else None)
    if claims is None:
        raise InvalidSession("Token non valide", headers={"WWW-Authenticate": "Bearer"})

    set_request_context(user_id=str(claims.user_id))
    background_tasks.add_task(service.touch, claims.user_id, claims.device_id)
    return claims


# ============================================
# Login Rate Limiting
# ============================================

def enforce_login_rate_limit(
    response: Response,
    client: ClientContext = Depends(get_client_context),
    limiter: RateLimiter = Depends(get_rate_limiter),
    audit_service: AuditService = Depends(get_audit_service),
    settings: Settings = Depends(get_settings),
) -> Optional[RateLimitResult]:
    """
    Applique la limite AUTH aux endpoints de login.

    Un depassement est audite (LOGIN_FAILED, rate_limit_exceeded) et
    renvoie 429 avec Retry-After.

    Raises:
        RateLimitExceeded 429: Limite atteinte pour cet identifiant
    """
    if not settings.RATE_LIMIT_ENABLED:
        return None

    result = limiter.check(client.identifier, RateLimitType.AUTH)

    if not result.allowed:
        audit_service.log_login_failed(
            None, client.ip, client.user_agent, "rate_limit_exceeded"
        )
        raise RateLimitExceeded(retry_after=result.retry_after, headers=result.headers())

    for name, value in result.headers().items():
        response.headers[name] = value
    return result
