"""
Service Sessions Mobiles pour ChantierPro Auth.

Ce module fournit l'emetteur de sessions des applications mobiles:
- Login avec paire access token (30j) / refresh token (90j)
- Validation stateless des requetes (claims + permissions)
- Refresh conditionne a l'utilisateur et a la session d'appareil actifs
- Logout par appareil (desactivation logique)
- Abonnements Web Push

Les tokens sont des JWT HS256 signes avec MOBILE_JWT_SECRET, distingues
par leur issuer (chantierpro-mobile / chantierpro-mobile-refresh).
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.security import (
    InvalidTokenError,
    TokenExpiredError,
    create_signed_token,
    decode_signed_token,
)
from app.models import PushSubscription, User, UserRole
from app.models.audit import AuditResource
from app.repositories.mobile import MobileSessionRepository, PushSubscriptionRepository
from app.repositories.user import UserRepository
from app.services.audit import AuditService, run_now
from app.services.auth import AuthService
from app.services.exceptions import (
    InvalidSessionError,
    StorageUnavailableError,
    SubscriptionOwnershipError,
    TwoFactorRequiredError,
)
from app.services.two_factor import TwoFactorAction, TwoFactorService

logger = logging.getLogger(__name__)
settings = get_settings()

ACCESS_TOKEN_ISSUER = "chantierpro-mobile"
REFRESH_TOKEN_ISSUER = "chantierpro-mobile-refresh"
REFRESH_TOKEN_TYPE = "refresh"
TOKEN_TYPE = "Bearer"

WILDCARD_PERMISSION = "*"

ROLE_PERMISSIONS: Dict[UserRole, List[str]] = {
    UserRole.ADMIN: [WILDCARD_PERMISSION],
    UserRole.COMMERCIAL: [
        "chantiers:read", "chantiers:write",
        "devis:read", "devis:write",
        "factures:read", "factures:write",
        "clients:read", "clients:write",
        "messages:read", "messages:write",
        "documents:read", "documents:write",
        "planning:read", "planning:write",
    ],
    UserRole.CLIENT: [
        "chantiers:read",
        "devis:read",
        "factures:read",
        "planning:read",
        "messages:read",
        "messages:write",
    ],
    UserRole.OUVRIER: [
        "chantiers:read",
        "equipes:read",
        "materiaux:read",
        "planning:read",
        "messages:read",
        "messages:write",
        "documents:read",
    ],
}

DEFAULT_PERMISSIONS = ["chantiers:read"]


def get_role_permissions(role: Any) -> List[str]:
    """Permissions associees a un role (defaut: lecture des chantiers)"""
    try:
        role = UserRole(role)
    except ValueError:
        return list(DEFAULT_PERMISSIONS)
    return list(ROLE_PERMISSIONS.get(role, DEFAULT_PERMISSIONS))


@dataclass
class DeviceInfo:
    """Description de l'appareil fournie au login"""
    platform: Optional[str] = None
    version: Optional[str] = None
    user_agent: Optional[str] = None

    def to_claims(self) -> Dict[str, Optional[str]]:
        return {
            "platform": self.platform,
            "version": self.version,
            "userAgent": self.user_agent,
        }


@dataclass
class MobileTokenClaims:
    """Claims d'un access token mobile"""
    user_id: int
    email: str
    role: str
    device_id: str
    device_info: Dict[str, Any] = field(default_factory=dict)
    permissions: List[str] = field(default_factory=list)

    def has_permission(self, permission: str) -> bool:
        return has_permission(self, permission)


@dataclass
class MobileTokenPair:
    """Paire de tokens emise au login et au refresh"""
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = TOKEN_TYPE


@dataclass
class MobileLoginResult:
    """Resultat d'un login mobile"""
    user: User
    tokens: MobileTokenPair


def has_permission(claims: MobileTokenClaims, permission: str) -> bool:
    """Test d'appartenance avec joker '*'"""
    return WILDCARD_PERMISSION in claims.permissions or permission in claims.permissions


class MobileSessionService:
    """
    Emetteur des sessions mobiles.

    Args:
        auth_service: Verificateur d'identifiants
        user_repository: Repository des utilisateurs
        mobile_session_repository: Repository des sessions d'appareil
        push_subscription_repository: Repository des abonnements push
        audit_service: Service d'audit
        session_factory: Fabrique de sessions pour les mises a jour en tache de fond
        two_factor_service: Moteur 2FA (code exige si la 2FA est active)
        defer: Planificateur des ecritures d'audit
    """

    def __init__(
        self,
        auth_service: AuthService,
        user_repository: UserRepository,
        mobile_session_repository: MobileSessionRepository,
        push_subscription_repository: PushSubscriptionRepository,
        audit_service: AuditService,
        session_factory: Callable[[], Session],
        two_factor_service: Optional[TwoFactorService] = None,
        defer: Callable[..., None] = run_now,
    ):
        self.auth_service = auth_service
        self.user_repository = user_repository
        self.mobile_session_repository = mobile_session_repository
        self.push_subscription_repository = push_subscription_repository
        self.audit_service = audit_service
        self.session_factory = session_factory
        self.two_factor_service = two_factor_service
        self.defer = defer
        self.secret = settings.MOBILE_JWT_SECRET

    # =========================================================================
    # Tokens
    # =========================================================================

    def _issue_tokens(self, user: User, device_id: str, device_info: DeviceInfo) -> MobileTokenPair:
        access_claims = {
            "userId": user.id,
            "email": user.email,
            "role": user.role.value,
            "deviceId": device_id,
            "deviceInfo": device_info.to_claims(),
            "permissions": get_role_permissions(user.role),
        }
        refresh_claims = {
            "userId": user.id,
            "deviceId": device_id,
            "type": REFRESH_TOKEN_TYPE,
        }
        return MobileTokenPair(
            access_token=create_signed_token(
                access_claims,
                self.secret,
                settings.MOBILE_ACCESS_TOKEN_LIFETIME,
                issuer=ACCESS_TOKEN_ISSUER,
            ),
            refresh_token=create_signed_token(
                refresh_claims,
                self.secret,
                settings.MOBILE_REFRESH_TOKEN_LIFETIME,
                issuer=REFRESH_TOKEN_ISSUER,
            ),
            expires_in=settings.MOBILE_ACCESS_TOKEN_LIFETIME,
        )

    def validate_request(self, token: Optional[str]) -> Optional[MobileTokenClaims]:
        """
        Valide un access token mobile.

        Stateless: ne consulte pas la base et ne leve jamais d'exception.

        Args:
            token: Access token (sans le prefixe Bearer)

        Returns:
            MobileTokenClaims ou None si le token est invalide
        """
        if not token:
            return None
        try:
            payload = decode_signed_token(token, self.secret, issuer=ACCESS_TOKEN_ISSUER)
            return MobileTokenClaims(
                user_id=int(payload["userId"]),
                email=payload["email"],
                role=payload["role"],
                device_id=payload["deviceId"],
                device_info=payload.get("deviceInfo") or {},
                permissions=list(payload.get("permissions") or []),
            )
        except (TokenExpiredError, InvalidTokenError, KeyError, TypeError, ValueError) as e:
            logger.debug(f"Token mobile refuse: {e}")
            return None

    # =========================================================================
    # Login / Refresh / Logout
    # =========================================================================

    def login(
        self,
        email: Optional[str],
        password: Optional[str],
        device_id: str,
        device_info: Optional[DeviceInfo] = None,
        two_factor_code: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> MobileLoginResult:
        """
        Authentifie un appareil mobile.

        Args:
            email: Email
            password: Mot de passe
            device_id: Identifiant de l'appareil
            device_info: Plateforme, version de l'app, User-Agent
            two_factor_code: Code TOTP ou de secours si la 2FA est active
            ip: IP du client (audit)

        Returns:
            MobileLoginResult (utilisateur + paire de tokens)

        Raises:
            MissingCredentialsError / InvalidCredentialsError: Identifiants
            TwoFactorRequiredError: 2FA active et code absent
            InvalidTwoFactorCodeError: Code 2FA invalide
            StorageUnavailableError: Base indisponible
        """
        device_info = device_info or DeviceInfo()
        user = self.auth_service.authenticate(email, password, ip=ip, user_agent=device_info.user_agent)

        if user.two_factor_enabled and self.two_factor_service is not None:
            if not two_factor_code:
                raise TwoFactorRequiredError()
            self.two_factor_service.verify(
                user,
                two_factor_code,
                TwoFactorAction.VERIFY_LOGIN.value,
                ip=ip,
                user_agent=device_info.user_agent,
            )

        try:
            self.mobile_session_repository.upsert(
                user_id=user.id,
                device_id=device_id,
                platform=device_info.platform,
                app_version=device_info.version,
                user_agent=device_info.user_agent,
            )
        except SQLAlchemyError as e:
            logger.error(f"Erreur creation session mobile (user_id={user.id}): {e}")
            raise StorageUnavailableError("mobile_login")

        self.auth_service.record_login_success(
            user, ip=ip, user_agent=device_info.user_agent, channel="mobile"
        )
        logger.info(f"Session mobile ouverte user_id={user.id} device_id={device_id}")

        return MobileLoginResult(user=user, tokens=self._issue_tokens(user, device_id, device_info))

    def refresh(self, refresh_token: Optional[str]) -> MobileTokenPair:
        """
        Emet une nouvelle paire de tokens.

        Raises:
            InvalidSessionError: Token invalide, utilisateur inactif ou
                session d'appareil desactivee
        """
        if not refresh_token:
            raise InvalidSessionError("refresh token absent")
        try:
            payload = decode_signed_token(refresh_token, self.secret, issuer=REFRESH_TOKEN_ISSUER)
        except TokenExpiredError:
            raise InvalidSessionError("refresh token expire")
        except InvalidTokenError:
            raise InvalidSessionError("refresh token invalide")

        if payload.get("type") != REFRESH_TOKEN_TYPE:
            raise InvalidSessionError("type de token incorrect")

        try:
            user_id = int(payload["userId"])
            device_id = str(payload["deviceId"])
        except (KeyError, TypeError, ValueError):
            raise InvalidSessionError("claims incompletes")

        user = self.user_repository.get(user_id)
        if user is None or not user.is_active:
            raise InvalidSessionError("utilisateur inconnu ou inactif")

        mobile_session = self.mobile_session_repository.get_for_device(user_id, device_id)
        if mobile_session is None or not mobile_session.is_active:
            raise InvalidSessionError("session d'appareil inactive")

        device_info = DeviceInfo(
            platform=mobile_session.platform,
            version=mobile_session.app_version,
            user_agent=mobile_session.user_agent,
        )
        logger.debug(f"Refresh mobile user_id={user_id} device_id={device_id}")
        return self._issue_tokens(user, device_id, device_info)

    def logout(
        self,
        claims: MobileTokenClaims,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> bool:
        """
        Desactive la session de l'appareil du token.

        Returns:
            True si une session active a ete desactivee
        """
        deactivated = self.mobile_session_repository.deactivate(claims.user_id, claims.device_id)
        self.defer(self.audit_service.log_logout, claims.user_id, ip, user_agent)
        logger.info(f"Logout mobile user_id={claims.user_id} device_id={claims.device_id}")
        return deactivated

    def get_user(self, claims: MobileTokenClaims) -> User:
        """
        Utilisateur courant d'un token mobile.

        Raises:
            InvalidSessionError: Utilisateur inconnu ou inactif
        """
        user = self.user_repository.get(claims.user_id)
        if user is None or not user.is_active:
            raise InvalidSessionError("utilisateur inconnu ou inactif")
        return user

    def touch(self, user_id: int, device_id: str) -> None:
        """
        Met a jour last_activity de la session (best-effort).

        Execute en tache de fond apres chaque requete mobile authentifiee,
        avec sa propre session DB.
        """
        try:
            with self.session_factory() as session:
                MobileSessionRepository(session).touch(user_id, device_id)
                session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Echec mise a jour last_activity (user_id={user_id}): {e}")

    # =========================================================================
    # Push
    # =========================================================================

    def subscribe(
        self,
        claims: MobileTokenClaims,
        user_id: int,
        endpoint: str,
        p256dh: str,
        auth: str,
        device_id: Optional[str] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> PushSubscription:
        """
        Enregistre ou reactive un abonnement push.

        Raises:
            SubscriptionOwnershipError: user_id different de celui du token
        """
        if int(user_id) != claims.user_id:
            self.audit_service.log_access_denied(
                claims.user_id,
                AuditResource.USER.value,
                ip,
                user_agent,
                {"reason": "push_subscription_other_user", "target_user_id": user_id},
            )
            raise SubscriptionOwnershipError()

        subscription = self.push_subscription_repository.upsert(
            user_id=claims.user_id,
            endpoint=endpoint,
            p256dh=p256dh,
            auth=auth,
            device_id=device_id or claims.device_id,
        )
        logger.info(f"Abonnement push enregistre user_id={claims.user_id}")
        return subscription

    def unsubscribe(self, claims: MobileTokenClaims, endpoint: str) -> bool:
        """Desactive un abonnement push de l'utilisateur du token"""
        return self.push_subscription_repository.deactivate(claims.user_id, endpoint)
