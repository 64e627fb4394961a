"""
Session web pour ChantierPro Auth
Emission, decodage et renouvellement du token de session (JWT signe)

La session est stateless: le token porte l'identite et le role, il est
transmis en header Authorization: Bearer ou dans le cookie httpOnly
chantierpro.session-token. Le logout efface seulement le cookie.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.core.config import get_settings
from app.core.security import (
    InvalidTokenError,
    TokenExpiredError,
    create_signed_token,
    decode_signed_token,
)
from app.models import User, UserRole
from app.repositories.user import UserRepository
from app.services.exceptions import InvalidSessionError

logger = logging.getLogger(__name__)
settings = get_settings()

WEB_TOKEN_TYPE = "web"
PENDING_2FA_TOKEN_TYPE = "2fa_pending"


@dataclass
class WebSessionClaims:
    """Identite portee par un token de session web"""
    user_id: int
    email: str
    name: str
    role: UserRole
    company: Optional[str]
    issued_at: datetime
    expires_at: datetime

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "WebSessionClaims":
        try:
            return cls(
                user_id=int(payload["id"]),
                email=payload["email"],
                name=payload.get("name") or "",
                role=UserRole(payload["role"]),
                company=payload.get("company"),
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidSessionError("claims incompletes") from e


@dataclass
class IssuedWebSession:
    """Token emis et ses claims"""
    token: str
    claims: WebSessionClaims

    @property
    def expires_at(self) -> datetime:
        return self.claims.expires_at


class WebSessionIssuer:
    """
    Emetteur des sessions web.

    Args:
        user_repository: Repository utilise au renouvellement
        secret: Cle de signature (defaut: SESSION_SECRET)
        max_age: Duree de vie en secondes (defaut: WEB_SESSION_MAX_AGE)
        update_age: Age minimal avant renouvellement (defaut: WEB_SESSION_UPDATE_AGE)
    """

    def __init__(
        self,
        user_repository: Optional[UserRepository] = None,
        secret: Optional[str] = None,
        max_age: Optional[int] = None,
        update_age: Optional[int] = None,
    ):
        self.user_repository = user_repository
        self.secret = secret or settings.SESSION_SECRET
        self.max_age = max_age or settings.WEB_SESSION_MAX_AGE
        self.update_age = settings.WEB_SESSION_UPDATE_AGE if update_age is None else update_age

    def issue(self, user: User, now: Optional[datetime] = None) -> IssuedWebSession:
        """
        Emet un token de session pour un utilisateur authentifie.

        Args:
            user: Utilisateur (tous facteurs verifies)
            now: Instant d'emission (defaut: maintenant)

        Returns:
            IssuedWebSession (token + claims)
        """
        claims = {
            "sub": str(user.id),
            "id": user.id,
            "name": user.display_name,
            "email": user.email,
            "role": user.role.value,
            "company": user.company,
            "type": WEB_TOKEN_TYPE,
        }
        token = create_signed_token(claims, self.secret, self.max_age, now=now)
        return IssuedWebSession(token=token, claims=self.decode(token))

    def decode(self, token: Optional[str]) -> WebSessionClaims:
        """
        Decode un token de session.

        Raises:
            InvalidSessionError: Token absent, invalide, expire ou d'un autre type
        """
        payload = self._decode_payload(token, WEB_TOKEN_TYPE)
        return WebSessionClaims.from_payload(payload)

    def refresh(self, token: Optional[str], now: Optional[datetime] = None) -> IssuedWebSession:
        """
        Renouvelle le token si update_age est ecoule depuis son emission.

        Le token n'est re-emis que si l'utilisateur existe toujours et est
        actif; sinon la session est refusee. Avant update_age, le meme token
        est retourne.

        Args:
            token: Token courant
            now: Instant de reference (defaut: maintenant)

        Returns:
            IssuedWebSession (nouveau token ou token courant)

        Raises:
            InvalidSessionError: Token invalide ou utilisateur inactif
        """
        claims = self.decode(token)
        now = now or datetime.now(timezone.utc)

        if (now - claims.issued_at).total_seconds() < self.update_age:
            return IssuedWebSession(token=token, claims=claims)

        user = self.user_repository.get(claims.user_id) if self.user_repository else None
        if user is None or not user.is_active:
            logger.info(f"Renouvellement refuse pour user_id={claims.user_id}")
            raise InvalidSessionError("utilisateur inconnu ou inactif")

        logger.debug(f"Session web renouvelee pour user_id={user.id}")
        return self.issue(user, now=now)

    # =========================================================================
    # Token intermediaire 2FA
    # =========================================================================

    def issue_pending_two_factor(self, user: User) -> str:
        """
        Emet le token intermediaire apres verification du mot de passe,
        quand la 2FA est active. Il ne donne acces qu'a /auth/login/2fa.
        """
        return create_signed_token(
            {"sub": str(user.id), "id": user.id, "type": PENDING_2FA_TOKEN_TYPE},
            self.secret,
            settings.TWO_FACTOR_PENDING_LIFETIME,
        )

    def decode_pending_two_factor(self, token: Optional[str]) -> int:
        """
        Decode le token intermediaire 2FA.

        Returns:
            ID de l'utilisateur

        Raises:
            InvalidSessionError: Token invalide ou expire
        """
        payload = self._decode_payload(token, PENDING_2FA_TOKEN_TYPE)
        try:
            return int(payload["id"])
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidSessionError("claims incompletes") from e

    def _decode_payload(self, token: Optional[str], expected_type: str) -> Dict[str, Any]:
        if not token:
            raise InvalidSessionError("token absent")
        try:
            payload = decode_signed_token(token, self.secret)
        except TokenExpiredError:
            raise InvalidSessionError("token expire")
        except InvalidTokenError:
            raise InvalidSessionError("token invalide")

        if payload.get("type") != expected_type:
            raise InvalidSessionError("type de token incorrect")
        return payload
