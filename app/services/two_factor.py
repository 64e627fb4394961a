"""
Service 2FA pour ChantierPro Auth.

Ce module fournit le moteur d'authentification a deux facteurs:
- Setup avec generation du secret TOTP et du QR code
- Verification TOTP (tolerance de 2 pas de 30 secondes)
- Codes de secours a usage unique (XXXX-XXXX)
- Activation, desactivation et verification au login

Machine a etats:
    NOT_CONFIGURED -> PENDING_VERIFICATION (setup)
    PENDING_VERIFICATION -> ENABLED (verify action=enable)
    ENABLED -> NOT_CONFIGURED (verify action=disable)

Le service utilise pyotp pour la generation et verification TOTP.
"""
import base64
import enum
import io
import logging
import secrets
from typing import Any, Callable, Dict, List, Optional

import pyotp

from app.core.config import get_settings
from app.models import User
from app.repositories.user import UserRepository
from app.services.audit import AuditService, run_now
from app.services.exceptions import (
    InvalidTwoFactorActionError,
    InvalidTwoFactorCodeError,
    TwoFactorNotConfiguredError,
    TwoFactorNotEnabledError,
)

logger = logging.getLogger(__name__)
settings = get_settings()


class TwoFactorState(str, enum.Enum):
    """Etats de la 2FA d'un utilisateur"""
    NOT_CONFIGURED = "NOT_CONFIGURED"
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    ENABLED = "ENABLED"


class TwoFactorAction(str, enum.Enum):
    """Actions acceptees par verify"""
    ENABLE = "enable"
    DISABLE = "disable"
    VERIFY_LOGIN = "verify-login"


def generate_backup_codes(count: int) -> List[str]:
    """
    Genere des codes de secours au format XXXX-XXXX.

    Chaque code provient de 4 octets aleatoires (secrets) en hexadecimal
    majuscule.
    """
    codes = []
    for _ in range(count):
        raw = secrets.token_hex(4).upper()
        codes.append(f"{raw[:4]}-{raw[4:]}")
    return codes


def build_qr_code_data_url(data: str) -> str:
    """Encode une URI en QR code PNG, retourne une data URL"""
    import qrcode

    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")

    encoded = base64.b64encode(buffer.getvalue()).decode()
    return f"data:image/png;base64,{encoded}"


class TwoFactorService:
    """
    Moteur 2FA.

    Le secret est stocke sur l'utilisateur des le setup, mais la 2FA n'est
    active qu'apres une premiere verification reussie (action=enable).
    """

    # 52 caracteres base32 = 32 octets (256 bits)
    SECRET_LENGTH = 52

    def __init__(
        self,
        user_repository: UserRepository,
        audit_service: AuditService,
        defer: Callable[..., None] = run_now,
        issuer: Optional[str] = None,
        window: Optional[int] = None,
    ):
        """
        Initialise le service 2FA.

        Args:
            user_repository: Repository pour la persistance de l'etat 2FA
            audit_service: Service d'audit (TWO_FA_SUCCESS / TWO_FA_FAILED)
            defer: Planificateur des ecritures d'audit
            issuer: Emetteur affiche dans l'app TOTP (defaut: TWO_FACTOR_ISSUER)
            window: Tolerance en pas de 30s (defaut: TWO_FACTOR_TOTP_WINDOW)
        """
        self.user_repository = user_repository
        self.audit_service = audit_service
        self.defer = defer
        self.issuer = issuer or settings.TWO_FACTOR_ISSUER
        self.window = settings.TWO_FACTOR_TOTP_WINDOW if window is None else window

    # ========================================================================
    # Etat
    # ========================================================================

    @staticmethod
    def get_state(user: User) -> TwoFactorState:
        if user.two_factor_enabled and user.two_factor_secret:
            return TwoFactorState.ENABLED
        if user.two_factor_secret:
            return TwoFactorState.PENDING_VERIFICATION
        return TwoFactorState.NOT_CONFIGURED

    def status(self, user: User) -> Dict[str, Any]:
        """
        Statut 2FA de l'utilisateur.

        Returns:
            Dict avec enabled, configured et state
        """
        return {
            "enabled": bool(user.two_factor_enabled),
            "configured": user.two_factor_secret is not None,
            "state": self.get_state(user),
        }

    # ========================================================================
    # Setup
    # ========================================================================

    def get_provisioning_uri(self, secret: str, email: str) -> str:
        """URI otpauth:// a encoder dans le QR code"""
        return pyotp.TOTP(secret).provisioning_uri(
            name=f"{self.issuer} ({email})",
            issuer_name=self.issuer,
        )

    def setup(self, user: User) -> Dict[str, str]:
        """
        Genere un nouveau secret TOTP en attente de verification.

        Idempotent: un nouveau setup remplace le secret en attente (et
        desactive une 2FA existante jusqu'a la prochaine verification).

        Args:
            user: Utilisateur authentifie

        Returns:
            Dict avec secret, qr_code (data URL PNG) et manual_entry_key
        """
        secret = pyotp.random_base32(self.SECRET_LENGTH)
        self.user_repository.start_two_factor_setup(user, secret)

        uri = self.get_provisioning_uri(secret, user.email)
        logger.info(f"Setup 2FA demarre pour user_id={user.id}")

        return {
            "secret": secret,
            "qr_code": build_qr_code_data_url(uri),
            "manual_entry_key": secret,
        }

    # ========================================================================
    # Verification
    # ========================================================================

    def verify_totp(self, secret: str, code: str) -> bool:
        """Verifie un code TOTP avec la tolerance configuree"""
        if not code:
            return False
        return pyotp.TOTP(secret).verify(code, valid_window=self.window)

    def verify(
        self,
        user: User,
        code: str,
        action: str,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Verifie un code (TOTP ou code de secours) puis applique l'action.

        Args:
            user: Utilisateur authentifie
            code: Code TOTP a 6 chiffres ou code de secours
            action: enable, disable ou verify-login
            ip: IP du client (audit)
            user_agent: User-Agent du client (audit)

        Returns:
            Dict avec success, message et, pour enable, backup_codes

        Raises:
            TwoFactorNotConfiguredError: Aucun secret configure
            TwoFactorNotEnabledError: verify-login sans 2FA active
            InvalidTwoFactorCodeError: Code invalide
            InvalidTwoFactorActionError: Action inconnue
        """
        if not user.two_factor_secret:
            raise TwoFactorNotConfiguredError()

        try:
            requested = TwoFactorAction(action)
        except ValueError:
            raise InvalidTwoFactorActionError(action)

        if requested == TwoFactorAction.VERIFY_LOGIN and not user.two_factor_enabled:
            raise TwoFactorNotEnabledError()

        method = self._check_code(user, code)
        if method is None:
            logger.info(f"Code 2FA invalide pour user_id={user.id} (action={requested.value})")
            self.audit_service.log_two_factor_action(
                user.id, False, ip, user_agent, {"action": requested.value}
            )
            raise InvalidTwoFactorCodeError()

        result: Dict[str, Any] = {"success": True}

        if requested == TwoFactorAction.ENABLE:
            codes = generate_backup_codes(settings.TWO_FACTOR_BACKUP_CODE_COUNT)
            self.user_repository.enable_two_factor(user, codes)
            result["message"] = "2FA active"
            result["backup_codes"] = codes
        elif requested == TwoFactorAction.DISABLE:
            self.user_repository.disable_two_factor(user)
            result["message"] = "2FA desactive"
        else:
            result["message"] = "Code verifie"

        logger.info(f"2FA {requested.value} reussi pour user_id={user.id} ({method})")
        self.defer(
            self.audit_service.log_two_factor_action,
            user.id, True, ip, user_agent, {"action": requested.value, "method": method},
        )
        return result

    def _check_code(self, user: User, code: str) -> Optional[str]:
        """
        Retourne la methode qui a valide le code ("totp" ou "backup_code"),
        None si aucune.
        """
        code = (code or "").strip()
        if not code:
            return None

        if self.verify_totp(user.two_factor_secret, code):
            return "totp"

        normalized = code.upper()
        if normalized in user.backup_codes and self.user_repository.consume_backup_code(user, normalized):
            return "backup_code"

        return None
