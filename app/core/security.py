"""
Module de securite pour ChantierPro Auth
Hashing des mots de passe, politique de force, signature des tokens JWT

Securite production:
- bcrypt avec cost factor 12 (BCRYPT_ROUNDS)
- JWT HS256 avec secrets forts (SESSION_SECRET / MOBILE_JWT_SECRET)
- Validation stricte des mots de passe (12 caracteres, 4 classes)
"""
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

from app.core.config import get_settings

logger = logging.getLogger(__name__)

# ============================================
# Configuration
# ============================================

settings = get_settings()

JWT_ALGORITHM = settings.JWT_ALGORITHM

PASSWORD_MIN_LENGTH = 12
PASSWORD_MAX_LENGTH = 72
# bcrypt ne hache que 72 octets (bcrypt>=5 refuse au-dela)
PASSWORD_MAX_BYTES = 72

# Caracteres speciaux acceptes par la politique de mot de passe
SPECIAL_CHARACTERS = '!@#$%^&*(),.?":{}|<>'
_SPECIAL_RE = re.compile(r'[!@#$%^&*(),.?":{}|<>]')

# DUMMY_HASH pour timing-safe login (evite timing attacks sur user enumeration)
# Utilise quand l'utilisateur n'existe pas pour garder un timing constant
DUMMY_HASH = "$2b$12$LQv3c1yqBWVHxkd0LHAkCOYz6TtxMQJqhN8/X4.VSJHQJI0N0.o.a"


# ============================================
# Exceptions Personnalisees
# ============================================

class SecurityError(Exception):
    """Exception de base pour les erreurs de securite"""
    pass


class PasswordValidationError(SecurityError):
    """Erreur de validation de mot de passe"""
    pass


class TokenExpiredError(SecurityError):
    """Token JWT expire"""
    pass


class InvalidTokenError(SecurityError):
    """Token JWT invalide"""
    pass


# ============================================
# Password Hashing
# ============================================

def hash_password(password: str) -> str:
    """
    Hash un mot de passe avec bcrypt.

    Args:
        password: Mot de passe en clair

    Returns:
        Hash bcrypt du mot de passe

    Raises:
        PasswordValidationError: Si le mot de passe est vide ou depasse 72 octets
    """
    if not password:
        raise PasswordValidationError("Le mot de passe ne peut pas etre vide")
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise PasswordValidationError(
            f"Le mot de passe ne peut pas depasser {PASSWORD_MAX_BYTES} octets"
        )

    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)

    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Verifie un mot de passe contre son hash.
    Resistant aux timing attacks grace a bcrypt.checkpw.

    Args:
        plain_password: Mot de passe en clair
        hashed_password: Hash bcrypt a verifier

    Returns:
        True si le mot de passe correspond, False sinon
    """
    if not plain_password or not hashed_password:
        return False

    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            hashed_password.encode("utf-8"),
        )
    except ValueError as e:
        # Hash corrompu en base
        logger.debug(f"Erreur verification mot de passe: {e}")
        return False


def burn_password_check(plain_password: Optional[str]) -> None:
    """Verifie contre DUMMY_HASH pour garder un temps de reponse constant."""
    verify_password(plain_password or "dummy_password_never_used", DUMMY_HASH)


# ============================================
# Password Validation
# ============================================

def validate_password_strength(
    password: str,
    email: Optional[str] = None,
    name: Optional[str] = None,
) -> bool:
    """
    Valide la force d'un mot de passe a l'inscription.

    Regles:
    - Minimum 12 caracteres, maximum 72 octets en UTF-8
    - Au moins une majuscule, une minuscule, un chiffre
    - Au moins un caractere special parmi !@#$%^&*(),.?":{}|<>
    - Pas de motif faible (voir app.core.password_policy)

    Args:
        password: Mot de passe a valider
        email: Email de l'utilisateur (partie locale interdite dans le password)
        name: Nom de l'utilisateur (interdit dans le password)

    Returns:
        True si le mot de passe est valide

    Raises:
        PasswordValidationError: Si le mot de passe ne respecte pas les regles
    """
    if not password:
        raise PasswordValidationError("Le mot de passe ne peut pas etre vide")

    if len(password) < PASSWORD_MIN_LENGTH:
        raise PasswordValidationError(
            f"Le mot de passe doit contenir au moins {PASSWORD_MIN_LENGTH} caracteres"
        )

    if len(password) > PASSWORD_MAX_LENGTH:
        raise PasswordValidationError(
            f"Le mot de passe ne peut pas depasser {PASSWORD_MAX_LENGTH} caracteres"
        )

    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise PasswordValidationError(
            f"Le mot de passe ne peut pas depasser {PASSWORD_MAX_BYTES} octets"
        )

    if not re.search(r"[A-Z]", password):
        raise PasswordValidationError(
            "Le mot de passe doit contenir au moins une majuscule"
        )

    if not re.search(r"[a-z]", password):
        raise PasswordValidationError(
            "Le mot de passe doit contenir au moins une minuscule"
        )

    if not re.search(r"\d", password):
        raise PasswordValidationError(
            "Le mot de passe doit contenir au moins un chiffre"
        )

    if not _SPECIAL_RE.search(password):
        raise PasswordValidationError(
            "Le mot de passe doit contenir au moins un caractere special "
            f"({SPECIAL_CHARACTERS})"
        )

    from app.core.password_policy import WeakPasswordError, validate_password_policy

    try:
        validate_password_policy(password=password, email=email, name=name)
    except WeakPasswordError as e:
        raise PasswordValidationError(e.message)

    return True


# ============================================
# JWT
# ============================================

def create_signed_token(
    claims: Dict[str, Any],
    secret: str,
    lifetime_seconds: int,
    issuer: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Signe un token JWT avec iat/exp (et iss si fourni).

    Args:
        claims: Claims metier a embarquer
        secret: Cle de signature HMAC
        lifetime_seconds: Duree de validite
        issuer: Claim 'iss' optionnel
        now: Instant d'emission (defaut: maintenant)

    Returns:
        Token JWT signe
    """
    issued_at = now or datetime.now(timezone.utc)
    expire = issued_at + timedelta(seconds=lifetime_seconds)

    payload = dict(claims)
    payload["iat"] = int(issued_at.timestamp())
    payload["exp"] = int(expire.timestamp())
    if issuer:
        payload["iss"] = issuer

    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_signed_token(
    token: str,
    secret: str,
    issuer: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Decode et valide un token JWT.

    Args:
        token: Token JWT a decoder
        secret: Cle de verification
        issuer: Issuer attendu (verifie si fourni)

    Returns:
        Payload du token

    Raises:
        InvalidTokenError: Si le token est invalide
        TokenExpiredError: Si le token est expire
    """
    if not token or not isinstance(token, str):
        raise InvalidTokenError("Token invalide ou vide")

    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            issuer=issuer,
            options={"verify_iss": issuer is not None},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Le token a expire")
    except JWTError as e:
        raise InvalidTokenError(f"Token invalide: {str(e)}")
