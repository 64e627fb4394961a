"""
Module de politique de mot de passe pour ChantierPro Auth.

Fonctionnalites:
- Rejet des mots de passe faits d'un seul caractere repete
- Rejet des sequences communes (123456, qwerty, azerty, ...)
- Rejet des mots de passe contenant le nom ou la partie locale de l'email

Toutes les comparaisons sont insensibles a la casse.
"""
import logging
import re
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


# =============================================================================
# Motifs interdits
# =============================================================================

REPEATED_CHARACTER_PATTERN = re.compile(r"^(.)\1+$")

COMMON_SEQUENCES: Tuple[str, ...] = (
    "123456",
    "654321",
    "qwerty",
    "password",
    "admin",
    "azerty",
)

_COMMON_SEQUENCE_PATTERN = re.compile(
    "|".join(re.escape(sequence) for sequence in COMMON_SEQUENCES),
    re.IGNORECASE,
)


# =============================================================================
# Exceptions
# =============================================================================

class PasswordPolicyError(Exception):
    """Exception pour violations de politique de mot de passe."""

    def __init__(self, message: str, error_code: str = "PASSWORD_POLICY_VIOLATION"):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class WeakPasswordError(PasswordPolicyError):
    """Mot de passe correspondant a un motif faible."""

    def __init__(self, message: str = "Ce mot de passe est trop faible", error_code: str = "WEAK_PASSWORD"):
        super().__init__(message, error_code)


class RepeatedCharacterPasswordError(WeakPasswordError):
    """Mot de passe compose d'un seul caractere repete."""

    def __init__(self):
        super().__init__(
            "Le mot de passe ne peut pas etre compose d'un seul caractere repete",
            "REPEATED_CHARACTER",
        )


class CommonSequencePasswordError(WeakPasswordError):
    """Mot de passe contenant une sequence commune."""

    def __init__(self):
        super().__init__(
            "Le mot de passe contient une sequence trop commune",
            "COMMON_SEQUENCE",
        )


class PasswordContainsUserInfoError(WeakPasswordError):
    """Mot de passe contenant le nom ou l'email."""

    def __init__(self):
        super().__init__(
            "Le mot de passe ne peut pas contenir votre nom ou votre email",
            "PASSWORD_CONTAINS_USER_INFO",
        )


# =============================================================================
# Verifications
# =============================================================================

def is_repeated_character(password: str) -> bool:
    """True si le mot de passe n'est qu'un caractere repete (ex: 'aaaa')."""
    return bool(REPEATED_CHARACTER_PATTERN.match(password))


def contains_common_sequence(password: str) -> bool:
    """True si le mot de passe contient une sequence commune."""
    return bool(_COMMON_SEQUENCE_PATTERN.search(password))


def check_password_contains_user_info(
    password: str,
    email: Optional[str] = None,
    name: Optional[str] = None,
) -> bool:
    """
    Verifie si le mot de passe contient le nom ou la partie locale de l'email.

    Args:
        password: Mot de passe a verifier
        email: Email de l'utilisateur
        name: Nom de l'utilisateur (les espaces sont ignores)

    Returns:
        True si le mot de passe contient des infos utilisateur (INTERDIT)
    """
    password_lower = password.lower()

    if name:
        compact_name = name.replace(" ", "").lower()
        if compact_name and compact_name in password_lower:
            return True

    if email and "@" in email:
        local_part = email.split("@", 1)[0].lower()
        if local_part and local_part in password_lower:
            return True

    return False


def validate_password_policy(
    password: str,
    email: Optional[str] = None,
    name: Optional[str] = None,
) -> None:
    """
    Applique la liste de motifs faibles.

    Args:
        password: Mot de passe a valider
        email: Email de l'utilisateur
        name: Nom de l'utilisateur

    Raises:
        WeakPasswordError: Si un motif faible est detecte
    """
    if is_repeated_character(password):
        raise RepeatedCharacterPasswordError()

    if contains_common_sequence(password):
        raise CommonSequencePasswordError()

    if check_password_contains_user_info(password, email=email, name=name):
        raise PasswordContainsUserInfoError()
