"""
Exceptions applicatives pour ChantierPro Auth.

Ces exceptions sont levees par la couche HTTP (endpoints, dependances)
et automatiquement converties en responses JSON par le exception handler.

Usage:
    from app.core.exceptions import InvalidCredentials
    raise InvalidCredentials()

Le exception handler convertira en:
    HTTP 401: {"error": "INVALID_CREDENTIALS", "message": "Identifiants invalides"}
"""
from typing import Optional, Dict, Any


class AppException(Exception):
    """
    Exception de base pour l'application.

    Fournit status_code HTTP, error_code pour le client et
    d'eventuels headers HTTP a ajouter a la response.
    """
    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"
    message: str = "Une erreur inattendue est survenue"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.__class__.message
        self.details = details or {}
        self.headers = headers or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialise l'exception pour la response JSON"""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Authentication Exceptions (401)
# =============================================================================

class InvalidCredentials(AppException):
    """Email ou mot de passe invalide (message uniforme)"""
    status_code = 401
    error_code = "INVALID_CREDENTIALS"
    message = "Identifiants invalides"


class InvalidSession(AppException):
    """Session invalide, expiree ou manquante"""
    status_code = 401
    error_code = "INVALID_SESSION"
    message = "Session invalide ou expiree"


class InvalidTwoFactorCode(AppException):
    """Code 2FA invalide (message uniforme TOTP / backup)"""
    status_code = 401
    error_code = "TWO_FACTOR_INVALID"
    message = "Code invalide"


class TwoFactorRequired(AppException):
    """Code 2FA requis pour finaliser la connexion"""
    status_code = 401
    error_code = "TWO_FACTOR_REQUIRED"
    message = "Code 2FA requis"


# =============================================================================
# Authorization Exceptions (403)
# =============================================================================

class PermissionDenied(AppException):
    """Permission refusee"""
    status_code = 403
    error_code = "PERMISSION_DENIED"
    message = "Acces refuse"


# =============================================================================
# Resource Exceptions (404, 409)
# =============================================================================

class NotFound(AppException):
    """Resource non trouvee"""
    status_code = 404
    error_code = "NOT_FOUND"
    message = "Ressource introuvable"


class AlreadyExists(AppException):
    """Resource existe deja"""
    status_code = 409
    error_code = "ALREADY_EXISTS"
    message = "La ressource existe deja"


class EmailAlreadyExists(AlreadyExists):
    """Email deja utilise"""
    error_code = "EMAIL_ALREADY_EXISTS"
    message = "Un compte existe deja avec cet email"


# =============================================================================
# Validation Exceptions (400)
# =============================================================================

class BadRequest(AppException):
    """Requete invalide"""
    status_code = 400
    error_code = "BAD_REQUEST"
    message = "Requete invalide"


class ValidationError(BadRequest):
    """Erreur de validation des champs"""
    error_code = "VALIDATION_ERROR"
    message = "Donnees invalides"


class PasswordTooWeak(ValidationError):
    """Mot de passe trop faible"""
    error_code = "PASSWORD_TOO_WEAK"
    message = "Le mot de passe ne respecte pas les exigences de securite"


class MissingCredentials(BadRequest):
    """Email ou mot de passe manquant"""
    error_code = "MISSING_CREDENTIALS"
    message = "Email et mot de passe requis"


# =============================================================================
# Rate Limiting (429)
# =============================================================================

class RateLimitExceeded(AppException):
    """Trop de requetes"""
    status_code = 429
    error_code = "RATE_LIMIT_EXCEEDED"
    message = "Trop de tentatives. Veuillez reessayer plus tard."

    def __init__(self, retry_after: int, headers: Optional[Dict[str, str]] = None):
        super().__init__(
            details={"retryAfter": retry_after, "type": "RATE_LIMIT_EXCEEDED"},
            headers=headers,
        )
        self.retry_after = retry_after


# =============================================================================
# Dependency failure (503)
# =============================================================================

class ServiceUnavailable(AppException):
    """Stockage ou dependance indisponible (fail closed)"""
    status_code = 503
    error_code = "SERVICE_UNAVAILABLE"
    message = "Service temporairement indisponible"
