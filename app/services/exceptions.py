"""
Exceptions metier pour les Services ChantierPro Auth
"""


class ServiceException(Exception):
    """Exception de base pour les services"""

    def __init__(self, message: str, code: str = None):
        self.message = message
        self.code = code
        super().__init__(self.message)


# ============================================================================
# Identifiants
# ============================================================================


class RegistrationValidationError(ServiceException):
    """Donnees d'inscription invalides (email, nom, mot de passe)"""

    def __init__(self, message: str, field: str = None):
        super().__init__(message=message, code="VALIDATION_ERROR")
        self.field = field


class EmailAlreadyExistsError(ServiceException):
    """Email deja utilise"""

    def __init__(self, email: str):
        super().__init__(
            message="Un compte existe deja avec cet email",
            code="EMAIL_EXISTS"
        )
        self.email = email


class MissingCredentialsError(ServiceException):
    """Email ou mot de passe absent"""

    def __init__(self):
        super().__init__(
            message="Email et mot de passe requis",
            code="MISSING_CREDENTIALS"
        )


class InvalidCredentialsError(ServiceException):
    """
    Identifiants invalides.

    Le message est identique quelle que soit la cause; la cause precise
    (user_not_found, invalid_password, ...) n'est conservee que pour l'audit.
    """

    def __init__(self, reason: str = None):
        super().__init__(
            message="Identifiants invalides",
            code="INVALID_CREDENTIALS"
        )
        self.reason = reason


class StorageUnavailableError(ServiceException):
    """Base de donnees indisponible: l'operation echoue (fail closed)"""

    def __init__(self, operation: str = None):
        super().__init__(
            message="Service temporairement indisponible",
            code="STORAGE_UNAVAILABLE"
        )
        self.operation = operation


# ============================================================================
# Sessions
# ============================================================================


class InvalidSessionError(ServiceException):
    """Token de session invalide ou expire"""

    def __init__(self, reason: str = None):
        message = "Session invalide ou expiree"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message=message, code="INVALID_SESSION")
        self.reason = reason


class SubscriptionOwnershipError(ServiceException):
    """Abonnement push pour un autre utilisateur que celui du token"""

    def __init__(self):
        super().__init__(
            message="Utilisateur non autorise",
            code="SUBSCRIPTION_FORBIDDEN"
        )


# ============================================================================
# 2FA
# ============================================================================


class TwoFactorError(ServiceException):
    """Exception de base pour la 2FA"""
    pass


class TwoFactorNotConfiguredError(TwoFactorError):
    """Aucun secret 2FA configure"""

    def __init__(self):
        super().__init__(
            message="2FA non configure",
            code="TWO_FACTOR_NOT_CONFIGURED"
        )


class TwoFactorNotEnabledError(TwoFactorError):
    """2FA configure mais pas active"""

    def __init__(self):
        super().__init__(
            message="2FA non active",
            code="TWO_FACTOR_NOT_ENABLED"
        )


class InvalidTwoFactorCodeError(TwoFactorError):
    """Code TOTP ou code de secours invalide"""

    def __init__(self):
        super().__init__(
            message="Code invalide",
            code="TWO_FACTOR_INVALID"
        )


class InvalidTwoFactorActionError(TwoFactorError):
    """Action de verification inconnue"""

    def __init__(self, action: str = None):
        super().__init__(
            message="Action non reconnue",
            code="TWO_FACTOR_INVALID_ACTION"
        )
        self.action = action


class TwoFactorRequiredError(TwoFactorError):
    """Connexion mobile sans code alors que la 2FA est active"""

    def __init__(self):
        super().__init__(
            message="Code 2FA requis",
            code="TWO_FACTOR_REQUIRED"
        )
