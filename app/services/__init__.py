"""
Services metier pour ChantierPro Auth
Contient la logique metier separee des repositories

Modules disponibles:
- auth: Inscription et verification des identifiants
- web_session: Jetons de session web (cookie / Bearer)
- mobile_session: Jetons mobiles, sessions appareil et push
- two_factor: TOTP et codes de secours
- rate_limit: Limitation de debit (memoire ou Redis)
- audit: Journal d'audit et export CSV
"""
from app.services.auth import AuthService
from app.services.audit import AuditEvent, AuditService
from app.services.mobile_session import MobileSessionService
from app.services.rate_limit import RateLimiter, RateLimitType
from app.services.two_factor import TwoFactorService
from app.services.web_session import WebSessionIssuer
from app.services.exceptions import (
    ServiceException,
    RegistrationValidationError,
    EmailAlreadyExistsError,
    MissingCredentialsError,
    InvalidCredentialsError,
    StorageUnavailableError,
    InvalidSessionError,
    SubscriptionOwnershipError,
    TwoFactorError,
    TwoFactorNotConfiguredError,
    TwoFactorNotEnabledError,
    InvalidTwoFactorCodeError,
    InvalidTwoFactorActionError,
    TwoFactorRequiredError,
)

__all__ = [
    # Services
    "AuthService",
    "AuditEvent",
    "AuditService",
    "MobileSessionService",
    "RateLimiter",
    "RateLimitType",
    "TwoFactorService",
    "WebSessionIssuer",
    # Exceptions
    "ServiceException",
    "RegistrationValidationError",
    "EmailAlreadyExistsError",
    "MissingCredentialsError",
    "InvalidCredentialsError",
    "StorageUnavailableError",
    "InvalidSessionError",
    "SubscriptionOwnershipError",
    "TwoFactorError",
    "TwoFactorNotConfiguredError",
    "TwoFactorNotEnabledError",
    "InvalidTwoFactorCodeError",
    "InvalidTwoFactorActionError",
    "TwoFactorRequiredError",
]
