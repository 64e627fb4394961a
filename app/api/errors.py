"""
Conversion des exceptions metier (services) en exceptions HTTP

Les services levent des ServiceException; les endpoints les convertissent
avec to_http_exception() pour obtenir le status HTTP et le message adaptes.
"""
from typing import List, Tuple, Type

from app.core.exceptions import (
    AppException,
    BadRequest,
    EmailAlreadyExists,
    InvalidCredentials,
    InvalidSession,
    InvalidTwoFactorCode,
    MissingCredentials,
    PasswordTooWeak,
    PermissionDenied,
    ServiceUnavailable,
    TwoFactorRequired,
    ValidationError,
)
from app.services.exceptions import (
    EmailAlreadyExistsError,
    InvalidCredentialsError,
    InvalidSessionError,
    InvalidTwoFactorActionError,
    InvalidTwoFactorCodeError,
    MissingCredentialsError,
    RegistrationValidationError,
    ServiceException,
    StorageUnavailableError,
    SubscriptionOwnershipError,
    TwoFactorNotConfiguredError,
    TwoFactorNotEnabledError,
    TwoFactorRequiredError,
)

# Ordre significatif: la premiere correspondance isinstance l'emporte
SERVICE_ERROR_MAP: List[Tuple[Type[ServiceException], Type[AppException]]] = [
    (EmailAlreadyExistsError, EmailAlreadyExists),
    (MissingCredentialsError, MissingCredentials),
    (InvalidCredentialsError, InvalidCredentials),
    (StorageUnavailableError, ServiceUnavailable),
    (InvalidSessionError, InvalidSession),
    (SubscriptionOwnershipError, PermissionDenied),
    (InvalidTwoFactorCodeError, InvalidTwoFactorCode),
    (TwoFactorRequiredError, TwoFactorRequired),
    (TwoFactorNotConfiguredError, BadRequest),
    (TwoFactorNotEnabledError, BadRequest),
    (InvalidTwoFactorActionError, BadRequest),
]


def to_http_exception(exc: ServiceException) -> AppException:
    """
    Convertit une exception de service en AppException.

    Les echecs d'authentification gardent le message generique de la
    classe HTTP (message uniforme); les autres reprennent le message et le
    code metier.
    """
    if isinstance(exc, RegistrationValidationError):
        http_cls = PasswordTooWeak if exc.field == "password" else ValidationError
        details = {"field": exc.field} if exc.field else None
        return http_cls(exc.message, details=details)

    for service_cls, http_cls in SERVICE_ERROR_MAP:
        if isinstance(exc, service_cls):
            if http_cls in (InvalidCredentials, InvalidSession, ServiceUnavailable):
                return http_cls()
            http_exc = http_cls(exc.message)
            if exc.code:
                http_exc.error_code = exc.code
            return http_exc

    return BadRequest(exc.message)
