"""
Handlers d'exceptions pour ChantierPro Auth.

Toute erreur sort au format {error, message, details?, request_id}:
- AppException: statut et code portes par l'exception (401 uniformes pour l'auth)
- Validation pydantic/FastAPI: 400 VALIDATION_ERROR avec le detail par champ
- Base ou Redis injoignable: 503 (fail closed)
- Le reste: 500 generique, la trace ne part que dans les logs
"""
import logging
from typing import Any, Dict, List, Optional, Union

import redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.exceptions import AppException
from app.core.logging import request_id_var

logger = logging.getLogger(__name__)

# Codes pour les HTTPException levees par Starlette (404 de route, 405...)
HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "INVALID_SESSION",
    403: "PERMISSION_DENIED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMIT_EXCEEDED",
    503: "SERVICE_UNAVAILABLE",
}

INFRASTRUCTURE_ERRORS = (SQLAlchemyError, redis.RedisError, ConnectionError, TimeoutError)


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None) or request_id_var.get() or None


def create_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """
    Construit le corps d'erreur JSON commun.

    Args:
        status_code: Code HTTP
        error_code: Code d'erreur applicatif (ex: INVALID_CREDENTIALS)
        message: Message destine au client
        details: Details optionnels (champ en erreur, retryAfter...)
        request_id: ID de la requete
        headers: Headers a ajouter (Retry-After, X-RateLimit-*)
    """
    content: Dict[str, Any] = {"error": error_code, "message": message}
    if details:
        content["details"] = details
    if request_id:
        content["request_id"] = request_id

    return JSONResponse(status_code=status_code, content=content, headers=headers or None)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} sur {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.error_code} sur {request.url.path}")

    return create_error_response(
        status_code=exc.status_code,
        error_code=exc.error_code,
        message=exc.message,
        details=exc.details or None,
        request_id=_request_id(request),
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return create_error_response(
        status_code=exc.status_code,
        error_code=HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
        message=str(exc.detail),
        request_id=_request_id(request),
        headers=getattr(exc, "headers", None),
    )


def _format_validation_errors(exc: Union[RequestValidationError, ValidationError]) -> List[Dict[str, str]]:
    """Une entree par champ; la valeur saisie n'est jamais renvoyee (mots de passe)"""
    formatted = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query")]
        formatted.append({
            "field": ".".join(location),
            "message": error.get("msg", "Valeur invalide"),
            "type": error.get("type", "unknown"),
        })
    return formatted


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Validation d'entree: toujours 400"""
    errors = _format_validation_errors(exc)
    logger.debug(f"Validation echouee sur {request.url.path}: {[e['field'] for e in errors]}")

    return create_error_response(
        status_code=400,
        error_code="VALIDATION_ERROR",
        message="Donnees invalides",
        details={"errors": errors},
        request_id=_request_id(request),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Dernier recours. Aucun detail de l'exception n'est renvoye au client.
    """
    request_id = _request_id(request)

    if isinstance(exc, INFRASTRUCTURE_ERRORS):
        logger.error(f"Dependance indisponible sur {request.url.path}: {type(exc).__name__}: {exc}")
        return create_error_response(
            status_code=503,
            error_code="SERVICE_UNAVAILABLE",
            message="Service temporairement indisponible",
            request_id=request_id,
        )

    logger.critical(f"Erreur inattendue sur {request.url.path}: {type(exc).__name__}", exc_info=True)
    return create_error_response(
        status_code=500,
        error_code="INTERNAL_ERROR",
        message="Une erreur inattendue est survenue",
        request_id=request_id,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Enregistre les handlers sur l'application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
