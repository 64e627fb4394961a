"""
Middleware de Rate Limiting pour ChantierPro Auth.

Applique la limite GENERAL aux routes d'authentification (/api/v1/auth/*,
/api/v1/mobile/auth/*), sauf les routes de login qui sont limitees par
la dependance enforce_login_rate_limit (limite AUTH + audit).

Les headers X-RateLimit-* sont ajoutes a chaque response limitee.
"""
import logging
from typing import Callable, Iterable, Optional

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import get_settings
from app.core.dependencies import get_rate_limiter
from app.middleware.exception_handler import create_error_response
from app.services.rate_limit import RateLimitType, build_identifier, get_client_ip

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

LIMITED_PREFIXES = (
    f"{API_PREFIX}/auth/",
    f"{API_PREFIX}/mobile/auth/",
)

# Limitees par la dependance de login (classe AUTH)
LOGIN_PATHS = frozenset({
    f"{API_PREFIX}/auth/login",
    f"{API_PREFIX}/auth/login/2fa",
    f"{API_PREFIX}/mobile/auth/login",
})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Middleware de rate limiting pour FastAPI.

    Usage:
        app.add_middleware(RateLimitMiddleware, enabled=settings.RATE_LIMIT_ENABLED)
    """

    def __init__(
        self,
        app,
        enabled: bool = True,
        prefixes: Iterable[str] = LIMITED_PREFIXES,
        excluded_paths: Iterable[str] = LOGIN_PATHS,
        trusted_proxy_header: Optional[str] = None,
    ):
        """
        Initialise le middleware.

        Args:
            app: Application FastAPI
            enabled: Active/desactive le rate limiting
            prefixes: Prefixes de chemins soumis a la limite GENERAL
            excluded_paths: Chemins exclus (login)
            trusted_proxy_header: Header IP du proxy de confiance
        """
        super().__init__(app)
        self.enabled = enabled
        self.prefixes = tuple(prefixes)
        self.excluded_paths = frozenset(excluded_paths)
        self.trusted_proxy_header = trusted_proxy_header or get_settings().TRUSTED_PROXY_HEADER

    def _is_limited(self, path: str) -> bool:
        path = path.rstrip("/") or "/"
        if path in self.excluded_paths:
            return False
        return path.startswith(self.prefixes)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Intercepte les requetes pour appliquer le rate limiting.

        Args:
            request: Requete entrante
            call_next: Handler suivant

        Returns:
            Response avec headers rate limit, ou 429
        """
        if not self.enabled or not self._is_limited(request.url.path):
            return await call_next(request)

        ip = get_client_ip(request.headers, self.trusted_proxy_header)
        identifier = build_identifier(ip, request.headers.get("user-agent"))
        result = get_rate_limiter().check(identifier, RateLimitType.GENERAL)
        headers = result.headers()

        if not result.allowed:
            return create_error_response(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                error_code="RATE_LIMIT_EXCEEDED",
                message="Trop de requetes. Veuillez reessayer plus tard.",
                details={"retryAfter": result.retry_after, "type": "RATE_LIMIT_EXCEEDED"},
                request_id=getattr(request.state, "request_id", None),
                headers=headers,
            )

        response = await call_next(request)
        for header_name, header_value in headers.items():
            response.headers[header_name] = header_value
        return response
