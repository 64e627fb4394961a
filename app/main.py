"""
ChantierPro Auth API - Point d'entree principal
Authentification, sessions web/mobile, 2FA, rate limiting et audit
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.health import router as health_router
from app.api.v1.router import api_router
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.core.redis import close_redis_client
from app.middleware.exception_handler import register_exception_handlers
from app.middleware.rate_limit import RateLimitMiddleware
from app.middleware.request_id import RequestIDMiddleware

settings = get_settings()

# JSON en prod, console en dev
configure_logging(
    level=settings.LOG_LEVEL,
    json_format=settings.LOG_FORMAT == "json",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gestionnaire de cycle de vie de l'application
    Execute au demarrage et a l'arret
    """
    logger.info("=" * 50)
    logger.info(f"Demarrage de {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environnement: {settings.ENV}")
    logger.info(f"Debug: {settings.DEBUG}")
    logger.info("=" * 50)

    # Bloque le demarrage si la configuration de production est dangereuse
    try:
        warnings = settings.validate_production_config()
        logger.info("Validation de la configuration: OK")
        for warning in warnings:
            logger.warning(warning)
    except ValueError as e:
        logger.critical(f"SECURITE: {e}")
        raise

    yield

    logger.info("Arret de l'application...")
    close_redis_client()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Authentification et securite des sessions ChantierPro",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# ============================================
# Middleware Stack (dernier ajoute = premier execute)
# ============================================

# 3. Rate Limiting GENERAL (routes d'authentification hors login)
app.add_middleware(
    RateLimitMiddleware,
    enabled=settings.RATE_LIMIT_ENABLED,
    trusted_proxy_header=settings.TRUSTED_PROXY_HEADER,
)

# 2. Request ID (tracabilite, contexte de logging)
app.add_middleware(RequestIDMiddleware)

# 1. CORS (doit etre premier execute pour preflight)
cors_origins = settings.get_cors_origins()
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS and "*" not in cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        "X-Request-ID",
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
        "Retry-After",
    ],
)

register_exception_handlers(app)


# ============================================
# Routes
# ============================================

app.include_router(health_router)
app.include_router(api_router, prefix="/api/v1")
