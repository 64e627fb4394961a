"""
Health Check endpoints pour ChantierPro Auth.

- /health: Liveness check (l'app repond)
- /ready: Readiness check (base de donnees, Redis si configure)

Ces endpoints sont exclus de l'authentification pour
permettre aux load balancers de les utiliser.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List

import redis
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.dependencies import get_db
from app.core.redis import get_redis_client
from app.schemas.base import HealthResponse

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(tags=["Health"])


# =============================================================================
# Health Check Functions
# =============================================================================

def check_database(db: Session) -> Dict[str, Any]:
    """
    Verifie la connexion a la base de donnees.

    Returns:
        Dict avec status et latence
    """
    try:
        start = time.perf_counter()
        db.execute(text("SELECT 1")).fetchone()
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        return {"status": "ok", "latency_ms": latency_ms}
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "error", "error": "database unreachable"}


def check_redis() -> Dict[str, Any]:
    """
    Verifie la connexion a Redis.

    Redis est optionnel: sans REDIS_URL le rate limiting reste en memoire.
    """
    if not settings.REDIS_URL:
        return {"status": "not_configured"}

    client = get_redis_client()
    if client is None:
        return {"status": "unavailable"}

    try:
        start = time.perf_counter()
        client.ping()
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        return {"status": "ok", "latency_ms": latency_ms}
    except redis.RedisError as e:
        logger.warning(f"Redis health check failed: {e}")
        return {"status": "error", "error": "redis unreachable"}


# =============================================================================
# Endpoints
# =============================================================================

@router.get(
    "/health",
    response_model=HealthResponse,
    response_model_exclude_none=True,
    summary="Liveness check",
    description="Retourne 200 si l'application repond. Utilise par les load balancers.",
)
async def health():
    """Liveness probe: ne verifie pas les dependances"""
    return HealthResponse(environment=settings.ENV, version=settings.APP_VERSION)


@router.get(
    "/ready",
    summary="Readiness check",
    description="Retourne 200 si l'application est prete a recevoir du trafic.",
    include_in_schema=False
)
def ready(db: Session = Depends(get_db)):
    """
    Readiness probe.

    Retourne 503 si la base ou un Redis configure est indisponible.
    """
    checks = {
        "database": check_database(db),
        "redis": check_redis(),
    }
    errors: List[str] = [
        name for name, check in checks.items()
        if check["status"] in ("error", "unavailable")
    ]

    content = {
        "status": "error" if errors else "ok",
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if errors:
        content["errors"] = errors
        return JSONResponse(status_code=503, content=content)
    return content
