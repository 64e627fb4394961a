"""
Client Redis pour ChantierPro Auth
Stockage partage des fenetres de rate limiting (multi-instance)

Configuration via settings:
- REDIS_URL: URL de connexion Redis (vide = Redis desactive)
- REDIS_MAX_CONNECTIONS: Taille max du pool de connexions
- REDIS_SOCKET_TIMEOUT: Timeout socket en secondes
- REDIS_SOCKET_CONNECT_TIMEOUT: Timeout de connexion en secondes
"""
import logging
from typing import Optional

import redis
from redis.connection import ConnectionPool

from app.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

# Pool et client Redis globaux (singleton)
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Retourne le client Redis global utilisant le pool de connexions.

    Retourne None si Redis n'est pas configure ou indisponible au demarrage;
    le rate limiting bascule alors sur le stockage memoire.

    Returns:
        Client Redis ou None
    """
    global _redis_client, _redis_pool

    if _redis_client is not None:
        return _redis_client

    if not settings.REDIS_URL:
        logger.info("REDIS_URL non configure, Redis desactive")
        return None

    try:
        _redis_pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=settings.REDIS_SOCKET_CONNECT_TIMEOUT,
            decode_responses=True,
        )
        client = redis.Redis(connection_pool=_redis_pool)
        client.ping()
        _redis_client = client
        logger.info("Connexion Redis etablie via pool")
        return _redis_client

    except redis.RedisError as e:
        logger.warning(f"Impossible de se connecter a Redis: {e}")
        _redis_pool = None
        return None


def close_redis_client() -> None:
    """Ferme le client et le pool Redis"""
    global _redis_client, _redis_pool

    if _redis_client is not None:
        try:
            _redis_client.close()
        except redis.RedisError as e:
            logger.debug(f"Erreur fermeture client Redis: {e}")
        _redis_client = None

    if _redis_pool is not None:
        _redis_pool.disconnect()
        _redis_pool = None
