"""
Service de Rate Limiting pour ChantierPro Auth.

Fenetres fixes par (identifiant, classe d'operation):
- identifiant = "{ip}:{user_agent[:50]}"
- la fenetre demarre a la premiere requete et se termine a reset_time
- les requetes refusees n'incrementent pas le compteur

Le compare-and-increment est atomique:
- Redis: un script Lua unique (un seul aller-retour)
- Memoire: section critique protegee par un threading.Lock
  (valable uniquement en mono-instance)

Si Redis echoue en cours de route, le service bascule sur la memoire
et logge un warning.

Detection de motifs d'attaque (AttackPatternDetector): plus de 3 tentatives
en 30 secondes, ou plus de 10 tentatives dans l'historique suivi.
"""
import logging
import math
import threading
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Tuple

import redis

from app.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

KEY_PREFIX = "ratelimit"
DEFAULT_IP = "127.0.0.1"
USER_AGENT_FINGERPRINT_LENGTH = 50

MINUTE_MS = 60 * 1000


# =============================================================================
# Configuration des limites
# =============================================================================

class RateLimitType(str, Enum):
    """Classes d'operations soumises au rate limiting"""
    AUTH = "AUTH"
    GENERAL = "GENERAL"
    UPLOAD = "UPLOAD"
    API_READ = "API_READ"
    API_WRITE = "API_WRITE"
    FINANCIAL = "FINANCIAL"
    DEFAULT = "DEFAULT"


@dataclass(frozen=True)
class RateLimitRule:
    """Nombre max de requetes par fenetre fixe"""
    max_requests: int
    window_ms: int


_COMMON_RULES: Dict[RateLimitType, RateLimitRule] = {
    RateLimitType.UPLOAD: RateLimitRule(10, MINUTE_MS),
    RateLimitType.API_READ: RateLimitRule(100, MINUTE_MS),
    RateLimitType.API_WRITE: RateLimitRule(20, MINUTE_MS),
    RateLimitType.FINANCIAL: RateLimitRule(5, MINUTE_MS),
    RateLimitType.DEFAULT: RateLimitRule(60, MINUTE_MS),
}

DEVELOPMENT_RULES: Dict[RateLimitType, RateLimitRule] = {
    RateLimitType.AUTH: RateLimitRule(5, 15 * MINUTE_MS),
    RateLimitType.GENERAL: RateLimitRule(20, 5 * MINUTE_MS),
    **_COMMON_RULES,
}

PRODUCTION_RULES: Dict[RateLimitType, RateLimitRule] = {
    RateLimitType.AUTH: RateLimitRule(3, 15 * MINUTE_MS),
    RateLimitType.GENERAL: RateLimitRule(10, 5 * MINUTE_MS),
    **_COMMON_RULES,
}


def get_rate_limit_rules(is_production: bool) -> Dict[RateLimitType, RateLimitRule]:
    """Limites a appliquer selon l'environnement"""
    return PRODUCTION_RULES if is_production else DEVELOPMENT_RULES


# =============================================================================
# Identification du client
# =============================================================================

def get_client_ip(
    headers: Mapping[str, str],
    trusted_proxy_header: Optional[str] = None,
) -> str:
    """
    Determine l'IP du client.

    Ordre de priorite: header du proxy de confiance, X-Real-IP, premier
    element de X-Forwarded-For; 127.0.0.1 par defaut.

    Args:
        headers: Headers HTTP (insensibles a la casse)
        trusted_proxy_header: Header pose par le proxy de confiance

    Returns:
        Adresse IP
    """
    if trusted_proxy_header:
        trusted = headers.get(trusted_proxy_header)
        if trusted and trusted.strip():
            return trusted.strip()

    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    return DEFAULT_IP


def build_identifier(ip: str, user_agent: Optional[str]) -> str:
    """Identifiant de rate limiting: IP + empreinte tronquee du User-Agent"""
    return f"{ip}:{(user_agent or 'unknown')[:USER_AGENT_FINGERPRINT_LENGTH]}"


def build_key(identifier: str, limit_type: RateLimitType) -> str:
    """Cle de stockage d'une fenetre"""
    return f"{KEY_PREFIX}:{identifier}:{limit_type.value}"


# =============================================================================
# Resultat
# =============================================================================

@dataclass
class RateLimitResult:
    """
    Resultat d'une verification.

    Attributes:
        allowed: Requete autorisee
        limit: Nombre max de requetes de la fenetre
        remaining: Requetes restantes dans la fenetre
        reset_time: Fin de la fenetre (epoch en millisecondes)
        retry_after: Secondes avant reset (0 si autorise)
        suspicious: Motif d'attaque detecte pour cet identifiant
    """
    allowed: bool
    limit: int
    remaining: int
    reset_time: int
    retry_after: int = 0
    limit_type: RateLimitType = RateLimitType.DEFAULT
    suspicious: bool = False

    def headers(self) -> Dict[str, str]:
        """Headers X-RateLimit-* (et Retry-After si refuse)"""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_time / 1000)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
            headers["X-RateLimit-Type"] = self.limit_type.value
        return headers


# =============================================================================
# Stockage
# =============================================================================

class RateLimitBackend(Protocol):
    """Stockage des fenetres; chaque methode est atomique"""

    name: str

    def hit(self, key: str, max_requests: int, window_ms: int, now_ms: int) -> Tuple[bool, int, int]:
        """Retourne (autorise, compteur, reset_time)"""
        ...

    def peek(self, key: str, now_ms: int) -> Tuple[int, Optional[int]]:
        """Retourne (compteur, reset_time) sans incrementer"""
        ...

    def reset(self, key: str) -> None:
        ...

    def record_attempt(self, key: str, now_ms: int, horizon_ms: int) -> List[int]:
        """Ajoute une tentative et retourne l'historique dans l'horizon"""
        ...

    def keys(self) -> List[str]:
        ...


class MemoryRateLimitBackend:
    """
    Stockage en memoire protege par un verrou.

    Ne coordonne pas plusieurs instances: a reserver au mono-instance
    ou au mode degrade quand Redis est indisponible.
    """

    name = "memory"

    # Purge des fenetres et historiques expires au-dela de ce nombre de cles
    MAX_KEYS_BEFORE_PURGE = 10000

    def __init__(self):
        self._windows: Dict[str, Tuple[int, int]] = {}
        self._attempts: Dict[str, List[int]] = {}
        self._attempts_horizon_ms = 0
        self._lock = threading.Lock()

    def _purge_expired(self, now_ms: int) -> None:
        expired = [key for key, (_, reset) in self._windows.items() if reset <= now_ms]
        for key in expired:
            del self._windows[key]

        # Historique dont la tentative la plus recente est sortie de l'horizon
        stale = [
            key for key, history in self._attempts.items()
            if not history or now_ms - history[-1] >= self._attempts_horizon_ms
        ]
        for key in stale:
            del self._attempts[key]

    def hit(self, key: str, max_requests: int, window_ms: int, now_ms: int) -> Tuple[bool, int, int]:
        with self._lock:
            if len(self._windows) > self.MAX_KEYS_BEFORE_PURGE:
                self._purge_expired(now_ms)

            current = self._windows.get(key)
            if current is None or current[1] <= now_ms:
                reset_time = now_ms + window_ms
                self._windows[key] = (1, reset_time)
                return True, 1, reset_time

            count, reset_time = current
            if count >= max_requests:
                return False, count, reset_time

            self._windows[key] = (count + 1, reset_time)
            return True, count + 1, reset_time

    def peek(self, key: str, now_ms: int) -> Tuple[int, Optional[int]]:
        with self._lock:
            current = self._windows.get(key)
            if current is None or current[1] <= now_ms:
                return 0, None
            return current

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def record_attempt(self, key: str, now_ms: int, horizon_ms: int) -> List[int]:
        with self._lock:
            self._attempts_horizon_ms = max(self._attempts_horizon_ms, horizon_ms)
            if len(self._attempts) > self.MAX_KEYS_BEFORE_PURGE:
                self._purge_expired(now_ms)

            history = [t for t in self._attempts.get(key, []) if now_ms - t < horizon_ms]
            history.append(now_ms)
            self._attempts[key] = history
            return list(history)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._windows.keys())


# Compare-and-increment en un seul aller-retour
_HIT_SCRIPT = """
local count = tonumber(redis.call('HGET', KEYS[1], 'count') or '0')
local reset_time = tonumber(redis.call('HGET', KEYS[1], 'reset_time') or '0')
local max_requests = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local now_ms = tonumber(ARGV[3])
if count == 0 or reset_time <= now_ms then
  reset_time = now_ms + window_ms
  redis.call('HSET', KEYS[1], 'count', 1, 'reset_time', reset_time)
  redis.call('PEXPIRE', KEYS[1], window_ms)
  return {1, 1, reset_time}
end
if count >= max_requests then
  return {0, count, reset_time}
end
count = redis.call('HINCRBY', KEYS[1], 'count', 1)
return {1, count, reset_time}
"""


class RedisRateLimitBackend:
    """Stockage Redis partage entre instances"""

    name = "redis"

    def __init__(self, client: redis.Redis):
        self.client = client
        self._hit_script = client.register_script(_HIT_SCRIPT)

    def hit(self, key: str, max_requests: int, window_ms: int, now_ms: int) -> Tuple[bool, int, int]:
        allowed, count, reset_time = self._hit_script(
            keys=[key],
            args=[max_requests, window_ms, now_ms],
        )
        return bool(int(allowed)), int(count), int(reset_time)

    def peek(self, key: str, now_ms: int) -> Tuple[int, Optional[int]]:
        values = self.client.hgetall(key)
        if not values:
            return 0, None
        reset_time = int(values.get("reset_time", 0))
        if reset_time <= now_ms:
            return 0, None
        return int(values.get("count", 0)), reset_time

    def reset(self, key: str) -> None:
        self.client.delete(key)

    def record_attempt(self, key: str, now_ms: int, horizon_ms: int) -> List[int]:
        pipe = self.client.pipeline(transaction=True)
        pipe.zadd(key, {f"{now_ms}:{uuid.uuid4().hex[:8]}": now_ms})
        pipe.zremrangebyscore(key, 0, now_ms - horizon_ms)
        pipe.zrange(key, 0, -1, withscores=True)
        pipe.pexpire(key, horizon_ms)
        results = pipe.execute()
        return [int(score) for _, score in results[2]]

    def keys(self) -> List[str]:
        return [
            key for key in self.client.scan_iter(match=f"{KEY_PREFIX}:*", count=500)
            if not key.startswith(f"{KEY_PREFIX}:attempts:")
        ]


# =============================================================================
# Detection de motifs d'attaque
# =============================================================================

class AttackPatternDetector:
    """
    Classe un identifiant comme suspect.

    Le resultat alimente un blocage externe; aucun blocage dur n'est
    applique ici.
    """

    RAPID_WINDOW_MS = 30 * 1000
    RAPID_THRESHOLD = 3
    TOTAL_THRESHOLD = 10

    def __init__(self, backend: RateLimitBackend, history_ms: int = 15 * MINUTE_MS):
        self.backend = backend
        self.history_ms = history_ms

    @classmethod
    def is_attack_pattern(cls, attempts: List[int], now_ms: int) -> bool:
        """
        Args:
            attempts: Horodatages (ms) des tentatives suivies
            now_ms: Instant courant (ms)

        Returns:
            True si plus de 3 tentatives en 30s ou plus de 10 au total
        """
        recent = [t for t in attempts if now_ms - t < cls.RAPID_WINDOW_MS]
        if len(recent) > cls.RAPID_THRESHOLD:
            return True
        return len(attempts) > cls.TOTAL_THRESHOLD

    def record_attempt(self, identifier: str, now_ms: int) -> bool:
        """Enregistre une tentative et retourne True si le motif est suspect"""
        attempts = self.backend.record_attempt(
            f"{KEY_PREFIX}:attempts:{identifier}", now_ms, self.history_ms
        )
        suspicious = self.is_attack_pattern(attempts, now_ms)
        if suspicious:
            logger.warning(
                f"Motif d'attaque detecte pour {identifier} "
                f"({len(attempts)} tentatives suivies)"
            )
        return suspicious


# =============================================================================
# Service
# =============================================================================

def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter:
    """
    Rate limiter a fenetres fixes.

    Args:
        rules: Limites par classe d'operation
        backend: Stockage principal (Redis) ou None pour la memoire seule
        clock: Horloge en millisecondes (injectable pour les tests)
    """

    def __init__(
        self,
        rules: Dict[RateLimitType, RateLimitRule],
        backend: Optional[RateLimitBackend] = None,
        clock: Callable[[], int] = _now_ms,
    ):
        self.rules = rules
        self.memory = MemoryRateLimitBackend()
        self.backend = backend or self.memory
        self.clock = clock
        self.detector = AttackPatternDetector(
            self.backend,
            history_ms=rules[RateLimitType.AUTH].window_ms,
        )

    def _rule(self, limit_type: RateLimitType) -> RateLimitRule:
        return self.rules.get(limit_type, self.rules[RateLimitType.DEFAULT])

    def _hit(self, key: str, rule: RateLimitRule, now_ms: int) -> Tuple[bool, int, int]:
        if self.backend is self.memory:
            return self.memory.hit(key, rule.max_requests, rule.window_ms, now_ms)
        try:
            return self.backend.hit(key, rule.max_requests, rule.window_ms, now_ms)
        except redis.RedisError as e:
            logger.warning(f"Erreur Redis dans le rate limiter, bascule en memoire: {e}")
            return self.memory.hit(key, rule.max_requests, rule.window_ms, now_ms)

    def check(self, identifier: str, limit_type: RateLimitType = RateLimitType.DEFAULT) -> RateLimitResult:
        """
        Verifie et consomme une requete pour cet identifiant.

        Args:
            identifier: Identifiant client (IP + User-Agent)
            limit_type: Classe d'operation

        Returns:
            RateLimitResult
        """
        rule = self._rule(limit_type)
        now_ms = self.clock()
        key = build_key(identifier, limit_type)

        allowed, count, reset_time = self._hit(key, rule, now_ms)

        suspicious = False
        if limit_type == RateLimitType.AUTH:
            suspicious = self._record_attempt(identifier, now_ms)

        if not allowed:
            retry_after = max(0, math.ceil((reset_time - now_ms) / 1000))
            logger.info(f"Rate limit {limit_type.value} depasse pour {identifier}")
            return RateLimitResult(
                allowed=False,
                limit=rule.max_requests,
                remaining=0,
                reset_time=reset_time,
                retry_after=retry_after,
                limit_type=limit_type,
                suspicious=suspicious,
            )

        return RateLimitResult(
            allowed=True,
            limit=rule.max_requests,
            remaining=max(0, rule.max_requests - count),
            reset_time=reset_time,
            limit_type=limit_type,
            suspicious=suspicious,
        )

    def _record_attempt(self, identifier: str, now_ms: int) -> bool:
        try:
            return self.detector.record_attempt(identifier, now_ms)
        except redis.RedisError as e:
            logger.warning(f"Erreur Redis dans la detection d'attaque: {e}")
            return False

    def get_count(self, identifier: str, limit_type: RateLimitType) -> int:
        """Compteur courant de la fenetre (0 si expiree ou absente)"""
        count, _ = self.backend.peek(build_key(identifier, limit_type), self.clock())
        return count

    def reset(self, identifier: str, limit_type: RateLimitType) -> None:
        """Reinitialise la fenetre d'un identifiant"""
        key = build_key(identifier, limit_type)
        self.backend.reset(key)
        if self.backend is not self.memory:
            self.memory.reset(key)

    def get_stats(self) -> Dict[str, object]:
        """Statistiques de monitoring: nombre de fenetres par classe"""
        keys = self.backend.keys()
        keys_by_type: Dict[str, int] = {limit_type.value: 0 for limit_type in RateLimitType}
        for key in keys:
            suffix = key.rsplit(":", 1)[-1]
            if suffix in keys_by_type:
                keys_by_type[suffix] += 1
        return {
            "backend": self.backend.name,
            "total_keys": len(keys),
            "keys_by_type": keys_by_type,
        }
