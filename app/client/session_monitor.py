"""
Moniteur d'extension de session pour les clients ChantierPro.

Surveille l'activite de l'utilisateur et:
- renouvelle la session toutes les 30 minutes tant que l'utilisateur est actif
- previent une seule fois quand l'expiration approche (15 minutes)

Le moniteur est un objet a cycle de vie explicite: start() cree les taches
asyncio, dispose() les annule. Il s'utilise aussi en context manager:

    async with SessionExtensionMonitor(renew=client.renew, on_warning=notify) as monitor:
        monitor.set_session(expires_at)
        ...
"""
import asyncio
import inspect
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)

ACTIVITY_EVENTS = frozenset({
    "mousedown",
    "mousemove",
    "keypress",
    "scroll",
    "touchstart",
    "click",
})

INACTIVITY_THRESHOLD = timedelta(minutes=5)
RENEWAL_INTERVAL = timedelta(minutes=30)
WARNING_INTERVAL = timedelta(minutes=1)
WARNING_THRESHOLD = timedelta(minutes=15)


class SessionRenewalError(Exception):
    """Echec du renouvellement de session (reseau, session refusee)"""
    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionExtensionMonitor:
    """
    Moniteur d'activite et d'expiration de session.

    Args:
        renew: Callback async de renouvellement, retourne la nouvelle date
            d'expiration (ou None si inchangee); leve SessionRenewalError
        on_warning: Callback (sync ou async) appele avec le temps restant
        clock: Horloge UTC (injectable pour les tests)
        inactivity_threshold: Delai sans activite avant inactivite
        renewal_interval: Periode de renouvellement
        warning_interval: Periode de verification de l'expiration
        warning_threshold: Temps restant declenchant l'avertissement
    """

    def __init__(
        self,
        renew: Callable[[], Awaitable[Optional[datetime]]],
        on_warning: Optional[Callable[[timedelta], object]] = None,
        clock: Callable[[], datetime] = utc_now,
        inactivity_threshold: timedelta = INACTIVITY_THRESHOLD,
        renewal_interval: timedelta = RENEWAL_INTERVAL,
        warning_interval: timedelta = WARNING_INTERVAL,
        warning_threshold: timedelta = WARNING_THRESHOLD,
    ):
        self.renew = renew
        self.on_warning = on_warning
        self.clock = clock
        self.inactivity_threshold = inactivity_threshold
        self.renewal_interval = renewal_interval
        self.warning_interval = warning_interval
        self.warning_threshold = warning_threshold

        self.last_activity = clock()
        self.expires_at: Optional[datetime] = None
        self.warning_shown = False
        self._tasks: List[asyncio.Task] = []

    # =========================================================================
    # Session et activite
    # =========================================================================

    @property
    def has_session(self) -> bool:
        return self.expires_at is not None

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def set_session(self, expires_at: datetime) -> None:
        """Enregistre la session courante; re-arme l'avertissement si l'expiration recule"""
        if self.expires_at is None or expires_at > self.expires_at:
            self.warning_shown = False
        self.expires_at = expires_at

    def clear_session(self) -> None:
        """Plus de session (logout): renouvellement et avertissement inactifs"""
        self.expires_at = None
        self.warning_shown = False

    def record_activity(self, event: str = "click", now: Optional[datetime] = None) -> bool:
        """
        Enregistre un evenement utilisateur.

        Returns:
            True si l'evenement compte comme activite
        """
        if event not in ACTIVITY_EVENTS:
            return False
        self.last_activity = now or self.clock()
        return True

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """Activite recente (moins de inactivity_threshold)"""
        now = now or self.clock()
        return now - self.last_activity < self.inactivity_threshold

    # =========================================================================
    # Verifications
    # =========================================================================

    async def check_renewal(self, now: Optional[datetime] = None) -> bool:
        """
        Renouvelle la session si elle existe et que l'utilisateur est actif.

        Returns:
            True si le renouvellement a eu lieu
        """
        if not self.has_session or not self.is_active(now):
            return False

        try:
            new_expiry = await self.renew()
        except SessionRenewalError as e:
            logger.warning(f"Echec du renouvellement de session: {e}")
            return False

        if new_expiry is not None:
            self.set_session(new_expiry)
        logger.info("Session etendue automatiquement")
        return True

    async def force_renewal(self) -> bool:
        """Renouvelle immediatement (actions importantes), si une session existe"""
        if not self.has_session:
            return False
        self.last_activity = self.clock()
        return await self.check_renewal()

    async def check_expiration(self, now: Optional[datetime] = None) -> bool:
        """
        Previent une fois quand l'expiration est proche.

        Returns:
            True si l'avertissement vient d'etre emis
        """
        if not self.has_session or self.warning_shown:
            return False

        now = now or self.clock()
        remaining = self.expires_at - now
        if remaining >= self.warning_threshold:
            return False

        self.warning_shown = True
        logger.warning(f"Session expire dans {int(remaining.total_seconds() // 60)} minutes")

        if self.on_warning is not None:
            result = self.on_warning(remaining)
            if inspect.isawaitable(result):
                await result
        return True

    # =========================================================================
    # Cycle de vie
    # =========================================================================

    async def _every(self, interval: timedelta, check: Callable[[], Awaitable[bool]]) -> None:
        while True:
            await asyncio.sleep(interval.total_seconds())
            try:
                await check()
            except Exception:
                logger.exception(f"Echec de la verification periodique {getattr(check, '__name__', check)}")

    def start(self) -> None:
        """Demarre les taches periodiques (idempotent)"""
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._every(self.renewal_interval, self.check_renewal)),
            asyncio.create_task(self._every(self.warning_interval, self.check_expiration)),
        ]
        logger.debug("Moniteur de session demarre")

    async def dispose(self) -> None:
        """Annule et attend les taches periodiques"""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("Moniteur de session arrete")

    async def __aenter__(self) -> "SessionExtensionMonitor":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()
