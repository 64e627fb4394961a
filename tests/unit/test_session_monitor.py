"""
Tests unitaires pour le moniteur d'extension de session.

L'horloge est injectee; les verifications sont appelees directement,
sans attendre les intervalles reels.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.client.session_monitor import SessionExtensionMonitor, SessionRenewalError

T0 = datetime(2026, 5, 4, 9, 0, tzinfo=timezone.utc)


class FakeClock:

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def renew():
    return AsyncMock(return_value=T0 + timedelta(days=30))


@pytest.fixture
def monitor(clock, renew):
    return SessionExtensionMonitor(renew=renew, on_warning=MagicMock(), clock=clock)


class TestActivity:

    def test_recognized_events(self, monitor, clock):
        clock.advance(minutes=10)

        assert monitor.record_activity("keypress") is True
        assert monitor.last_activity == clock.now

    def test_unknown_event_ignored(self, monitor, clock):
        clock.advance(minutes=10)

        assert monitor.record_activity("focus") is False
        assert monitor.last_activity == T0

    def test_inactive_after_threshold(self, monitor, clock):
        clock.advance(minutes=4, seconds=59)
        assert monitor.is_active() is True

        clock.advance(seconds=1)
        assert monitor.is_active() is False


class TestRenewal:

    async def test_no_session_no_renewal(self, monitor, renew):
        assert await monitor.check_renewal() is False
        renew.assert_not_awaited()

    async def test_active_user_is_renewed(self, monitor, renew):
        monitor.set_session(T0 + timedelta(minutes=20))

        assert await monitor.check_renewal() is True

        renew.assert_awaited_once()
        assert monitor.expires_at == T0 + timedelta(days=30)

    async def test_inactive_user_is_not_renewed(self, monitor, renew, clock):
        monitor.set_session(T0 + timedelta(hours=1))
        clock.advance(minutes=30)

        assert await monitor.check_renewal() is False
        renew.assert_not_awaited()

    async def test_renewal_failure_keeps_session(self, monitor, renew):
        renew.side_effect = SessionRenewalError("Timeout")
        monitor.set_session(T0 + timedelta(hours=1))

        assert await monitor.check_renewal() is False
        assert monitor.expires_at == T0 + timedelta(hours=1)

    async def test_force_renewal_counts_as_activity(self, monitor, renew, clock):
        monitor.set_session(T0 + timedelta(hours=1))
        clock.advance(minutes=30)

        assert await monitor.force_renewal() is True
        renew.assert_awaited_once()

    async def test_cleared_session_is_not_renewed(self, monitor, renew):
        monitor.set_session(T0 + timedelta(hours=1))
        monitor.clear_session()

        assert await monitor.force_renewal() is False
        renew.assert_not_awaited()


class TestExpirationWarning:

    async def test_warning_fires_once(self, monitor, clock):
        monitor.set_session(T0 + timedelta(minutes=20))

        assert await monitor.check_expiration() is False

        clock.advance(minutes=6)
        assert await monitor.check_expiration() is True
        monitor.on_warning.assert_called_once_with(timedelta(minutes=14))

        clock.advance(minutes=1)
        assert await monitor.check_expiration() is False
        assert monitor.on_warning.call_count == 1

    async def test_renewal_rearms_warning(self, monitor, clock):
        monitor.set_session(T0 + timedelta(minutes=10))
        assert await monitor.check_expiration() is True

        await monitor.check_renewal()

        assert monitor.warning_shown is False
        clock.advance(days=29, hours=23, minutes=50)
        assert await monitor.check_expiration() is True

    async def test_async_warning_callback(self, clock, renew):
        on_warning = AsyncMock()
        monitor = SessionExtensionMonitor(renew=renew, on_warning=on_warning, clock=clock)
        monitor.set_session(T0 + timedelta(minutes=5))

        await monitor.check_expiration()

        on_warning.assert_awaited_once()


class TestLifecycle:

    async def test_tasks_run_and_are_cancelled(self, clock, renew):
        monitor = SessionExtensionMonitor(
            renew=renew,
            clock=clock,
            renewal_interval=timedelta(milliseconds=10),
            warning_interval=timedelta(milliseconds=10),
        )
        monitor.set_session(T0 + timedelta(hours=1))

        async with monitor:
            assert monitor.running is True
            await asyncio.sleep(0.05)

        assert monitor.running is False
        assert renew.await_count >= 1

    async def test_start_is_idempotent(self, monitor):
        monitor.start()
        tasks = list(monitor._tasks)
        monitor.start()

        assert monitor._tasks == tasks
        await monitor.dispose()
        assert monitor._tasks == []

    async def test_unexpected_renewal_error_keeps_loop_alive(self, clock):
        renew = AsyncMock(side_effect=ValueError("reponse inattendue"))
        monitor = SessionExtensionMonitor(
            renew=renew,
            clock=clock,
            renewal_interval=timedelta(milliseconds=10),
            warning_interval=timedelta(hours=1),
        )
        monitor.set_session(T0 + timedelta(hours=1))

        monitor.start()
        await asyncio.sleep(0.08)

        assert renew.await_count >= 2
        assert all(not task.done() for task in monitor._tasks)
        await monitor.dispose()
        assert monitor.running is False

    async def test_failing_warning_callback_keeps_loop_alive(self, clock, renew):
        on_warning = MagicMock(side_effect=RuntimeError("affichage impossible"))
        monitor = SessionExtensionMonitor(
            renew=renew,
            on_warning=on_warning,
            clock=clock,
            renewal_interval=timedelta(hours=1),
            warning_interval=timedelta(milliseconds=10),
        )
        monitor.set_session(T0 + timedelta(minutes=5))

        async with monitor:
            await asyncio.sleep(0.05)
            assert on_warning.call_count >= 1
            assert all(not task.done() for task in monitor._tasks)

        assert monitor.running is False
