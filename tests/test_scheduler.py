"""Tests for the periodic and on-demand sync scheduler."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from poisync.config import SyncConfig
from poisync.sync import (
    ServerError,
    SyncConnectionError,
    SyncEngine,
    SyncOutcome,
    SyncResult,
    SyncScheduler,
    SyncStatus,
)
from poisync.sync.constraints import NetworkType


def success() -> SyncOutcome:
    return SyncOutcome(status=SyncStatus.SUCCESS, result=SyncResult(message="ok"))


def failed(error) -> SyncOutcome:
    return SyncOutcome(status=SyncStatus.FAILED, errors=[error])


class FakeNetwork:
    """Network monitor returning scripted states, repeating the last one."""

    def __init__(self, *states: NetworkType):
        self.states = list(states) or [NetworkType.UNMETERED]

    async def current(self) -> NetworkType:
        if len(self.states) > 1:
            return self.states.pop(0)
        return self.states[0]


class FakePower:
    def __init__(self, low: bool = False):
        self.low = low

    async def battery_low(self) -> bool:
        return self.low


class BlockingSleep:
    """Records requested delays and never wakes up, so loops park after one pass."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.Event().wait()


async def settle(rounds: int = 20) -> None:
    """Let scheduled tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settings():
    return SyncConfig(
        interval_hours=6,
        retry_backoff_seconds=30.0,
        max_retries=3,
        constraint_poll_seconds=30.0,
        constraint_timeout_seconds=0.0,
    )


@pytest.fixture
def engine():
    """Create a mock engine whose sync always succeeds."""
    engine = MagicMock(spec=SyncEngine)
    engine.sync = AsyncMock(side_effect=lambda *a: success())
    return engine


def periodic_tasks() -> list[asyncio.Task]:
    return [
        t for t in asyncio.all_tasks()
        if t.get_name() == "poisync:sync_work" and not t.done()
    ]


class TestRegistration:
    """Tests for start/stop/restart/configure."""

    @pytest.mark.asyncio
    async def test_start_runs_immediately_then_sleeps(self, engine, settings):
        sleep = BlockingSleep()
        scheduler = SyncScheduler(engine, settings, FakeNetwork(), FakePower(), sleep)

        await scheduler.start(interval_hours=3)
        await settle()

        assert scheduler.is_active()
        engine.sync.assert_awaited_once()
        assert len(sleep.delays) == 1
        assert 2 * 3600 <= sleep.delays[0] <= 3 * 3600

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_registration(self, engine, settings):
        """Test that re-registering replaces the previous periodic job."""
        scheduler = SyncScheduler(engine, settings, FakeNetwork(), FakePower(), BlockingSleep())

        await scheduler.start(3, True)
        await settle()
        await scheduler.start(3, True)
        await settle()

        assert len(periodic_tasks()) == 1
        assert scheduler.is_active()
        assert settings.interval_hours == 3
        assert settings.only_wifi is True

        await scheduler.stop()
        assert periodic_tasks() == []

    @pytest.mark.asyncio
    async def test_stop(self, engine, settings):
        scheduler = SyncScheduler(engine, settings, FakeNetwork(), FakePower(), BlockingSleep())
        await scheduler.start()

        await scheduler.stop()

        assert not scheduler.is_active()

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self, engine, settings):
        scheduler = SyncScheduler(engine, settings, FakeNetwork(), FakePower(), BlockingSleep())

        await scheduler.stop()

        assert not scheduler.is_active()

    @pytest.mark.asyncio
    async def test_interval_is_clamped(self, engine, settings):
        scheduler = SyncScheduler(engine, settings, FakeNetwork(), FakePower(), BlockingSleep())

        await scheduler.start(interval_hours=48)
        assert settings.interval_hours == 24

        await scheduler.start(interval_hours=0)
        assert settings.interval_hours == 1

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_restart_follows_enabled(self, engine, settings):
        scheduler = SyncScheduler(engine, settings, FakeNetwork(), FakePower(), BlockingSleep())

        await scheduler.restart()
        assert scheduler.is_active()

        settings.enabled = False
        await scheduler.restart()
        assert not scheduler.is_active()

    @pytest.mark.asyncio
    async def test_configure(self, engine, settings):
        """Test that configure updates settings and re-registers."""
        scheduler = SyncScheduler(engine, settings, FakeNetwork(), FakePower(), BlockingSleep())
        await scheduler.start()

        await scheduler.configure(interval_hours=12, only_wifi=True)
        assert scheduler.is_active()
        assert settings.interval_hours == 12
        assert settings.only_wifi is True
        assert len(periodic_tasks()) == 1

        await scheduler.configure(enabled=False)
        assert not scheduler.is_active()
        assert periodic_tasks() == []

    @pytest.mark.asyncio
    async def test_configure_saves_settings(self, engine, settings):
        preferences = MagicMock()
        scheduler = SyncScheduler(
            engine, settings, FakeNetwork(), FakePower(), BlockingSleep(), preferences
        )

        await scheduler.configure(enabled=False, interval_hours=48)

        preferences.save.assert_called_once_with(settings)
        assert settings.interval_hours == 24
        assert not scheduler.is_active()

    @pytest.mark.asyncio
    async def test_periodic_loop_survives_engine_crash(self, settings):
        engine = MagicMock(spec=SyncEngine)
        engine.sync = AsyncMock(side_effect=RuntimeError("bug"))
        sleep = BlockingSleep()
        scheduler = SyncScheduler(engine, settings, FakeNetwork(), FakePower(), sleep)

        await scheduler.start()
        await settle()

        assert scheduler.is_active()
        assert len(sleep.delays) == 1

        await scheduler.stop()


class TestConstraints:
    """Tests for network and battery gating."""

    @pytest.mark.asyncio
    async def test_no_network_is_offline(self, engine, settings):
        """Test that unmet constraints are retried like a lost connection."""
        sleep = AsyncMock()
        scheduler = SyncScheduler(
            engine, settings, FakeNetwork(NetworkType.NONE), FakePower(), sleep
        )

        outcome = await scheduler.sync_now()

        assert outcome.status == SyncStatus.OFFLINE
        assert outcome.retryable
        assert outcome.message == "Sync constraints not met"
        assert [c.args[0] for c in sleep.await_args_list] == [30.0, 60.0, 120.0]
        engine.sync.assert_not_called()

    @pytest.mark.asyncio
    async def test_offline_retried_until_network_returns(self, engine, settings):
        sleep = AsyncMock()
        network = FakeNetwork(NetworkType.NONE, NetworkType.UNMETERED)
        scheduler = SyncScheduler(engine, settings, network, FakePower(), sleep)

        outcome = await scheduler.sync_now()

        assert outcome.ok
        engine.sync.assert_awaited_once()
        sleep.assert_awaited_once_with(30.0)

    @pytest.mark.asyncio
    async def test_waits_for_network(self, engine, settings):
        settings.constraint_timeout_seconds = 120.0
        sleep = AsyncMock()
        network = FakeNetwork(NetworkType.NONE, NetworkType.NONE, NetworkType.METERED)
        scheduler = SyncScheduler(engine, settings, network, FakePower(), sleep)

        outcome = await scheduler.sync_now()

        assert outcome.ok
        assert sleep.await_count == 2
        sleep.assert_awaited_with(30.0)

    @pytest.mark.asyncio
    async def test_sync_now_ignores_only_wifi_and_battery(self, engine, settings):
        settings.only_wifi = True
        scheduler = SyncScheduler(
            engine, settings, FakeNetwork(NetworkType.METERED), FakePower(low=True), AsyncMock()
        )

        outcome = await scheduler.sync_now()

        assert outcome.ok
        engine.sync.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_periodic_needs_unmetered_when_only_wifi(self, engine, settings):
        settings.only_wifi = True
        settings.max_retries = 0
        scheduler = SyncScheduler(
            engine, settings, FakeNetwork(NetworkType.METERED), FakePower(), BlockingSleep()
        )

        await scheduler.start()
        await settle()

        engine.sync.assert_not_called()
        assert scheduler.last_outcome.status == SyncStatus.OFFLINE

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_periodic_skips_on_low_battery(self, engine, settings):
        settings.max_retries = 0
        scheduler = SyncScheduler(
            engine, settings, FakeNetwork(), FakePower(low=True), BlockingSleep()
        )

        await scheduler.start()
        await settle()

        engine.sync.assert_not_called()

        await scheduler.stop()


class TestSyncNow:
    """Tests for sync_now and retries."""

    @pytest.mark.asyncio
    async def test_sync_now_returns_outcome(self, engine, settings):
        scheduler = SyncScheduler(engine, settings, FakeNetwork(), FakePower(), AsyncMock())

        outcome = await scheduler.sync_now()

        assert outcome.ok
        assert scheduler.last_outcome is outcome
        assert not scheduler.is_active()

    @pytest.mark.asyncio
    async def test_concurrent_sync_now_joins(self, settings):
        """Test that a second manual sync joins the one in flight."""
        gate = asyncio.Event()

        async def slow_sync(*args):
            await gate.wait()
            return success()

        engine = MagicMock(spec=SyncEngine)
        engine.sync = AsyncMock(side_effect=slow_sync)
        scheduler = SyncScheduler(engine, settings, FakeNetwork(), FakePower(), AsyncMock())

        first = asyncio.create_task(scheduler.sync_now())
        second = asyncio.create_task(scheduler.sync_now())
        await settle()

        assert scheduler.get_status()["running"] == ["sync_now"]

        gate.set()
        results = await asyncio.gather(first, second)

        assert results[0] is results[1]
        assert engine.sync.await_count == 1
        assert scheduler.get_status()["running"] == []

    @pytest.mark.asyncio
    async def test_sync_now_runs_beside_periodic(self, settings):
        """Test that a manual sync neither joins nor cancels periodic work."""
        periodic_gate = asyncio.Event()
        manual_gate = asyncio.Event()
        gates = [periodic_gate, manual_gate]

        async def gated_sync(*args):
            await gates.pop(0).wait()
            return success()

        engine = MagicMock(spec=SyncEngine)
        engine.sync = AsyncMock(side_effect=gated_sync)
        scheduler = SyncScheduler(engine, settings, FakeNetwork(), FakePower(), BlockingSleep())

        await scheduler.start()
        await settle()
        manual = asyncio.create_task(scheduler.sync_now())
        await settle()

        assert scheduler.get_status()["running"] == ["sync_now", "sync_work"]
        assert engine.sync.await_count == 2
        periodic_run = scheduler._work["sync_work"]
        assert not periodic_run.done()

        manual_gate.set()
        outcome = await manual

        assert outcome.ok
        assert not periodic_run.done()
        assert scheduler.get_status()["running"] == ["sync_work"]
        assert scheduler.is_active()

        periodic_gate.set()
        await settle()

        assert periodic_run.result().ok
        assert scheduler.get_status()["running"] == []

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_retries_transient_failure(self, settings):
        engine = MagicMock(spec=SyncEngine)
        engine.sync = AsyncMock(side_effect=[
            failed(SyncConnectionError("offline")),
            success(),
        ])
        sleep = AsyncMock()
        scheduler = SyncScheduler(engine, settings, FakeNetwork(), FakePower(), sleep)

        outcome = await scheduler.sync_now()

        assert outcome.ok
        assert engine.sync.await_count == 2
        sleep.assert_awaited_once_with(30.0)

    @pytest.mark.asyncio
    async def test_backoff_doubles_until_giving_up(self, settings):
        engine = MagicMock(spec=SyncEngine)
        engine.sync = AsyncMock(side_effect=lambda *a: failed(SyncConnectionError("down")))
        sleep = AsyncMock()
        scheduler = SyncScheduler(engine, settings, FakeNetwork(), FakePower(), sleep)

        outcome = await scheduler.sync_now()

        assert outcome.status == SyncStatus.FAILED
        assert engine.sync.await_count == 4
        assert [c.args[0] for c in sleep.await_args_list] == [30.0, 60.0, 120.0]

    @pytest.mark.asyncio
    async def test_permanent_failure_not_retried(self, settings):
        engine = MagicMock(spec=SyncEngine)
        engine.sync = AsyncMock(side_effect=lambda *a: failed(ServerError(403)))
        sleep = AsyncMock()
        scheduler = SyncScheduler(engine, settings, FakeNetwork(), FakePower(), sleep)

        outcome = await scheduler.sync_now()

        assert outcome.status == SyncStatus.FAILED
        assert engine.sync.await_count == 1
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_status(self, engine, settings):
        scheduler = SyncScheduler(engine, settings, FakeNetwork(), FakePower(), AsyncMock())

        await scheduler.sync_now()
        status = scheduler.get_status()

        assert status["active"] is False
        assert status["settings"]["interval_hours"] == 6
        assert status["last_run_at"] is not None
        assert status["last_outcome"]["status"] == "success"
