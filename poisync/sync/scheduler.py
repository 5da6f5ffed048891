"""Periodic and on-demand execution of the sync engine.

Work is identified by name. At most one task runs per name: asking for work
that is already in flight joins it instead of starting a second copy. The
periodic job and the manual "sync now" job have different names, so they may
overlap but never preempt each other.
"""

import asyncio
import logging
import random
from dataclasses import asdict
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from .constraints import NetworkMonitor, NetworkRequirement, PowerMonitor
from .models import SyncOutcome, SyncResult, SyncStatus

if TYPE_CHECKING:
    from ..config import SyncConfig
    from ..store import SyncPreferences
    from .engine import SyncEngine

logger = logging.getLogger(__name__)

MIN_INTERVAL_HOURS = 1
MAX_INTERVAL_HOURS = 24
SECONDS_PER_HOUR = 3600


class SyncScheduler:
    """Registers periodic sync work and runs one-off syncs on demand."""

    PERIODIC_WORK_NAME = "sync_work"
    SYNC_NOW_WORK_NAME = "sync_now"

    def __init__(
        self,
        engine: "SyncEngine",
        settings: "SyncConfig",
        network: NetworkMonitor | None = None,
        power: PowerMonitor | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        preferences: "SyncPreferences | None" = None,
    ):
        """Initialize the scheduler.

        Args:
            engine: Engine invoked once per wake-up.
            settings: Interval, network and retry settings. Updated in place
                by ``start`` and ``configure``.
            network: Source of current connectivity.
            power: Source of battery state.
            sleep: Awaitable sleep, replaceable in tests.
            preferences: Where ``configure`` saves changed settings.
        """
        self.engine = engine
        self.settings = settings
        self._network = network or NetworkMonitor()
        self._power = power or PowerMonitor()
        self._sleep = sleep
        self._preferences = preferences
        self._lock = asyncio.Lock()
        self._periodic: asyncio.Task | None = None
        self._work: dict[str, asyncio.Task] = {}
        self._last_outcome: SyncOutcome | None = None
        self._last_run_at: datetime | None = None

    # ==================== Registration ====================

    @staticmethod
    def _clamp_interval(hours: int) -> int:
        valid = max(MIN_INTERVAL_HOURS, min(MAX_INTERVAL_HOURS, int(hours)))
        if valid != hours:
            logger.warning(f"Sync interval adjusted from {hours} to {valid} hours")
        return valid

    async def start(
        self,
        interval_hours: int | None = None,
        only_wifi: bool | None = None,
    ) -> None:
        """Install the periodic registration, replacing any existing one."""
        async with self._lock:
            if interval_hours is not None:
                self.settings.interval_hours = interval_hours
            if only_wifi is not None:
                self.settings.only_wifi = only_wifi
            self.settings.interval_hours = self._clamp_interval(
                self.settings.interval_hours
            )

            await self._cancel_periodic()
            self._periodic = asyncio.create_task(
                self._periodic_loop(self.settings.interval_hours, self.settings.only_wifi),
                name=f"poisync:{self.PERIODIC_WORK_NAME}",
            )

        logger.info(
            f"Periodic sync started (every {self.settings.interval_hours}h, "
            f"only_wifi={self.settings.only_wifi})"
        )

    async def stop(self) -> None:
        """Cancel the periodic registration, if any."""
        async with self._lock:
            cancelled = await self._cancel_periodic()
        if cancelled:
            logger.info("Periodic sync stopped")

    async def restart(self) -> None:
        """Re-register with the current settings, or stop if disabled."""
        if self.settings.enabled:
            await self.start()
        else:
            await self.stop()

    async def configure(
        self,
        enabled: bool | None = None,
        interval_hours: int | None = None,
        only_wifi: bool | None = None,
    ) -> None:
        """Update settings, save them, and apply them to the periodic registration."""
        if enabled is not None:
            self.settings.enabled = enabled
        if interval_hours is not None:
            self.settings.interval_hours = self._clamp_interval(interval_hours)
        if only_wifi is not None:
            self.settings.only_wifi = only_wifi
        if self._preferences is not None:
            self._preferences.save(self.settings)
        await self.restart()

    def is_active(self) -> bool:
        """True while a periodic registration exists."""
        return self._periodic is not None and not self._periodic.done()

    async def _cancel_periodic(self) -> bool:
        task, self._periodic = self._periodic, None
        if task is None or task.done():
            return False

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return True

    # ==================== Execution ====================

    async def sync_now(self) -> SyncOutcome:
        """Run a sync immediately, outside the periodic schedule.

        Needs any connectivity, whatever ``only_wifi`` says. Joins a manual
        sync that is already in flight.
        """
        task = self._enqueue_unique(
            self.SYNC_NOW_WORK_NAME,
            NetworkRequirement.CONNECTED,
            require_battery=False,
        )
        return await asyncio.shield(task)

    def _enqueue_unique(
        self,
        name: str,
        requirement: NetworkRequirement,
        require_battery: bool,
    ) -> asyncio.Task:
        existing = self._work.get(name)
        if existing is not None and not existing.done():
            logger.debug(f"Work '{name}' already running, joining it")
            return existing

        task = asyncio.create_task(
            self._run_work(name, requirement, require_battery),
            name=f"poisync:{name}:run",
        )
        self._work[name] = task
        task.add_done_callback(lambda t: self._forget(name, t))
        return task

    def _forget(self, name: str, task: asyncio.Task) -> None:
        if self._work.get(name) is task:
            del self._work[name]

    async def _periodic_loop(self, interval_hours: int, only_wifi: bool) -> None:
        """Run a sync, then sleep one interval minus a random flex."""
        requirement = NetworkRequirement.for_settings(only_wifi)
        interval = interval_hours * SECONDS_PER_HOUR
        flex = min(interval_hours, 1) * SECONDS_PER_HOUR

        while True:
            try:
                task = self._enqueue_unique(
                    self.PERIODIC_WORK_NAME,
                    requirement,
                    require_battery=self.settings.require_battery_not_low,
                )
                await task
            except Exception as e:
                logger.error(f"Periodic sync error: {e}", exc_info=True)

            await self._sleep(interval - random.uniform(0, flex))

    async def _run_work(
        self,
        name: str,
        requirement: NetworkRequirement,
        require_battery: bool,
    ) -> SyncOutcome:
        """Run the engine under constraints, retrying transient failures.

        Unmet constraints count as a transient failure: the attempt ends
        OFFLINE and is retried with the same backoff as a lost connection.
        """
        backoff = self.settings.retry_backoff_seconds
        attempt = 0

        while True:
            if await self._wait_for_constraints(requirement, require_battery):
                outcome = await self.engine.sync()
            else:
                outcome = SyncOutcome(
                    status=SyncStatus.OFFLINE,
                    result=SyncResult(message="Sync constraints not met"),
                    timestamp=datetime.now(),
                )

            if outcome.ok or not outcome.retryable:
                break
            if attempt >= self.settings.max_retries:
                logger.warning(f"'{name}' giving up after {attempt + 1} attempts")
                break

            attempt += 1
            logger.warning(
                f"'{name}' failed transiently, retry {attempt}/"
                f"{self.settings.max_retries} in {backoff:.0f}s"
            )
            await self._sleep(backoff)
            backoff *= 2

        self._last_outcome = outcome
        self._last_run_at = datetime.now()
        logger.info(f"'{name}' finished: {outcome.status.value}")
        return outcome

    async def _unmet_constraint(
        self, requirement: NetworkRequirement, require_battery: bool
    ) -> str | None:
        """Return why the work may not run now, or None if it may."""
        network = await self._network.current()
        if not requirement.is_satisfied_by(network):
            return f"network is {network.value}, need {requirement.value}"
        if require_battery and await self._power.battery_low():
            return "battery low"
        return None

    async def _wait_for_constraints(
        self, requirement: NetworkRequirement, require_battery: bool
    ) -> bool:
        waited = 0.0
        while True:
            reason = await self._unmet_constraint(requirement, require_battery)
            if reason is None:
                return True
            if waited >= self.settings.constraint_timeout_seconds:
                logger.info(f"Sync deferred: {reason}")
                return False

            logger.debug(f"Waiting for constraints: {reason}")
            await self._sleep(self.settings.constraint_poll_seconds)
            waited += self.settings.constraint_poll_seconds

    # ==================== Status ====================

    @property
    def last_outcome(self) -> SyncOutcome | None:
        return self._last_outcome

    def get_status(self) -> dict[str, Any]:
        """Get current scheduler status.

        Returns:
            Dictionary with registration state, settings and last run.
        """
        return {
            "active": self.is_active(),
            "settings": asdict(self.settings),
            "running": sorted(name for name, t in self._work.items() if not t.done()),
            "last_run_at": self._last_run_at.isoformat() if self._last_run_at else None,
            "last_outcome": self._last_outcome.to_dict() if self._last_outcome else None,
        }
