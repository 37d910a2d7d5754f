"""Cron-driven task runner with per-firing failure isolation.

Each registered task gets one timer (an asyncio task) that sleeps until the
next croniter fire time and then spawns the firing as its own tracked task.
Timers never await a firing, so a slow or failing handler cannot delay or
cancel the schedule of its own task or any other.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from croniter import croniter

from intelbot.core.errors import ValidationAppError
from intelbot.core.logging import elapsed_ms, log_duration

if TYPE_CHECKING:
    from intelbot.core.config import Settings
    from intelbot.services.container import ServiceContainer

logger = logging.getLogger(__name__)

TaskHandler = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class TaskOutcome:
    name: str
    succeeded: bool
    duration_ms: float
    finished_at: str
    error: str | None = None


@dataclass
class ScheduledTask:
    """Registry entry for one recurring job."""

    name: str
    schedule: str
    handler: TaskHandler
    enabled: bool = True
    successes: int = 0
    failures: int = 0
    last_outcome: TaskOutcome | None = None
    next_run_at: float | None = field(default=None, repr=False)


class TaskRunner:
    """Owns named recurring jobs and their timers.

    Args:
        clock: Wall-clock source in epoch seconds (croniter base time).
        sleep: Awaitable sleep used by timers.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._tasks: dict[str, ScheduledTask] = {}
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._inflight: set[asyncio.Task[TaskOutcome]] = set()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def tasks(self) -> dict[str, ScheduledTask]:
        return dict(self._tasks)

    def add_task(self, name: str, schedule: str, handler: TaskHandler, *, enabled: bool = True) -> ScheduledTask:
        """Register ``handler`` under ``name``, replacing any previous task.

        The previous timer is cancelled before the new one is installed. A
        firing already in flight for the old task runs to completion.

        Raises:
            ValidationAppError: ``schedule`` is not a valid cron expression.
        """

        if not croniter.is_valid(schedule):
            raise ValidationAppError(
                code="invalid_cron_expression",
                message=f"Invalid cron expression for task {name}: {schedule!r}",
                details={"task": name},
            )

        previous = self._timers.pop(name, None)
        if previous is not None:
            previous.cancel()
            logger.info("task.replaced", extra={"task": name})

        task = ScheduledTask(name=name, schedule=schedule, handler=handler, enabled=enabled)
        self._tasks[name] = task
        if self._running and enabled:
            self._timers[name] = self._start_timer(task)

        logger.info("task.added", extra={"task": name, "schedule": schedule, "enabled": enabled})
        return task

    def start(self) -> None:
        """Activate every enabled task's timer. Must run inside an event loop."""

        if self._running:
            logger.warning("task_runner.already_running")
            return

        self._running = True
        for task in self._tasks.values():
            if task.enabled:
                self._timers[task.name] = self._start_timer(task)
        logger.info("task_runner.started", extra={"task_count": len(self._timers)})

    def stop(self) -> None:
        """Cancel pending timers and clear the registry.

        Firings already executing are not interrupted; their outcome is still
        recorded and logged.
        """

        for timer in self._timers.values():
            timer.cancel()
        stopped = len(self._timers)
        self._timers.clear()
        self._tasks.clear()
        self._running = False
        logger.info("task_runner.stopped", extra={"task_count": stopped, "inflight": len(self._inflight)})

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight firings to finish (used on shutdown)."""

        if not self._inflight:
            return
        await asyncio.wait(set(self._inflight), timeout=timeout)

    async def run_task(self, name: str) -> TaskOutcome:
        """Execute one firing of ``name`` now and return its outcome.

        Raises:
            ValidationAppError: No task is registered under ``name``.
        """

        task = self._tasks.get(name)
        if task is None:
            raise ValidationAppError(
                code="task_not_found",
                message=f"Task not found: {name}",
                details={"task": name},
            )
        return await self._execute(task)

    async def _execute(self, task: ScheduledTask) -> TaskOutcome:
        started = time.perf_counter()
        logger.info("task.started", extra={"task": task.name})

        try:
            await task.handler()
        except Exception as exc:
            duration = elapsed_ms(started)
            outcome = TaskOutcome(
                name=task.name,
                succeeded=False,
                duration_ms=duration,
                finished_at=_iso(self._clock()),
                error=str(exc) or type(exc).__name__,
            )
            task.failures += 1
            task.last_outcome = outcome
            logger.error(
                "task.failed",
                extra={
                    "task": task.name,
                    "duration_ms": duration,
                    "error_type": type(exc).__name__,
                    "error": outcome.error,
                },
                exc_info=True,
            )
            return outcome

        duration = log_duration(logger, "task.completed", started, task=task.name)
        outcome = TaskOutcome(
            name=task.name,
            succeeded=True,
            duration_ms=duration,
            finished_at=_iso(self._clock()),
        )
        task.successes += 1
        task.last_outcome = outcome
        return outcome

    def _start_timer(self, task: ScheduledTask) -> asyncio.Task[None]:
        return asyncio.create_task(self._timer_loop(task), name=f"timer:{task.name}")

    async def _timer_loop(self, task: ScheduledTask) -> None:
        schedule = croniter(task.schedule, self._clock())
        while True:
            task.next_run_at = schedule.get_next(float)
            await self._sleep(max(0.0, task.next_run_at - self._clock()))
            self._spawn_firing(task)

    def _spawn_firing(self, task: ScheduledTask) -> None:
        firing = asyncio.create_task(self._execute(task), name=f"firing:{task.name}")
        self._inflight.add(firing)
        firing.add_done_callback(self._inflight.discard)

    def get_task_status(self) -> dict[str, Any]:
        tasks = {}
        for name, task in self._tasks.items():
            last = task.last_outcome
            tasks[name] = {
                "schedule": task.schedule,
                "enabled": task.enabled,
                "scheduled": name in self._timers,
                "next_run_at": _iso(task.next_run_at) if task.next_run_at else None,
                "successes": task.successes,
                "failures": task.failures,
                "last_outcome": None
                if last is None
                else {
                    "succeeded": last.succeeded,
                    "duration_ms": last.duration_ms,
                    "finished_at": last.finished_at,
                    "error": last.error,
                },
            }
        return {"is_running": self._running, "task_count": len(self._tasks), "tasks": tasks}


def _iso(epoch_seconds: float) -> str:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()


def register_default_tasks(runner: TaskRunner, services: ServiceContainer, settings: Settings) -> None:
    """Install the recurring monitoring jobs on ``runner``."""

    schedules = settings.scheduler
    defi_schedule = schedules.defi_monitoring or f"*/{settings.monitoring.update_interval_minutes} * * * *"

    async def gas_monitoring() -> None:
        await services.gas.update_gas_prices()

    async def market_data() -> None:
        results = await asyncio.gather(
            services.coingecko.update_top_cryptos(),
            services.coindesk.update_bitcoin_data(),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, Exception)]
        for failure in failures:
            logger.warning(
                "task.partial_failure",
                extra={"task": "market-data", "error_type": type(failure).__name__, "error": str(failure)},
            )
        if len(failures) == len(results):
            raise failures[0]

    async def defi_monitoring() -> None:
        await services.defi.update_all_protocols()

    async def network_monitoring() -> None:
        await services.network.scan_all_networks()

    async def health_check() -> None:
        status = await services.health.overall_status()
        if status["overall"] != "healthy":
            logger.warning(
                "health.degraded",
                extra={
                    "unhealthy": [
                        name for name, entry in status["services"].items() if entry.get("status") == "error"
                    ]
                },
            )

    runner.add_task("gas-monitoring", schedules.gas_monitoring, gas_monitoring)
    runner.add_task("market-data", schedules.market_data, market_data)
    runner.add_task("defi-monitoring", defi_schedule, defi_monitoring)
    runner.add_task("network-monitoring", schedules.network_monitoring, network_monitoring)
    runner.add_task("health-check", schedules.health_check, health_check)
