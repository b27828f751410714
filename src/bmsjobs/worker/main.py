"""Worker entry point and JobRunner.

The JobRunner owns no business logic. It:
- keeps one ScheduledJob per tick type
- runs each due tick in its own database session
- logs and survives tick failures (the next tick starts from scratch)
- runs ticks that write monitored entities one at a time, transitions first
- runs an independent timer loop per tick until shutdown (SIGTERM/SIGINT)

Ticks are replayable in tests: inject a FixedClock and call run_once() or
run_due() without waiting on wall-clock time.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any, NoReturn

from bmsjobs.core.clock import Clock, SystemClock
from bmsjobs.worker.handlers import JobContext
from bmsjobs.worker.scheduler import ENTITY_JOB_TYPES, JobType, ScheduledJob, build_schedules

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from bmsjobs.core.config import Settings
    from bmsjobs.services.dispatcher import Dispatcher

logger = logging.getLogger(__name__)

# Type alias for job handlers
JobHandler = Callable[["AsyncSession", JobContext], Coroutine[Any, Any, dict[str, Any] | None]]


class JobRunner:
    """Runs the scheduled ticks against a session factory.

    Example:
        runner = JobRunner(session_factory, FixedClock(now), settings, dispatcher)
        register_default_handlers(runner)
        await runner.run_once(JobType.REMINDER_SCAN)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock,
        settings: Settings,
        dispatcher: Dispatcher,
        schedules: list[ScheduledJob] | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock
        self.settings = settings
        self.context = JobContext(clock=clock, settings=settings, dispatcher=dispatcher)
        self.schedules = schedules if schedules is not None else build_schedules(settings.schedules)
        self._handlers: dict[JobType, JobHandler] = {}
        self._shutdown_event = asyncio.Event()
        self._entity_lock = asyncio.Lock()
        self.ticks_completed = 0
        self.ticks_failed = 0

    def register_handler(self, job_type: JobType, handler: JobHandler) -> None:
        """Register the handler for a tick type."""
        self._handlers[job_type] = handler
        logger.debug("Registered handler for job_type=%s", job_type.value)

    def schedule_for(self, job_type: JobType) -> ScheduledJob | None:
        for schedule in self.schedules:
            if schedule.job_type == job_type:
                return schedule
        return None

    async def run_once(self, job_type: JobType) -> dict[str, Any] | None:
        """Run one tick now.

        Returns:
            The handler's result, or None if the tick failed.

        Raises:
            ValueError: If no handler is registered for the job type.
        """
        handler = self._handlers.get(job_type)
        if handler is None:
            msg = f"No handler registered for job_type={job_type.value}"
            raise ValueError(msg)

        started = self.clock.now()
        schedule = self.schedule_for(job_type)
        if schedule is not None:
            schedule.last_run = started

        lock = self._entity_lock if job_type in ENTITY_JOB_TYPES else contextlib.nullcontext()
        try:
            async with lock, self.session_factory() as session:
                result = await handler(session, self.context)
        except Exception as e:
            self.ticks_failed += 1
            logger.exception("Tick failed: job_type=%s, error=%s", job_type.value, e)
            return None

        self.ticks_completed += 1
        logger.info("Tick complete: job_type=%s, result=%s", job_type.value, result)
        return result

    async def run_due(self) -> dict[JobType, dict[str, Any] | None]:
        """Run every enabled tick that is due and has a handler, in schedule order."""
        now = self.clock.now()
        results: dict[JobType, dict[str, Any] | None] = {}
        for schedule in self.schedules:
            if schedule.is_due(now) and schedule.job_type in self._handlers:
                results[schedule.job_type] = await self.run_once(schedule.job_type)
        return results

    async def run(self) -> None:
        """Run an independent loop per enabled schedule until stop() is called."""
        loops = [
            asyncio.create_task(self._run_schedule_loop(schedule), name=schedule.job_type.value)
            for schedule in self.schedules
            if schedule.enabled and schedule.job_type in self._handlers
        ]
        logger.info(
            "JobRunner starting: schedules=%s",
            [f"{s.job_type.value}/{int(s.interval.total_seconds())}s" for s in self.schedules if s.enabled],
        )
        try:
            await asyncio.gather(*loops)
        finally:
            logger.info(
                "JobRunner stopped: ticks_completed=%d, ticks_failed=%d",
                self.ticks_completed,
                self.ticks_failed,
            )

    async def stop(self) -> None:
        """Request graceful shutdown; running ticks finish first."""
        logger.info("JobRunner shutdown requested")
        self._shutdown_event.set()

    def _waits_for_earlier(self, schedule: ScheduledJob, now: datetime) -> bool:
        """True while an entity tick ahead of `schedule` is due but not started."""
        if schedule.job_type not in ENTITY_JOB_TYPES:
            return False
        for earlier in self.schedules:
            if earlier is schedule:
                return False
            if (
                earlier.job_type in ENTITY_JOB_TYPES
                and earlier.job_type in self._handlers
                and earlier.is_due(now)
            ):
                return True
        return False

    async def _run_schedule_loop(self, schedule: ScheduledJob) -> None:
        while not self._shutdown_event.is_set():
            now = self.clock.now()
            if schedule.is_due(now) and not self._waits_for_earlier(schedule, now):
                await self.run_once(schedule.job_type)

            # Wait for the next run (uses wait_for to allow shutdown)
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=max(schedule.seconds_until_due(self.clock.now()), 1.0),
                )


def register_default_handlers(runner: JobRunner) -> None:
    """Register the handler of every tick type."""
    from bmsjobs.worker.handlers.notification import dispatch_notifications_handler
    from bmsjobs.worker.handlers.reminders import reminder_scan_handler
    from bmsjobs.worker.handlers.retention import notification_retention_handler
    from bmsjobs.worker.handlers.statistics import notification_statistics_handler
    from bmsjobs.worker.handlers.transitions import status_transitions_handler

    runner.register_handler(JobType.STATUS_TRANSITIONS, status_transitions_handler)
    runner.register_handler(JobType.REMINDER_SCAN, reminder_scan_handler)
    runner.register_handler(JobType.NOTIFICATION_DISPATCH, dispatch_notifications_handler)
    runner.register_handler(JobType.NOTIFICATION_STATISTICS, notification_statistics_handler)
    runner.register_handler(JobType.NOTIFICATION_RETENTION, notification_retention_handler)


# Global shutdown event for signal handlers
_shutdown_event: asyncio.Event | None = None


def _handle_shutdown(signum: int, _frame: object) -> None:
    """Handle shutdown signals gracefully."""
    logger.info("Shutdown signal received (signal=%d)", signum)
    if _shutdown_event is not None:
        _shutdown_event.get_loop().call_soon_threadsafe(_shutdown_event.set)


async def _async_main(settings: Settings, shutdown_event: asyncio.Event) -> None:
    """Build the runner from settings and run it until shutdown."""
    from bmsjobs.db import create_engine_from_settings, create_session_factory
    from bmsjobs.services.dispatcher import WebhookDispatcher, build_dispatcher

    engine = create_engine_from_settings(settings.database)
    dispatcher = build_dispatcher(settings)
    runner = JobRunner(create_session_factory(engine), SystemClock(), settings, dispatcher)
    register_default_handlers(runner)

    runner_task = asyncio.create_task(runner.run())
    try:
        await shutdown_event.wait()
        await runner.stop()
        try:
            await asyncio.wait_for(runner_task, timeout=30.0)
        except TimeoutError:
            logger.warning("JobRunner did not stop within timeout, forcing shutdown")
            runner_task.cancel()
    finally:
        if isinstance(dispatcher, WebhookDispatcher):
            await dispatcher.close()
        await engine.dispose()


def run() -> NoReturn:
    """Run the worker process.

    - Loads and validates settings from the environment
    - Sets up logging
    - Registers signal handlers for graceful shutdown
    - Runs the JobRunner until SIGTERM/SIGINT
    """
    from bmsjobs.core.settings import get_settings

    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    logger.info("Worker starting: environment=%s", settings.environment.value)

    async def _run_with_event() -> None:
        global _shutdown_event
        _shutdown_event = asyncio.Event()
        await _async_main(settings, _shutdown_event)

    try:
        asyncio.run(_run_with_event())
    except KeyboardInterrupt:
        logger.info("Worker interrupted")
    except Exception as e:
        logger.exception("Worker failed: %s", e)
        sys.exit(1)

    logger.info("Worker shutdown complete")
    sys.exit(0)


if __name__ == "__main__":
    run()
