"""Tests for the job runner and schedules.

Tests cover:
- Schedule construction and due checks
- Handler registration and single ticks
- Tick failure isolation
- run_due() ordering with an injected clock
- The timer loop and graceful shutdown
- Entity-writing ticks run one at a time, transitions first
- A full day of ticks against the database
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bmsjobs.core.config import ScheduleSettings
from bmsjobs.db.models import Lease, Notification
from bmsjobs.db.models.base import LeaseStatus, NotificationStatus
from bmsjobs.services.recipients import RecipientDirectory
from bmsjobs.worker.handlers import JobContext
from bmsjobs.worker.main import JobRunner, register_default_handlers
from bmsjobs.worker.scheduler import JobType, ScheduledJob, build_schedules
from tests.factories import create_lease, create_staff_member

NOW = datetime(2026, 3, 1, 8, 0, tzinfo=UTC)


class TestScheduledJob:
    """Tests for ScheduledJob due checks."""

    def test_never_run_is_due(self):
        job = ScheduledJob(job_type=JobType.REMINDER_SCAN, interval=timedelta(days=1))

        assert job.is_due(NOW)
        assert job.seconds_until_due(NOW) == 0.0

    def test_due_after_interval(self):
        job = ScheduledJob(
            job_type=JobType.NOTIFICATION_DISPATCH,
            interval=timedelta(seconds=30),
            last_run=NOW,
        )

        assert not job.is_due(NOW + timedelta(seconds=29))
        assert job.seconds_until_due(NOW + timedelta(seconds=20)) == 10.0
        assert job.is_due(NOW + timedelta(seconds=30))

    def test_disabled_never_due(self):
        job = ScheduledJob(
            job_type=JobType.NOTIFICATION_RETENTION,
            interval=timedelta(days=1),
            enabled=False,
        )

        assert not job.is_due(NOW)


class TestBuildSchedules:
    """Tests for build_schedules()."""

    def test_default_order_and_intervals(self):
        schedules = build_schedules(ScheduleSettings())

        assert [(s.job_type, s.interval) for s in schedules] == [
            (JobType.STATUS_TRANSITIONS, timedelta(days=1)),
            (JobType.REMINDER_SCAN, timedelta(days=1)),
            (JobType.NOTIFICATION_DISPATCH, timedelta(seconds=30)),
            (JobType.NOTIFICATION_STATISTICS, timedelta(hours=1)),
            (JobType.NOTIFICATION_RETENTION, timedelta(days=1)),
        ]
        assert all(s.enabled for s in schedules)

    def test_zero_interval_disables(self):
        schedules = build_schedules(ScheduleSettings(statistics=0))

        disabled = [s.job_type for s in schedules if not s.enabled]
        assert disabled == [JobType.NOTIFICATION_STATISTICS]


class TestJobRunner:
    """Tests for JobRunner with stub handlers."""

    @pytest.fixture
    def runner(self, session_factory, clock, settings, dispatcher):
        return JobRunner(session_factory, clock, settings, dispatcher)

    @pytest.mark.asyncio
    async def test_run_once_without_handler(self, runner):
        with pytest.raises(ValueError, match="No handler registered"):
            await runner.run_once(JobType.REMINDER_SCAN)

    @pytest.mark.asyncio
    async def test_run_once_calls_handler(self, runner, clock):
        handler = AsyncMock(return_value={"purged": 0})
        runner.register_handler(JobType.NOTIFICATION_RETENTION, handler)

        result = await runner.run_once(JobType.NOTIFICATION_RETENTION)

        assert result == {"purged": 0}
        session, context = handler.call_args.args
        assert isinstance(session, AsyncSession)
        assert isinstance(context, JobContext)
        assert context.clock is clock
        assert runner.schedule_for(JobType.NOTIFICATION_RETENTION).last_run == clock.now()
        assert runner.ticks_completed == 1

    @pytest.mark.asyncio
    async def test_failed_tick_is_contained(self, runner):
        runner.register_handler(
            JobType.STATUS_TRANSITIONS,
            AsyncMock(side_effect=RuntimeError("database went away")),
        )
        runner.register_handler(JobType.REMINDER_SCAN, AsyncMock(return_value={"lease": {}}))

        results = await runner.run_due()

        assert results == {
            JobType.STATUS_TRANSITIONS: None,
            JobType.REMINDER_SCAN: {"lease": {}},
        }
        assert runner.ticks_failed == 1
        assert runner.ticks_completed == 1

    @pytest.mark.asyncio
    async def test_run_due_follows_clock(self, runner, clock):
        for job_type in JobType:
            runner.register_handler(job_type, AsyncMock(return_value={}))

        first = await runner.run_due()
        again = await runner.run_due()
        clock.advance(seconds=30)
        after_30s = await runner.run_due()
        clock.advance(hours=1)
        after_1h = await runner.run_due()

        assert list(first) == list(JobType)
        assert again == {}
        assert list(after_30s) == [JobType.NOTIFICATION_DISPATCH]
        assert list(after_1h) == [JobType.NOTIFICATION_DISPATCH, JobType.NOTIFICATION_STATISTICS]

    @pytest.mark.asyncio
    async def test_run_until_stopped(self, session_factory, clock, settings, dispatcher):
        schedules = [ScheduledJob(JobType.NOTIFICATION_STATISTICS, timedelta(hours=1))]
        runner = JobRunner(session_factory, clock, settings, dispatcher, schedules=schedules)
        handler = AsyncMock(return_value={})
        runner.register_handler(JobType.NOTIFICATION_STATISTICS, handler)

        task = asyncio.create_task(runner.run())
        for _ in range(100):
            if runner.ticks_completed:
                break
            await asyncio.sleep(0.01)
        await runner.stop()
        await asyncio.wait_for(task, timeout=5)

        assert handler.await_count == 1

    @pytest.mark.asyncio
    async def test_entity_ticks_never_overlap(self, runner):
        events = []

        def recording(name):
            async def handler(session, context):
                events.append(f"{name} start")
                await asyncio.sleep(0.02)
                events.append(f"{name} end")
                return {}

            return handler

        runner.register_handler(JobType.REMINDER_SCAN, recording("scan"))
        runner.register_handler(JobType.STATUS_TRANSITIONS, recording("transitions"))

        await asyncio.gather(
            runner.run_once(JobType.REMINDER_SCAN),
            runner.run_once(JobType.STATUS_TRANSITIONS),
        )

        assert events == ["scan start", "scan end", "transitions start", "transitions end"]

    @pytest.mark.asyncio
    async def test_other_ticks_run_alongside_entity_ticks(self, runner):
        events = []
        release = asyncio.Event()

        async def scan(session, context):
            events.append("scan start")
            await release.wait()
            events.append("scan end")
            return {}

        async def dispatch(session, context):
            events.append("dispatch")
            release.set()
            return {}

        runner.register_handler(JobType.REMINDER_SCAN, scan)
        runner.register_handler(JobType.NOTIFICATION_DISPATCH, dispatch)

        await asyncio.wait_for(
            asyncio.gather(
                runner.run_once(JobType.REMINDER_SCAN),
                runner.run_once(JobType.NOTIFICATION_DISPATCH),
            ),
            timeout=5,
        )

        assert events == ["scan start", "dispatch", "scan end"]

    def test_reminder_scan_waits_for_due_transitions(self, runner, clock):
        for job_type in JobType:
            runner.register_handler(job_type, AsyncMock(return_value={}))
        transitions = runner.schedule_for(JobType.STATUS_TRANSITIONS)
        scan = runner.schedule_for(JobType.REMINDER_SCAN)

        assert runner._waits_for_earlier(scan, clock.now())
        assert not runner._waits_for_earlier(transitions, clock.now())
        assert not runner._waits_for_earlier(
            runner.schedule_for(JobType.NOTIFICATION_DISPATCH), clock.now()
        )

        transitions.last_run = clock.now()
        assert not runner._waits_for_earlier(scan, clock.now())

    @pytest.mark.asyncio
    async def test_scan_loop_lets_transitions_go_first(
        self, session_factory, clock, settings, dispatcher
    ):
        transitions = ScheduledJob(JobType.STATUS_TRANSITIONS, timedelta(days=1))
        scan = ScheduledJob(JobType.REMINDER_SCAN, timedelta(days=1))
        runner = JobRunner(
            session_factory, clock, settings, dispatcher, schedules=[transitions, scan]
        )
        order = []

        def recording(name):
            async def handler(session, context):
                order.append(name)
                return {}

            return handler

        runner.register_handler(JobType.REMINDER_SCAN, recording("scan"))
        runner.register_handler(JobType.STATUS_TRANSITIONS, recording("transitions"))

        # the scan loop gets the event loop first
        loops = [
            asyncio.create_task(runner._run_schedule_loop(scan)),
            asyncio.create_task(runner._run_schedule_loop(transitions)),
        ]
        for _ in range(300):
            if runner.ticks_completed == 2:
                break
            await asyncio.sleep(0.01)
        await runner.stop()
        await asyncio.wait_for(asyncio.gather(*loops), timeout=5)

        assert order == ["transitions", "scan"]

    def test_register_default_handlers(self, runner):
        register_default_handlers(runner)

        assert set(runner._handlers) == set(JobType)


class TestJobRunnerEndToEnd:
    """One morning of ticks against the test database."""

    @pytest.mark.asyncio
    async def test_transition_remind_and_send(
        self, session, session_factory, clock, settings, today, dispatcher
    ):
        ending = create_lease(today, days_until_end=30)
        ended = create_lease(today, days_until_end=-1)
        session.add_all([ending, ended, create_staff_member("manager@example.com")])
        await session.commit()

        runner = JobRunner(session_factory, clock, settings, dispatcher)
        register_default_handlers(runner)
        results = await runner.run_due()

        assert list(results) == list(JobType)
        assert results[JobType.STATUS_TRANSITIONS]["lease"]["transitioned"] == 2
        assert results[JobType.REMINDER_SCAN]["lease"]["30d"]["notifications"] == 2
        assert results[JobType.NOTIFICATION_DISPATCH]["sent"] == 2
        assert results[JobType.NOTIFICATION_STATISTICS]["sent"] == 2
        assert results[JobType.NOTIFICATION_RETENTION]["purged"] == 0
        assert sorted(dispatcher.recipients) == ["manager@example.com", "tenant@example.com"]

        async with session_factory() as check:
            statuses = dict(
                (await check.execute(select(Lease.lease_number, Lease.status))).all()
            )
            assert statuses == {
                ending.lease_number: LeaseStatus.EXPIRING_SOON,
                ended.lease_number: LeaseStatus.EXPIRED,
            }
            sent = (await check.execute(select(Notification.status))).scalars().all()
            assert sent == [NotificationStatus.SENT, NotificationStatus.SENT]

        # a day later nothing new is reminded
        clock.advance(days=1)
        results = await runner.run_due()
        assert results[JobType.REMINDER_SCAN]["lease"]["30d"]["matched"] == 0
        assert len(dispatcher.calls) == 2

    @pytest.mark.asyncio
    async def test_scan_and_transition_on_the_same_day(
        self, session, session_factory, clock, settings, today, dispatcher
    ):
        """The 60-day reminder and ACTIVE -> EXPIRING_SOON land on the same lease."""
        lease = create_lease(today, days_until_end=60)
        session.add_all([lease, create_staff_member("manager@example.com")])
        await session.commit()

        runner = JobRunner(session_factory, clock, settings, dispatcher)
        register_default_handlers(runner)
        managers = RecipientDirectory.managers

        async def slow_managers(directory):
            await asyncio.sleep(0.05)
            return await managers(directory)

        with patch.object(RecipientDirectory, "managers", slow_managers):
            scan, transitions = await asyncio.gather(
                runner.run_once(JobType.REMINDER_SCAN),
                runner.run_once(JobType.STATUS_TRANSITIONS),
            )

        assert scan["lease"]["60d"]["reminded"] == 1
        assert scan["lease"]["60d"]["errors"] == 0
        assert transitions["lease"]["transitioned"] == 1

        async with session_factory() as check:
            loaded = await check.get(Lease, lease.id)
            assert loaded.status == LeaseStatus.EXPIRING_SOON
            assert loaded.reminder_ledger.keys == frozenset({"60d"})
            queued = (await check.execute(select(Notification.recipient))).scalars().all()
            assert sorted(queued) == ["manager@example.com", "tenant@example.com"]
