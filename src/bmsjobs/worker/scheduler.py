"""Schedule definitions for the periodic ticks.

Ticks (default intervals, all configurable via BMSJOBS_SCHEDULES__*):
- status_transitions: daily, advances lease/cheque/compliance statuses
- reminder_scan: daily, enqueues threshold reminders
- notification_dispatch: every 30 seconds, sends due notifications
- notification_statistics: hourly, logs queue counters
- notification_retention: daily, purges old SENT/FAILED notifications
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bmsjobs.core.config import ScheduleSettings

logger = logging.getLogger(__name__)


class JobType(str, Enum):
    """Scheduled tick types, each handled by one handler."""

    STATUS_TRANSITIONS = "status_transitions"
    REMINDER_SCAN = "reminder_scan"
    NOTIFICATION_DISPATCH = "notification_dispatch"
    NOTIFICATION_STATISTICS = "notification_statistics"
    NOTIFICATION_RETENTION = "notification_retention"


# Ticks that write monitored entities: run one at a time, in schedule order
ENTITY_JOB_TYPES = frozenset({JobType.STATUS_TRANSITIONS, JobType.REMINDER_SCAN})


@dataclass
class ScheduledJob:
    """Definition of a scheduled periodic job.

    Attributes:
        job_type: Type of job to run.
        interval: Time between runs.
        enabled: Whether this scheduled job is active.
        last_run: When the job last started (None until the first run).
    """

    job_type: JobType
    interval: timedelta
    enabled: bool = True
    last_run: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        """True if the job never ran or its interval has elapsed."""
        if not self.enabled:
            return False
        if self.last_run is None:
            return True
        return now >= self.last_run + self.interval

    def seconds_until_due(self, now: datetime) -> float:
        if self.last_run is None:
            return 0.0
        return max(0.0, (self.last_run + self.interval - now).total_seconds())


def build_schedules(settings: ScheduleSettings) -> list[ScheduledJob]:
    """Schedules in run order: statuses first, then reminders, then sending."""
    intervals = [
        (JobType.STATUS_TRANSITIONS, settings.status_transitions),
        (JobType.REMINDER_SCAN, settings.reminder_scan),
        (JobType.NOTIFICATION_DISPATCH, settings.dispatch),
        (JobType.NOTIFICATION_STATISTICS, settings.statistics),
        (JobType.NOTIFICATION_RETENTION, settings.retention),
    ]
    schedules = []
    for job_type, seconds in intervals:
        schedules.append(
            ScheduledJob(
                job_type=job_type,
                interval=timedelta(seconds=seconds),
                enabled=seconds > 0,
            )
        )
        if seconds <= 0:
            logger.info("Schedule disabled: job_type=%s", job_type.value)
    return schedules
