"""Building-management notification and status-transition jobs.

Periodic, idempotent batch jobs that:
- queue, send and retry transactional emails
- enqueue threshold reminders exactly once per entity and threshold
- advance lease, cheque and compliance statuses from the calendar date
"""

__version__ = "0.1.0"
