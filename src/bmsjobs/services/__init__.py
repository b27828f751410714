"""Engines behind the scheduled jobs.

- notification_store: persisted notification queue
- retry: dispatch tick with backoff and per-item isolation
- dispatcher / templates: SMTP and HTTP transports, jinja2 rendering
- reminders: exactly-once threshold reminders
- lifecycle: date-driven status transitions
- retention / statistics: housekeeping ticks
- events: notifications queued by application events
"""
