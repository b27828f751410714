"""Job runner: periodic ticks for dispatch, reminders, transitions and housekeeping."""
