"""Core configuration, settings accessor and clock."""
