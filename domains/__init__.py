"""Domain modules for the reminder engine."""
