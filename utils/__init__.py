"""Utility modules for the reminder engine."""

from .log_sanitizer import sanitize_log, sanitize_for_log, mask_token

__all__ = ["sanitize_log", "sanitize_for_log", "mask_token"]
