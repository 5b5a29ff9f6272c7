"""Reminder engine tuning - ticker, matching window, dedup retention, gateway retries."""

import os

# Due-time matcher
TICK_INTERVAL_SECONDS = int(os.environ.get("REMINDER_TICK_INTERVAL_SECONDS", 30))
MATCH_TOLERANCE_SECONDS = int(os.environ.get("REMINDER_MATCH_TOLERANCE_SECONDS", 60))

# Dedup store: claims live this long before eviction
DEDUP_RETENTION_HOURS = 24

# Gateway retry settings (transient failures only)
GATEWAY_MAX_ATTEMPTS = 3
GATEWAY_BACKOFF_BASE_SECONDS = 1.0
GATEWAY_BACKOFF_MAX_SECONDS = 8.0
GATEWAY_TIMEOUT_SECONDS = 10

# Notifications older than this are dropped by the gateway instead of delivered late
NOTIFICATION_TTL_SECONDS = 86400

# Remote pre-scheduling when a reminder is saved
PRESCHEDULE_HORIZON_DAYS = int(os.environ.get("REMINDER_PRESCHEDULE_HORIZON_DAYS", 7))
PRESCHEDULE_MAX_JOBS = 50

# Placeholder credentials shipped in example env files
PLACEHOLDER_APP_ID = "YOUR_ONESIGNAL_APP_ID"
PLACEHOLDER_API_KEY = "YOUR_REST_API_KEY"

# Android notification channel + default alarm cue
ANDROID_CHANNEL_ID = "medication-reminders"
DEFAULT_ICON = "/logo.png"
