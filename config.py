"""Global configuration for the reminder engine."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Push gateway (OneSignal-compatible REST API)
PUSH_GATEWAY_URL = os.getenv("PUSH_GATEWAY_URL", "https://onesignal.com/api/v1")
PUSH_APP_ID = os.getenv("PUSH_APP_ID", "")
PUSH_REST_API_KEY = os.getenv("PUSH_REST_API_KEY", "")

# Supabase (reminder storage)
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Wall-clock zone the reminder times are expressed in
USER_TIMEZONE = os.getenv("USER_TIMEZONE", "Europe/London")

# Logging
LOG_DIR = Path(os.getenv("LOCALAPPDATA", ".")) / "medireminder" / "logs"
LOG_DIR.mkdir(parents=True, exist_ok=True)
