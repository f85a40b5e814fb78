"""Global configuration for Blink reminders."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Supabase (optional remote key-value store)
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
SUPABASE_KV_TABLE = os.getenv("SUPABASE_KV_TABLE", "reminder_kv")

# Local data
DATA_DIR = Path(os.getenv("BLINK_DATA_DIR", Path(os.getenv("LOCALAPPDATA", ".")) / "blink"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = Path(os.getenv("BLINK_LOG_DIR", DATA_DIR / "logs"))
LOG_DIR.mkdir(parents=True, exist_ok=True)
