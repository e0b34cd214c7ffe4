import os
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Request

###############################################
# Environment & constants
###############################################

# .env.local wins over .env; variables already set in the process win over both.
load_dotenv(".env.local")
load_dotenv(".env")

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY", "")
ELEVENLABS_VOICE_ID = os.getenv("ELEVENLABS_VOICE_ID", "21m00Tcm4TlvDq8ikWAM")  # "Rachel"
ELEVENLABS_MODEL_ID = os.getenv("ELEVENLABS_MODEL_ID", "eleven_monolingual_v1")
ELEVENLABS_API_BASE = "https://api.elevenlabs.io/v1"

GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI", "http://localhost:8787/api/auth/google/callback")
CALENDAR_TIMEZONE = os.getenv("CALENDAR_TIMEZONE", "America/Los_Angeles")

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:8080")
API_PORT = int(os.getenv("API_PORT", "8787"))

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

###############################################
# Usage Logging
###############################################

LOGS_DIR = os.getenv("LOGS_DIR", "/tmp/pm_workbench_logs")
os.makedirs(LOGS_DIR, exist_ok=True)

usage_logger = logging.getLogger("pm_workbench_usage")
usage_logger.setLevel(logging.INFO)
usage_logger.propagate = False

usage_log_file = os.path.join(LOGS_DIR, "usage.log")

if not usage_logger.handlers:
    file_handler = logging.FileHandler(usage_log_file, mode="a")
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter("%(asctime)s | %(message)s"))
    usage_logger.addHandler(file_handler)

logger = logging.getLogger(__name__)


def client_ip(request: Optional[Request]) -> str:
    if request is None:
        return "unknown"
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def log_usage(event_type: str, data: Dict[str, Any], request: Optional[Request] = None) -> None:
    """Log usage events for analysis. Failures are reported, never raised."""
    try:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "client_ip": client_ip(request),
            "data": data,
        }
        usage_logger.info(json.dumps(entry, default=str))
    except (TypeError, ValueError, OSError) as e:
        logger.warning("Usage logging failed for %s: %s", event_type, e)


def read_usage_logs(limit: int = 100) -> List[Dict[str, Any]]:
    """Parse the last ``limit`` usage-log lines (format: ``timestamp | json``)."""
    if not os.path.exists(usage_log_file):
        return []
    with open(usage_log_file, "r") as f:
        lines = f.readlines()

    logs: List[Dict[str, Any]] = []
    for line in lines[-limit:]:
        if " | " not in line:
            continue
        _, json_str = line.split(" | ", 1)
        try:
            logs.append(json.loads(json_str.strip()))
        except json.JSONDecodeError:
            continue
    return logs
