from __future__ import annotations

import os
import re

LLM_DEBUG = os.getenv("LLM_DEBUG", "0") == "1"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

ISO_OFFSET_RE = re.compile(r"(Z|[+-]\d{2}:?\d{2})$")

# -------------------------
# LLM settings
# -------------------------
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
AGENT_INTENT_MODEL = os.getenv("AGENT_INTENT_MODEL", "gemini-2.5-flash").strip()
AGENT_INTENT_MAX_TOKENS = int(os.getenv("AGENT_INTENT_MAX_TOKENS", "2048"))

# -------------------------
# Google Calendar / Tasks settings
# -------------------------
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")
GOOGLE_TASKLIST_ID = os.getenv("GOOGLE_TASKLIST_ID", "@default")
GCAL_SCOPES = [
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/tasks",
]
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
ACCESS_TOKEN_HEADER = os.getenv("ACCESS_TOKEN_HEADER", "X-Forwarded-Access-Token")

# -------------------------
# Runtime limits/defaults
# -------------------------
UPCOMING_EVENTS_LIMIT = int(os.getenv("UPCOMING_EVENTS_LIMIT", "5"))
DEFAULT_EVENT_DURATION_MINUTES = int(
    os.getenv("DEFAULT_EVENT_DURATION_MINUTES", "60"))
DEFAULT_EVENT_DESCRIPTION = os.getenv("DEFAULT_EVENT_DESCRIPTION",
                                      "Created via Voice Agent")
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC").strip() or "UTC"
UNTITLED_SUMMARY = "Untitled"
UNKNOWN_INTENT_MESSAGE = "I didn't understand that request."

CORS_ALLOW_ORIGINS = os.getenv("CORS_ALLOW_ORIGINS", "")
cors_origins: list[str] = [
    origin.strip() for origin in CORS_ALLOW_ORIGINS.split(",") if origin.strip()
]
