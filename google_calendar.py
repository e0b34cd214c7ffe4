import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from fastapi.concurrency import run_in_threadpool
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

import settings

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]
GOOGLE_CALENDAR_URL = "https://calendar.google.com/calendar/u/0/r"
DEFAULT_EVENT_HOURS = 2
WORKDAY_START = time(9, 0)
LOOKAHEAD_DAYS = 30
MAX_LISTED_EVENTS = 50

_DURATION_RE = re.compile(r"(\d+)\s*hour", re.IGNORECASE)


class CalendarAuthError(Exception):
    """The stored access token was rejected; the user has to sign in again."""


###############################################
# OAuth
###############################################

def is_configured() -> bool:
    return bool(settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET)


def _flow() -> Flow:
    client_config = {
        "web": {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "redirect_uris": [settings.GOOGLE_REDIRECT_URI],
        }
    }
    # No PKCE verifier: the callback builds a fresh Flow and must be able to exchange the code.
    return Flow.from_client_config(
        client_config,
        scopes=SCOPES,
        redirect_uri=settings.GOOGLE_REDIRECT_URI,
        autogenerate_code_verifier=False,
    )


def authorization_url() -> str:
    url, _state = _flow().authorization_url(access_type="offline", prompt="consent")
    return url


async def exchange_code(code: str) -> Dict[str, Any]:
    """Trade the callback ``code`` for tokens."""
    flow = _flow()
    await run_in_threadpool(flow.fetch_token, code=code)
    creds = flow.credentials
    return {
        "access_token": creds.token,
        "refresh_token": creds.refresh_token,
        "expiry": creds.expiry.isoformat() if creds.expiry else None,
        "scope": " ".join(creds.scopes or SCOPES),
    }


###############################################
# Plan -> calendar events
###############################################

def _zone() -> ZoneInfo:
    return ZoneInfo(settings.CALENDAR_TIMEZONE)


def parse_duration_hours(value: Any, default: int = DEFAULT_EVENT_HOURS) -> int:
    """First "<n> hour(s)" in ``value``; anything else ("half day", None) gives ``default``."""
    if value is None:
        return default
    match = _DURATION_RE.search(str(value))
    return int(match.group(1)) if match else default


def resolve_start(value: Any, now: Optional[datetime] = None) -> datetime:
    """Best-effort event start.

    ``2025-03-04T10:30:00`` style values are taken as-is, ``2025-03-04`` means 09:00
    that day, and anything missing or unparsable falls back to today at 09:00.
    Naive values are in ``CALENDAR_TIMEZONE``.
    """
    tz = _zone()
    now = now or datetime.now(tz)
    fallback = datetime.combine(now.astimezone(tz).date(), WORKDAY_START, tzinfo=tz)

    if not value:
        return fallback

    text = str(value).strip()
    try:
        if "T" in text:
            start = datetime.fromisoformat(text.replace("Z", "+00:00"))
        else:
            start = datetime.combine(date.fromisoformat(text), WORKDAY_START)
    except ValueError:
        logger.warning("Invalid plan date %r, using today at 09:00", value)
        return fallback

    if start.tzinfo is None:
        start = start.replace(tzinfo=tz)
    return start


def plan_to_events(plan: List[Dict[str, Any]], now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    events: List[Dict[str, Any]] = []
    for item in plan:
        start = resolve_start(item.get("date"), now=now)
        end = start + timedelta(hours=parse_duration_hours(item.get("duration")))
        title = item.get("task") or item.get("title") or "Task"
        events.append({
            "title": title,
            "description": item.get("description") or title,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "date": item.get("date") or start.date().isoformat(),
            "priority": item.get("priority") or "medium",
            "category": item.get("category") or "Task",
        })
    return events


###############################################
# Calendar API
###############################################

def _service(access_token: str) -> Any:
    creds = Credentials(token=access_token)
    return build("calendar", "v3", credentials=creds, cache_discovery=False)


def _is_auth_error(err: HttpError) -> bool:
    status = getattr(err.resp, "status", None)
    return status == 401 or "invalid_grant" in str(err)


def _insert_events(events: List[Dict[str, Any]], access_token: str) -> Tuple[int, List[str]]:
    calendar = _service(access_token)
    links: List[str] = []
    created = 0
    logger.info("Creating %d events in Google Calendar", len(events))

    for event in events:
        body = {
            "summary": event["title"],
            "description": event.get("description") or event["title"],
            "start": {"dateTime": event["start"], "timeZone": settings.CALENDAR_TIMEZONE},
            "end": {"dateTime": event["end"], "timeZone": settings.CALENDAR_TIMEZONE},
        }
        try:
            response = calendar.events().insert(calendarId="primary", body=body).execute()
        except HttpError as e:
            if _is_auth_error(e):
                raise CalendarAuthError(str(e)) from e
            logger.error("Error creating event %r: %s", event["title"], e)
            continue
        link = response.get("htmlLink")
        if link:
            links.append(link)
            created += 1

    logger.info("Created %d of %d events", created, len(events))
    return created, links


async def create_events(events: List[Dict[str, Any]], access_token: str) -> Tuple[int, List[str]]:
    """Insert events into the primary calendar. Returns (created count, event links)."""
    return await run_in_threadpool(_insert_events, events, access_token)


def _list_events(access_token: str, time_min: str, time_max: str) -> List[Dict[str, Any]]:
    calendar = _service(access_token)
    try:
        response = calendar.events().list(
            calendarId="primary",
            timeMin=time_min,
            timeMax=time_max,
            maxResults=MAX_LISTED_EVENTS,
            singleEvents=True,
            orderBy="startTime",
        ).execute()
    except HttpError as e:
        if _is_auth_error(e):
            raise CalendarAuthError(str(e)) from e
        raise

    events = []
    for item in response.get("items", []):
        start = item.get("start") or {}
        end = item.get("end") or {}
        events.append({
            "id": item.get("id"),
            "title": item.get("summary") or "No Title",
            "description": item.get("description") or "",
            "start": start.get("dateTime") or start.get("date"),
            "end": end.get("dateTime") or end.get("date"),
            "location": item.get("location") or "",
            "htmlLink": item.get("htmlLink"),
        })
    return events


async def fetch_events(
    access_token: str,
    time_min: Optional[str] = None,
    time_max: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Upcoming events, by default from now through the next 30 days."""
    now = datetime.now(timezone.utc)
    time_min = time_min or now.isoformat()
    time_max = time_max or (now + timedelta(days=LOOKAHEAD_DAYS)).isoformat()
    logger.info("Fetching calendar events from %s to %s", time_min, time_max)
    events = await run_in_threadpool(_list_events, access_token, time_min, time_max)
    logger.info("Fetched %d calendar events", len(events))
    return events
