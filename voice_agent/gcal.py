from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests
from fastapi import Request

from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .config import (
    ACCESS_TOKEN_HEADER,
    DEFAULT_EVENT_DESCRIPTION,
    GCAL_SCOPES,
    GOOGLE_CALENDAR_ID,
    GOOGLE_TASKLIST_ID,
    GOOGLE_USERINFO_URL,
    UPCOMING_EVENTS_LIMIT,
)
from .errors import AuthenticationError, BackendError, ValidationError
from .utils import _to_rfc3339, has_utc_offset, parse_iso_datetime

logger = logging.getLogger(__name__)

ServiceBuilder = Callable[[str, str, str], Any]


# -------------------------
# Session credential
# -------------------------
def get_access_token(request: Request) -> Optional[str]:
  """
  Bearer token handed over by the identity provider: either a standard
  ``Authorization: Bearer`` header or the proxy header ACCESS_TOKEN_HEADER.
  """
  auth_header = request.headers.get("Authorization") or ""
  scheme, _, value = auth_header.partition(" ")
  if scheme.lower() == "bearer" and value.strip():
    return value.strip()
  forwarded = (request.headers.get(ACCESS_TOKEN_HEADER) or "").strip()
  return forwarded or None


def require_access_token(request: Request) -> str:
  token = get_access_token(request)
  if not token:
    raise AuthenticationError("Unauthorized")
  return token


def get_google_userinfo(access_token: str) -> Optional[Dict[str, Any]]:
  try:
    response = requests.get(
        GOOGLE_USERINFO_URL,
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=5,
    )
  except requests.RequestException as exc:
    logger.warning("userinfo request failed: %s", exc)
    return None
  if not response.ok:
    return None
  try:
    payload = response.json()
  except ValueError:
    return None
  return payload if isinstance(payload, dict) else None


# -------------------------
# Google API services
# -------------------------
def build_google_service(api: str, version: str, access_token: str):
  creds = Credentials(token=access_token, scopes=GCAL_SCOPES)
  return build(api, version, credentials=creds, cache_discovery=False)


def _http_error_message(exc: HttpError) -> str:
  reason = getattr(exc, "reason", None)
  status = getattr(exc.resp, "status", None)
  if isinstance(reason, str) and reason.strip():
    return f"Google API error ({status}): {reason.strip()}"
  return f"Google API error ({status})"


def _start_key(event: Dict[str, Any]) -> datetime:
  start = event.get("start") or {}
  raw = start.get("dateTime") or start.get("date")
  if not isinstance(raw, str):
    return datetime.max.replace(tzinfo=timezone.utc)
  try:
    return parse_iso_datetime(raw, start.get("timeZone"))
  except ValueError:
    return datetime.max.replace(tzinfo=timezone.utc)


class GoogleWorkspaceClient:
  """
  Calendar/Tasks operations on behalf of the caller's bearer token.

  The SDK is synchronous; every public method runs it in a worker thread so
  the event loop is never blocked. All failures surface as BackendError.
  """

  def __init__(self,
               calendar_id: str = GOOGLE_CALENDAR_ID,
               tasklist_id: str = GOOGLE_TASKLIST_ID,
               upcoming_limit: int = UPCOMING_EVENTS_LIMIT,
               default_description: str = DEFAULT_EVENT_DESCRIPTION,
               service_builder: Optional[ServiceBuilder] = None) -> None:
    self.calendar_id = calendar_id
    self.tasklist_id = tasklist_id
    self.upcoming_limit = upcoming_limit
    self.default_description = default_description
    self.service_builder = service_builder or build_google_service

  def _service(self, api: str, version: str, credential: str):
    if not credential:
      raise AuthenticationError("Google access token is missing.")
    try:
      return self.service_builder(api, version, credential)
    except (GoogleAuthError, HttpError) as exc:
      raise BackendError(f"Failed to build {api} service: {exc}") from exc

  def _execute(self, request: Any, label: str) -> Any:
    try:
      return request.execute()
    except HttpError as exc:
      logger.exception("[GCAL] %s failed", label)
      raise BackendError(_http_error_message(exc)) from exc
    except GoogleAuthError as exc:
      logger.exception("[GCAL] %s auth failed", label)
      raise BackendError(f"Google authorization failed: {exc}") from exc
    except Exception as exc:
      logger.exception("[GCAL] %s error", label)
      raise BackendError(str(exc) or f"{label} failed") from exc

  # ----- create event -----
  def build_event_body(self,
                       summary: str,
                       start_time: str,
                       end_time: Optional[str],
                       description: Optional[str] = None,
                       timezone_value: Optional[str] = None) -> Dict[str, Any]:
    start: Dict[str, Any] = {"dateTime": start_time}
    end: Dict[str, Any] = {"dateTime": end_time or start_time}
    if timezone_value:
      start["timeZone"] = timezone_value
      end["timeZone"] = timezone_value
    return {
        "summary": summary,
        "description": description or self.default_description,
        "start": start,
        "end": end,
    }

  def _create_event_sync(self, credential: str, body: Dict[str, Any]) -> Dict[str, Any]:
    service = self._service("calendar", "v3", credential)
    created = self._execute(
        service.events().insert(calendarId=self.calendar_id, body=body),
        "create event")
    logger.info("[GCAL] event created id=%s", (created or {}).get("id"))
    return created

  async def create_event(self,
                         credential: str,
                         summary: str,
                         start_time: str,
                         end_time: Optional[str] = None,
                         description: Optional[str] = None,
                         tz_name: Optional[str] = None) -> Dict[str, Any]:
    body = self.build_event_body(summary, start_time, end_time, description,
                                 tz_name)
    return await asyncio.to_thread(self._create_event_sync, credential, body)

  # ----- create task -----
  def build_task_body(self,
                      summary: str,
                      description: Optional[str] = None,
                      start_time: Optional[str] = None,
                      timezone_value: Optional[str] = None) -> Dict[str, Any]:
    task: Dict[str, Any] = {"title": summary}
    if description:
      task["notes"] = description
    if start_time:
      try:
        # Tasks API wants RFC 3339; naive values are local to the user
        task["due"] = start_time if has_utc_offset(start_time) else _to_rfc3339(
            start_time, timezone_value)
        parse_iso_datetime(task["due"])
      except ValueError as exc:
        raise ValidationError(f"Invalid due date: {start_time}") from exc
    return task

  def _create_task_sync(self, credential: str, body: Dict[str, Any]) -> Dict[str, Any]:
    service = self._service("tasks", "v1", credential)
    created = self._execute(
        service.tasks().insert(tasklist=self.tasklist_id, body=body),
        "create task")
    logger.info("[GTASKS] task created id=%s", (created or {}).get("id"))
    return created

  async def create_task(self,
                        credential: str,
                        summary: str,
                        description: Optional[str] = None,
                        start_time: Optional[str] = None,
                        tz_name: Optional[str] = None) -> Dict[str, Any]:
    body = self.build_task_body(summary, description, start_time, tz_name)
    return await asyncio.to_thread(self._create_task_sync, credential, body)

  # ----- list upcoming events -----
  def _list_upcoming_sync(self, credential: str, time_min: str) -> List[Dict[str, Any]]:
    service = self._service("calendar", "v3", credential)
    response = self._execute(
        service.events().list(
            calendarId=self.calendar_id,
            timeMin=time_min,
            maxResults=self.upcoming_limit,
            singleEvents=True,
            orderBy="startTime",
        ), "list events")
    items = (response or {}).get("items") or []
    items = [item for item in items if isinstance(item, dict)]
    items.sort(key=_start_key)
    return items[:self.upcoming_limit]

  async def list_upcoming_events(self,
                                 credential: str,
                                 now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
      moment = moment.replace(tzinfo=timezone.utc)
    time_min = (moment.astimezone(timezone.utc).replace(microsecond=0)
                .isoformat().replace("+00:00", "Z"))
    return await asyncio.to_thread(self._list_upcoming_sync, credential, time_min)
