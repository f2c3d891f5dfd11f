from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from ..config import (
    DEFAULT_EVENT_DURATION_MINUTES,
    DEFAULT_TIMEZONE,
    UNKNOWN_INTENT_MESSAGE,
    UNTITLED_SUMMARY,
)
from ..errors import AgentError, MissingFieldError, UnrecognizedIntent, ValidationError
from ..models import ResultEnvelope
from ..utils import format_local_datetime, parse_iso_datetime, shift_iso
from .schemas import (
    ActionDescriptor,
    CreateEventAction,
    CreateTaskAction,
    ListEventsAction,
)

logger = logging.getLogger(__name__)


def _failure(exc: AgentError) -> ResultEnvelope:
  return ResultEnvelope(success=False, message=exc.message, error=exc.code)


class ActionDispatcher:
  """
  Routes a resolved ActionDescriptor to the backend client.

  ``dispatch`` never raises: every failure is folded into a ResultEnvelope
  with ``success=False`` and an ``error`` code the HTTP layer maps to a status.
  """

  def __init__(self,
               backend: Any,
               default_duration_minutes: int = DEFAULT_EVENT_DURATION_MINUTES,
               clock: Optional[Callable[[], datetime]] = None) -> None:
    self.backend = backend
    self.default_duration_minutes = default_duration_minutes
    self.clock = clock

  async def dispatch(self,
                     descriptor: ActionDescriptor,
                     credential: str,
                     timezone: str = DEFAULT_TIMEZONE) -> ResultEnvelope:
    try:
      if isinstance(descriptor, CreateEventAction):
        result = await self._create_event(descriptor, credential, timezone)
      elif isinstance(descriptor, CreateTaskAction):
        result = await self._create_task(descriptor, credential, timezone)
      elif isinstance(descriptor, ListEventsAction):
        result = await self._list_events(credential)
      else:
        raise UnrecognizedIntent(UNKNOWN_INTENT_MESSAGE)
    except UnrecognizedIntent as exc:
      logger.info("[DISPATCH] unrecognized intent")
      return _failure(exc)
    except AgentError as exc:
      logger.warning("[DISPATCH] %s failed: %s (%s)",
                     descriptor.kind.value, exc.message, exc.code)
      return _failure(exc)
    except Exception as exc:
      logger.exception("[DISPATCH] unexpected error")
      return ResultEnvelope(success=False,
                            message=str(exc) or "Failed to process request",
                            error="internal_error")
    logger.info("[DISPATCH] %s ok", descriptor.kind.value)
    return result

  def event_window(self, descriptor: CreateEventAction) -> tuple[str, str]:
    """Start/end for a new event; end defaults to start + default duration."""
    if not descriptor.start_time:
      raise MissingFieldError("startTime", "Could not determine start time")
    try:
      parse_iso_datetime(descriptor.start_time)
      if descriptor.end_time:
        parse_iso_datetime(descriptor.end_time)
    except ValueError as exc:
      raise ValidationError(f"Invalid event time: {exc}") from exc
    end_time = descriptor.end_time or shift_iso(descriptor.start_time,
                                                self.default_duration_minutes)
    return descriptor.start_time, end_time

  async def _create_event(self, descriptor: CreateEventAction, credential: str,
                          timezone: str) -> ResultEnvelope:
    start_time, end_time = self.event_window(descriptor)
    summary = descriptor.summary or UNTITLED_SUMMARY
    created = await self.backend.create_event(
        credential,
        summary=summary,
        start_time=start_time,
        end_time=end_time,
        description=descriptor.description,
        tz_name=timezone,
    )
    when = format_local_datetime(start_time, timezone)
    return ResultEnvelope(success=True,
                          message=f'Event "{summary}" created for {when}.',
                          data=created)

  async def _create_task(self, descriptor: CreateTaskAction, credential: str,
                         timezone: str) -> ResultEnvelope:
    summary = descriptor.summary or UNTITLED_SUMMARY
    created = await self.backend.create_task(
        credential,
        summary=summary,
        description=descriptor.description,
        start_time=descriptor.start_time,
        tz_name=timezone,
    )
    return ResultEnvelope(success=True,
                          message=f'Task "{summary}" added to your list.',
                          data=created)

  async def _list_events(self, credential: str) -> ResultEnvelope:
    now = self.clock() if self.clock else None
    events = await self.backend.list_upcoming_events(credential, now=now)
    events = list(events or [])
    return ResultEnvelope(success=True,
                          message=f"You have {len(events)} upcoming events.",
                          data=events)
