from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from .agent import ActionDispatcher, IntentResolver, ListEventsAction
from .config import DEFAULT_TIMEZONE
from .errors import AgentError, AuthenticationError, ValidationError
from .gcal import get_access_token, get_google_userinfo, require_access_token
from .models import AuthStatus, ProcessVoiceRequest, ResultEnvelope
from .utils import resolve_zone

router = APIRouter()
logger = logging.getLogger(__name__)


# -------------------------
# Dependencies (wired on app.state by create_app)
# -------------------------
def get_resolver(request: Request) -> IntentResolver:
  return request.app.state.resolver


def get_dispatcher(request: Request) -> ActionDispatcher:
  return request.app.state.dispatcher


def _utc_now() -> datetime:
  return datetime.now(timezone.utc)


def get_clock(request: Request) -> Callable[[], datetime]:
  return getattr(request.app.state, "clock", None) or _utc_now


def _now_iso(clock: Callable[[], datetime]) -> str:
  now = clock()
  if now.tzinfo is None:
    now = now.replace(tzinfo=timezone.utc)
  return (now.astimezone(timezone.utc).replace(microsecond=0)
          .isoformat().replace("+00:00", "Z"))


def _error_response(exc: AgentError) -> JSONResponse:
  envelope = ResultEnvelope(success=False, message=exc.message, error=exc.code)
  return JSONResponse(envelope.to_response(), status_code=exc.status_code)


def _status_for(envelope: ResultEnvelope) -> int:
  # 400 is reserved for an empty request text
  if envelope.success or envelope.error in (None, "unrecognized_intent"):
    return 200
  if envelope.error == "unauthenticated":
    return 401
  return 500


@router.get("/health")
def health():
  return {"status": "ok"}


@router.get("/auth/status", response_model=AuthStatus)
async def auth_status(request: Request):
  token = get_access_token(request)
  if not token:
    return AuthStatus(authenticated=False)
  user = await asyncio.to_thread(get_google_userinfo, token)
  return AuthStatus(authenticated=user is not None, user=user)


@router.post("/api/process-voice")
async def process_voice(request: Request,
                        resolver: IntentResolver = Depends(get_resolver),
                        dispatcher: ActionDispatcher = Depends(get_dispatcher),
                        clock: Callable[[], datetime] = Depends(get_clock)):
  try:
    credential = require_access_token(request)
  except AuthenticationError as exc:
    return _error_response(exc)

  try:
    body = ProcessVoiceRequest.model_validate(await request.json())
  except ValueError:
    body = ProcessVoiceRequest()
  text = (body.text or "").strip()
  if not text:
    return _error_response(ValidationError("No text provided"))

  user_timezone = (body.user_timezone or "").strip() or DEFAULT_TIMEZONE
  # unknown zone names fall back to the default instead of failing the request
  user_timezone = resolve_zone(user_timezone).key

  try:
    descriptor = await resolver.resolve(text, _now_iso(clock), user_timezone)
  except AgentError as exc:
    logger.error("Agent Error: %s (%s)", exc.message, exc.code)
    return _error_response(exc)
  except Exception:
    logger.exception("Agent Error")
    return JSONResponse(
        {"success": False, "message": "Failed to process request"},
        status_code=500)

  envelope = await dispatcher.dispatch(descriptor, credential,
                                       timezone=user_timezone)
  return JSONResponse(envelope.to_response(),
                      status_code=_status_for(envelope))


@router.get("/api/events/upcoming")
async def upcoming_events(request: Request,
                          dispatcher: ActionDispatcher = Depends(get_dispatcher)):
  """Next upcoming events, without going through the language service."""
  try:
    credential = require_access_token(request)
  except AuthenticationError as exc:
    return _error_response(exc)

  envelope = await dispatcher.dispatch(ListEventsAction(), credential)
  return JSONResponse(envelope.to_response(),
                      status_code=_status_for(envelope))
