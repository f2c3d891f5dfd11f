from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional, Tuple

import requests
from mcp.server.fastmcp import FastMCP

BACKEND_BASE_URL = os.getenv("BACKEND_BASE_URL", "http://localhost:8000").rstrip("/")
BACKEND_API_BASE = os.getenv("BACKEND_API_BASE", "/api").rstrip("/")
DEFAULT_ACCESS_TOKEN = os.getenv("GOOGLE_ACCESS_TOKEN", "").strip()
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC").strip() or "UTC"
REQUEST_TIMEOUT = float(os.getenv("MCP_BACKEND_TIMEOUT", "30"))
DEBUG_MODE = os.getenv("MCP_DEBUG", "0").strip() in ("1", "true", "True", "yes")
LOG_REQUESTS = os.getenv("MCP_LOG_REQUESTS", "0").strip() in ("1", "true", "True", "yes")

_REDACTED_HEADERS = ("authorization", "cookie", "x-forwarded-access-token")

mcp = FastMCP("voice-calendar-agent")


def _log_tool_call(tool_name: str, input_data: Dict[str, Any], output_data: Dict[str, Any]) -> None:
  if not DEBUG_MODE:
    return
  print(f"\n{'='*80}")
  print(f"Tool: {tool_name}")
  print(f"{'='*80}")
  print("input:")
  print(json.dumps(input_data, indent=2, ensure_ascii=False))
  print("\noutput:")
  print(json.dumps(output_data, indent=2, ensure_ascii=False))
  print(f"{'='*80}\n")


class RequestLoggerMiddleware:
  def __init__(self, app: Any):
    self.app = app

  async def __call__(self, scope: Dict[str, Any], receive: Any, send: Any) -> None:
    if scope.get("type") == "http":
      headers = self._decode_headers(scope.get("headers") or [])
      self._log_request(scope.get("method", ""), scope.get("path", ""), headers)
    await self.app(scope, receive, send)

  def _decode_headers(self, raw_headers: List[Tuple[bytes, bytes]]) -> Dict[str, str]:
    decoded: Dict[str, str] = {}
    for key, value in raw_headers:
      decoded[key.decode("latin-1").lower()] = value.decode("latin-1")
    return decoded

  def _log_request(self, method: str, path: str, headers: Dict[str, str]) -> None:
    safe_headers = {
        key: "(redacted)" if key in _REDACTED_HEADERS else value
        for key, value in headers.items()
    }
    print("\n" + "=" * 80)
    print("MCP HTTP Request")
    print("=" * 80)
    print(f"method: {method}")
    print(f"path: {path}")
    print("headers:")
    print(json.dumps(safe_headers, indent=2, ensure_ascii=False))
    print("=" * 80 + "\n")


def _api_path(path: str) -> str:
  return f"{BACKEND_API_BASE}/{path.lstrip('/')}"


def _require_access_token(access_token: Optional[str]) -> str:
  token = (access_token or DEFAULT_ACCESS_TOKEN).strip()
  if not token:
    raise ValueError(
        "Google access token is required. Pass access_token or set GOOGLE_ACCESS_TOKEN."
    )
  return token


def _request(method: str,
             path: str,
             access_token: Optional[str],
             payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
  try:
    token = _require_access_token(access_token)
  except ValueError as exc:
    return {"ok": False, "code": "unauthenticated", "message": str(exc)}

  url = f"{BACKEND_BASE_URL}{path}"
  headers = {"Authorization": f"Bearer {token}"}
  try:
    if method == "GET":
      resp = requests.get(url, headers=headers, timeout=REQUEST_TIMEOUT)
    else:
      resp = requests.post(url, json=payload, headers=headers, timeout=REQUEST_TIMEOUT)
  except requests.RequestException as exc:
    return {
        "ok": False,
        "code": "request_failed",
        "message": f"Backend request failed: {exc}",
    }

  try:
    data = resp.json()
  except ValueError:
    data = {"raw": resp.text}

  if resp.status_code >= 400:
    return {
        "ok": False,
        "code": "backend_error",
        "status": resp.status_code,
        "error": data,
    }
  return {"ok": bool(data.get("success")) if isinstance(data, dict) else True,
          "data": data}


@mcp.tool(name="assistant.process_request")
def process_request(
    text: str,
    timezone: Optional[str] = None,
    access_token: Optional[str] = None,
) -> Dict[str, Any]:
  """Create an event or task, or list upcoming events, from a natural-language request."""
  payload = {"text": text, "userTimezone": timezone or DEFAULT_TIMEZONE}
  result = _request("POST", _api_path("process-voice"), access_token, payload)
  _log_tool_call("assistant.process_request", payload, result)
  return result


@mcp.tool(name="calendar.list_upcoming")
def list_upcoming_events(access_token: Optional[str] = None) -> Dict[str, Any]:
  """List the next upcoming events on the primary calendar."""
  result = _request("GET", _api_path("events/upcoming"), access_token)
  _log_tool_call("calendar.list_upcoming", {}, result)
  return result


if __name__ == "__main__":
  import uvicorn

  host = os.getenv("MCP_HOST", "0.0.0.0")
  port = int(os.getenv("MCP_PORT", "8001"))
  app = mcp.streamable_http_app()
  if LOG_REQUESTS:
    app = RequestLoggerMiddleware(app)
  uvicorn.run(app, host=host, port=port)
