from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from google import genai
from google.genai import types as genai_types
from openai import AsyncOpenAI
from pydantic import BaseModel

from ..config import GEMINI_API_KEY, OPENAI_API_KEY
from ..utils import _log_debug


T = TypeVar("T", bound=BaseModel)
logger = logging.getLogger(__name__)

_GEMINI_DEFAULT_THINKING_LEVEL = ""


def _extract_message_text(content: Any) -> str:
  if isinstance(content, str):
    return content.strip()
  if isinstance(content, list):
    chunks = []
    for item in content:
      if isinstance(item, dict):
        text_val = item.get("text")
        if isinstance(text_val, str) and text_val.strip():
          chunks.append(text_val.strip())
      elif isinstance(item, str) and item.strip():
        chunks.append(item.strip())
    return " ".join(chunks).strip()
  return ""


def _provider_for_model(model: str, override: Optional[str] = None) -> str:
  provider = (override if override is not None else
              os.getenv("AGENT_LLM_PROVIDER", "auto")).strip().lower()
  if provider in ("openai", "gemini"):
    return provider
  model_name = str(model or "").strip().lower()
  if model_name.startswith("gemini") or model_name.startswith("models/gemini"):
    return "gemini"
  return "openai"


def _canonical_gemini_model(model: str) -> str:
  model_name = str(model or "").strip()
  if not model_name:
    return "models/gemini-flash-latest"
  if model_name.startswith("models/"):
    return model_name
  return f"models/{model_name}"


def _gemini_text_from_response(response: Any) -> str:
  text = getattr(response, "text", None)
  if isinstance(text, str) and text.strip():
    return text.strip()
  candidates = getattr(response, "candidates", None)
  if not isinstance(candidates, list):
    return ""
  chunks = []
  for candidate in candidates:
    content = getattr(candidate, "content", None)
    if content is None:
      continue
    parts = getattr(content, "parts", None)
    if not isinstance(parts, list):
      continue
    for part in parts:
      text_val = getattr(part, "text", None)
      if isinstance(text_val, str) and text_val.strip():
        chunks.append(text_val.strip())
  return " ".join(chunks).strip()


def _compose_prompt(system_prompt: str, user_content: str) -> str:
  return f"{system_prompt}\n\nUser:\n{user_content}"


def _clean_json_text(text: str) -> str:
  cleaned = (text or "").strip()
  if cleaned.startswith("```"):
    cleaned = re.sub(r"^```[a-zA-Z0-9_-]*\s*", "", cleaned).strip()
    cleaned = re.sub(r"\s*```$", "", cleaned).strip()
  return cleaned


def _validate_structured_response(response_model: Type[T],
                                  raw_output: str) -> Optional[T]:
  """
  Validate model output against ``response_model``. Accepts bare JSON,
  markdown-fenced JSON, or a single object embedded in surrounding text.
  Returns None when nothing validates.
  """
  if not raw_output:
    return None
  candidates = [raw_output, _clean_json_text(raw_output)]
  cleaned = candidates[-1]
  if cleaned:
    left = cleaned.find("{")
    right = cleaned.rfind("}")
    if left != -1 and right != -1 and right > left:
      candidates.append(cleaned[left:right + 1])
  seen = set()
  for candidate in candidates:
    text = (candidate or "").strip()
    if not text or text in seen:
      continue
    seen.add(text)
    try:
      return response_model.model_validate_json(text)
    except ValueError:
      continue
  return None


def _coerce_gemini_parsed_response(response_model: Type[T],
                                   parsed_value: Any) -> Optional[T]:
  if parsed_value is None:
    return None
  if isinstance(parsed_value, response_model):
    return parsed_value
  if isinstance(parsed_value, str):
    return _validate_structured_response(response_model, parsed_value)
  try:
    return response_model.model_validate(parsed_value)
  except ValueError:
    return None


def _gemini_thinking_level(override_level: Optional[str] = None) -> Optional[str]:
  raw = override_level
  if raw is None:
    raw = os.getenv("GEMINI_THINKING_LEVEL", _GEMINI_DEFAULT_THINKING_LEVEL)
  value = str(raw or "").strip().upper()
  if value in ("NONE", "MINIMAL", "LOW", "MEDIUM", "HIGH"):
    return value
  return None


def _build_gemini_structured_config(response_model: Type[BaseModel],
                                    max_completion_tokens: int,
                                    gemini_thinking_level: Optional[str] = None) -> Any:
  config: Dict[str, Any] = {
      "response_mime_type": "application/json",
      "response_schema": response_model,
  }
  if isinstance(max_completion_tokens, int) and max_completion_tokens > 0:
    config["max_output_tokens"] = max_completion_tokens
  level = _gemini_thinking_level(override_level=gemini_thinking_level)
  if level and level != "NONE":
    config["thinking_config"] = {"thinking_level": level}

  try:
    return genai_types.GenerateContentConfig(**config)
  except ValueError:
    config.pop("thinking_config", None)
    return genai_types.GenerateContentConfig(**config)


def _gemini_structured_sync(client: Any,
                            model: str,
                            prompt: str,
                            response_model: Type[T],
                            max_completion_tokens: int,
                            gemini_thinking_level: Optional[str] = None) -> Tuple[Optional[T], str, str]:
  used_model = _canonical_gemini_model(model)
  config = _build_gemini_structured_config(
      response_model,
      max_completion_tokens=max_completion_tokens,
      gemini_thinking_level=gemini_thinking_level,
  )
  response = client.models.generate_content(
      model=used_model,
      contents=prompt,
      config=config,
  )
  raw_output = _gemini_text_from_response(response)
  parsed = _coerce_gemini_parsed_response(
      response_model, getattr(response, "parsed", None))
  if parsed is None:
    parsed = _validate_structured_response(response_model, raw_output)
  if parsed is None:
    logger.warning("[STRUCTURED] PARSE_FAIL model=%s schema=%s raw_len=%d",
                   used_model, response_model.__name__, len(raw_output))
  return parsed, raw_output, used_model


def _compose_openai_messages(system_prompt: str,
                             user_content: str) -> List[Dict[str, str]]:
  instruction = system_prompt
  # JSON mode requires the word "json" somewhere in the system prompt
  if "json" not in instruction.lower():
    instruction += "\n\nResponse must be a valid JSON object."
  return [
      {
          "role": "system",
          "content": instruction,
      },
      {
          "role": "user",
          "content": user_content,
      },
  ]


class LLMProvider:
  """
  Structured JSON completions against Gemini or OpenAI.

  Clients are built lazily per provider instance, so each application (or
  test) owns its own clients instead of sharing module-level state.
  """

  def __init__(self,
               provider: Optional[str] = None,
               gemini_api_key: Optional[str] = None,
               openai_api_key: Optional[str] = None,
               gemini_client: Any = None,
               openai_client: Any = None) -> None:
    self.provider = provider
    self._gemini_api_key = gemini_api_key
    self._openai_api_key = openai_api_key
    self._gemini_client = gemini_client
    self._openai_client = openai_client

  def _gemini_client_or_reason(self) -> Tuple[Any, Optional[str]]:
    if self._gemini_client is not None:
      return self._gemini_client, None
    api_key = (self._gemini_api_key or GEMINI_API_KEY or "").strip()
    if not api_key:
      return None, "gemini_api_key_missing"
    self._gemini_client = genai.Client(api_key=api_key)
    return self._gemini_client, None

  def _openai_client_or_reason(self) -> Tuple[Any, Optional[str]]:
    if self._openai_client is not None:
      return self._openai_client, None
    api_key = (self._openai_api_key or OPENAI_API_KEY or "").strip()
    if not api_key:
      return None, "openai_api_key_missing"
    self._openai_client = AsyncOpenAI(api_key=api_key)
    return self._openai_client, None

  async def run_structured_completion(
      self,
      *,
      model: str,
      system_prompt: str,
      user_payload: Dict[str, Any],
      response_model: Type[T],
      max_completion_tokens: int,
      reasoning_effort: Optional[str] = None,
      gemini_thinking_level: Optional[str] = None,
  ) -> Tuple[Optional[T], str, Dict[str, Any]]:
    """
    Returns ``(parsed, raw_output, meta)``. Never raises: provider problems
    are reported through ``meta`` (``llm_available`` / ``llm_error``).
    """
    provider = _provider_for_model(model, self.provider)
    user_content = json.dumps(user_payload, ensure_ascii=False)

    if provider == "gemini":
      client, unavailable_reason = self._gemini_client_or_reason()
      if client is None:
        return None, "", {
            "model": model,
            "provider": provider,
            "llm_available": False,
            "unavailable_reason": unavailable_reason,
        }
      prompt = _compose_prompt(system_prompt, user_content)
      try:
        parsed, raw_output, resolved_model = await asyncio.to_thread(
            _gemini_structured_sync,
            client,
            model,
            prompt,
            response_model,
            max_completion_tokens,
            gemini_thinking_level,
        )
      except Exception as exc:
        logger.error("[AGENT LLM ERROR] model=%s provider=%s error=%s",
                     model, provider, exc)
        return None, "", {
            "model": model,
            "provider": provider,
            "llm_available": True,
            "llm_output_empty_or_error": True,
            "llm_error": str(exc),
        }
      _log_debug(f"[AGENT LLM RAW] provider={provider} model={resolved_model}\n"
                 f"{raw_output or '(empty)'}\n[AGENT LLM RAW END]")
      return parsed, raw_output, {
          "model": model,
          "resolved_model": resolved_model,
          "provider": provider,
          "llm_available": True,
      }

    client, unavailable_reason = self._openai_client_or_reason()
    if client is None:
      return None, "", {
          "model": model,
          "provider": provider,
          "llm_available": False,
          "unavailable_reason": unavailable_reason,
      }

    messages = _compose_openai_messages(system_prompt, user_content)
    kwargs: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "response_format": {"type": "json_object"},
        "max_completion_tokens": max_completion_tokens,
    }
    effort = reasoning_effort or os.getenv("OPENAI_REASONING_EFFORT")
    if effort:
      kwargs["reasoning_effort"] = effort
    try:
      completion = await client.chat.completions.create(**kwargs)
    except Exception as exc:
      logger.error("[AGENT LLM ERROR] model=%s provider=%s error=%s",
                   model, provider, exc)
      return None, "", {
          "model": model,
          "provider": provider,
          "llm_available": True,
          "llm_output_empty_or_error": True,
          "llm_error": str(exc),
      }
    raw_output = _extract_message_text(completion.choices[0].message.content)
    parsed = _validate_structured_response(response_model, raw_output)
    _log_debug(f"[AGENT LLM RAW] provider={provider} model={model}\n"
               f"{raw_output or '(empty)'}\n[AGENT LLM RAW END]")
    return parsed, raw_output, {
        "model": model,
        "provider": provider,
        "reasoning_effort": effort,
        "llm_available": True,
    }
