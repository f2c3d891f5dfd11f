from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from ..config import AGENT_INTENT_MODEL, AGENT_INTENT_MAX_TOKENS
from ..errors import ParseError, ResolutionError
from .schemas import ActionDescriptor, IntentOutput

logger = logging.getLogger(__name__)

StructuredCompletion = Callable[..., Awaitable[Tuple[Optional[IntentOutput], str, Dict[str, Any]]]]

INTENT_SYSTEM_PROMPT_TEMPLATE = """You are a helpful calendar assistant.
Current Date/Time: {now_iso}.
User Timezone: {timezone}.

Analyze the user's request and map it to exactly one action:
- create_event: schedule something at a specific time on the calendar.
- create_task: add a to-do item, optionally with a due date.
- list_events: the user wants to hear their upcoming events.
- unknown: anything else.

Return JSON only: {{"action", "summary"?, "description"?, "startTime"?, "endTime"?}}.
Calculated times must be in ISO 8601 format (YYYY-MM-DDTHH:mm:ss) corrected to the user's timezone context.
If the user says "tomorrow at 3pm", calculate the actual date string.
Only set endTime when the user states an end time or a duration; otherwise leave it out.
"""


def _unavailable_reason_message(llm_meta: Dict[str, Any]) -> str:
  unavailable_reason = str(llm_meta.get("unavailable_reason") or "").strip()
  if unavailable_reason == "gemini_api_key_missing":
    return "GEMINI_API_KEY is missing."
  if unavailable_reason == "openai_api_key_missing":
    return "OPENAI_API_KEY is missing."
  return "LLM provider is unavailable."


class IntentResolver:
  """
  Turns free-form text into an ActionDescriptor using a structured completion.

  :param completion: async callable with the signature of
      ``LLMProvider.run_structured_completion``
  :param model: model name; the provider is picked from it
  """

  def __init__(self,
               completion: StructuredCompletion,
               model: str = AGENT_INTENT_MODEL,
               max_completion_tokens: int = AGENT_INTENT_MAX_TOKENS) -> None:
    self.completion = completion
    self.model = model
    self.max_completion_tokens = max_completion_tokens

  def build_system_prompt(self, now_iso: str, timezone: str) -> str:
    return INTENT_SYSTEM_PROMPT_TEMPLATE.format(now_iso=now_iso,
                                                timezone=timezone)

  async def resolve(self, text: str, now_iso: str,
                    timezone: str) -> ActionDescriptor:
    payload = {
        "user_text": text,
        "now_iso": now_iso,
        "timezone": timezone,
    }
    parsed, raw_text, llm_meta = await self.completion(
        model=self.model,
        system_prompt=self.build_system_prompt(now_iso, timezone),
        user_payload=payload,
        response_model=IntentOutput,
        max_completion_tokens=self.max_completion_tokens,
    )

    if llm_meta.get("llm_available") is False:
      raise ResolutionError(_unavailable_reason_message(llm_meta))
    if llm_meta.get("llm_output_empty_or_error"):
      llm_error = str(llm_meta.get("llm_error") or "").strip()
      raise ResolutionError(
          f"LLM call failed: {llm_error[:220]}" if llm_error else "LLM call failed.")
    if parsed is None:
      if isinstance(raw_text, str) and raw_text.strip():
        raise ParseError("Structured parse failed: model output is not a JSON object.",
                         raw_output=raw_text)
      raise ParseError("Structured model response was empty.")

    descriptor = parsed.to_descriptor()
    logger.info("[INTENT] model=%s provider=%s kind=%s",
                llm_meta.get("resolved_model") or self.model,
                llm_meta.get("provider"), descriptor.kind.value)
    return descriptor
