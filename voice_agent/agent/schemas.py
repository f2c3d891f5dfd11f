from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ActionKind(str, Enum):
  CREATE_EVENT = "create_event"
  CREATE_TASK = "create_task"
  LIST_EVENTS = "list_events"
  UNKNOWN = "unknown"


_ACTION_VALUES = {kind.value for kind in ActionKind}


# ---------------------------------------------------------------------------
#  Language service output schema
# ---------------------------------------------------------------------------

class IntentOutput(BaseModel):
  """Structured output the language service must return."""
  model_config = ConfigDict(extra="ignore", populate_by_name=True)

  action: ActionKind = Field(default=ActionKind.UNKNOWN,
                             description="The action to perform")
  summary: Optional[str] = Field(default=None,
                                 description="Title of event or task")
  description: Optional[str] = Field(default=None,
                                     description="Details or notes")
  startTime: Optional[str] = Field(default=None,
                                   description="ISO 8601 Start DateTime")
  endTime: Optional[str] = Field(default=None,
                                 description="ISO 8601 End DateTime")

  @field_validator("action", mode="before")
  @classmethod
  def _coerce_action(cls, value: Any) -> Any:
    # unrecognized kinds map to UNKNOWN
    if isinstance(value, ActionKind):
      return value
    if isinstance(value, str) and value.strip().lower() in _ACTION_VALUES:
      return value.strip().lower()
    return ActionKind.UNKNOWN

  def to_descriptor(self) -> "ActionDescriptor":
    summary = _clean(self.summary)
    description = _clean(self.description)
    start_time = _clean(self.startTime)
    if self.action == ActionKind.CREATE_EVENT:
      return CreateEventAction(summary=summary,
                               description=description,
                               start_time=start_time,
                               end_time=_clean(self.endTime))
    if self.action == ActionKind.CREATE_TASK:
      return CreateTaskAction(summary=summary,
                              description=description,
                              start_time=start_time)
    if self.action == ActionKind.LIST_EVENTS:
      return ListEventsAction()
    return UnknownAction()


def _clean(value: Optional[str]) -> Optional[str]:
  if not isinstance(value, str):
    return None
  stripped = value.strip()
  return stripped or None


# ---------------------------------------------------------------------------
#  Action descriptors (one variant per kind)
# ---------------------------------------------------------------------------

class CreateEventAction(BaseModel):
  model_config = ConfigDict(frozen=True)

  kind: Literal[ActionKind.CREATE_EVENT] = ActionKind.CREATE_EVENT
  summary: Optional[str] = None
  description: Optional[str] = None
  start_time: Optional[str] = None
  end_time: Optional[str] = None


class CreateTaskAction(BaseModel):
  model_config = ConfigDict(frozen=True)

  kind: Literal[ActionKind.CREATE_TASK] = ActionKind.CREATE_TASK
  summary: Optional[str] = None
  description: Optional[str] = None
  start_time: Optional[str] = None


class ListEventsAction(BaseModel):
  model_config = ConfigDict(frozen=True)

  kind: Literal[ActionKind.LIST_EVENTS] = ActionKind.LIST_EVENTS


class UnknownAction(BaseModel):
  model_config = ConfigDict(frozen=True)

  kind: Literal[ActionKind.UNKNOWN] = ActionKind.UNKNOWN


ActionDescriptor = Annotated[
    Union[CreateEventAction, CreateTaskAction, ListEventsAction, UnknownAction],
    Field(discriminator="kind"),
]
