"""
Intent resolution and action dispatch
"""

from .intent_router import IntentResolver
from .llm_provider import LLMProvider
from .orchestrator import ActionDispatcher
from .schemas import (
    ActionDescriptor,
    ActionKind,
    CreateEventAction,
    CreateTaskAction,
    IntentOutput,
    ListEventsAction,
    UnknownAction,
)

__all__ = [
    "ActionDescriptor",
    "ActionDispatcher",
    "ActionKind",
    "CreateEventAction",
    "CreateTaskAction",
    "IntentOutput",
    "IntentResolver",
    "ListEventsAction",
    "LLMProvider",
    "UnknownAction",
]
