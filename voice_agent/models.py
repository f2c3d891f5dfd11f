from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional


class ProcessVoiceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = ""
    user_timezone: Optional[str] = Field(default=None, alias="userTimezone")


class ResultEnvelope(BaseModel):
    success: bool
    message: str
    data: Optional[Any] = None
    # internal; drives the HTTP status, never serialized
    error: Optional[str] = Field(default=None, exclude=True)

    def to_response(self) -> dict:
        payload = self.model_dump()
        if payload.get("data") is None:
            payload.pop("data", None)
        return payload


class AuthStatus(BaseModel):
    authenticated: bool
    user: Optional[dict] = None
