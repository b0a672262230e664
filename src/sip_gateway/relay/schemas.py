from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, HttpUrl


class WebhookEventIn(BaseModel):
    """Inbound backend notification."""

    type: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class WebhookAck(BaseModel):
    success: bool = True
    processed: bool = True


class WebhookRegistrationRequest(BaseModel):
    url: HttpUrl | None = None
    events: list[str] = Field(..., min_length=1)


class WebhookRegistration(BaseModel):
    id: str
    url: str
    events: list[str]
    status: str = "active"
    signed: bool
    registered_by: str = Field(..., serialization_alias="registeredBy")
    created_at: str = Field(..., serialization_alias="createdAt")


class ClientMessage(BaseModel):
    """Message sent by a real-time client over the socket."""

    action: str
    subject_id: str | None = Field(default=None, alias="subjectId")
