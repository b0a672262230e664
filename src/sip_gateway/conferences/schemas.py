from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CreateConferenceRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = Field(..., min_length=1)

    def to_backend(self) -> dict[str, Any]:
        return self.model_dump()


class JoinConferenceRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    participant: str = Field(..., min_length=1)

    def to_backend(self) -> dict[str, Any]:
        return self.model_dump()


class LeaveConferenceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    participant_id: str = Field(..., alias="participantId", min_length=1)
