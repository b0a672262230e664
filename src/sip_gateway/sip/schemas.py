from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FreeSwitchCommandRequest(BaseModel):
    command: str = Field(..., min_length=1)
    args: list[str] = Field(default_factory=list)


class CallFileRequest(BaseModel):
    """Asterisk-style call file. Extra fields are forwarded to the backend."""

    model_config = ConfigDict(extra="allow")

    channel: str = Field(..., min_length=1)
    context: str = Field(..., min_length=1)
    extension: str = Field(..., min_length=1)

    def to_backend(self) -> dict[str, Any]:
        return self.model_dump()
