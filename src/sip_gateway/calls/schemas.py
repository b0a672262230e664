from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class InitiateCallRequest(BaseModel):
    """Outbound call request. Extra fields are forwarded to the backend as-is."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    from_: str = Field(..., alias="from", min_length=1)
    to: str = Field(..., min_length=1)

    def to_backend(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class TransferCallRequest(BaseModel):
    destination: str = Field(..., min_length=1)


class MuteCallRequest(BaseModel):
    participant: str | None = None
