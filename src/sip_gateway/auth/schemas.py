from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class SSOLoginRequest(BaseModel):
    token: str = Field(..., min_length=1, description="Token issued by the SSO identity provider")


class UserInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: str | None = None
    role: str
    permissions: list[str]


class TokenResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    token: str
    token_type: str = Field(default="Bearer", serialization_alias="tokenType")
    expires_in: int = Field(..., serialization_alias="expiresIn")
    expires_at: datetime = Field(..., serialization_alias="expiresAt")
    user: UserInfo | None = None


class VerifyResponse(BaseModel):
    valid: bool = True
    user: UserInfo


class LogoutResponse(BaseModel):
    success: bool = True
    message: str = "Logged out successfully"
