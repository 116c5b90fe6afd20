from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    return_url: str = Field(default="/", alias="returnUrl", min_length=1, max_length=2048)


class CallbackRequest(BaseModel):
    code: str | None = Field(default=None, min_length=1)
    state: str = Field(min_length=1, max_length=256)
    error: str | None = None


class CancelRequest(BaseModel):
    state: str = Field(min_length=1, max_length=256)
