"""
Wire models for provider responses and the loopback payload.
"""
import time
from datetime import datetime, timezone
from typing import Any

import jwt
from pydantic import BaseModel, ConfigDict, Field, model_validator


def _jwt_exp(token: Any) -> int | None:
    """exp claim of a provider access token. Signature is the provider's concern, not ours."""
    if not isinstance(token, str) or not token:
        return None
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None
    exp = claims.get("exp")
    return int(exp) if isinstance(exp, (int, float)) else None


class ExchangeResult(BaseModel):
    """Session issued by the provider: access token, refresh token, absolute expiry."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    access_token: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)
    token_type: str = "bearer"
    expires_at: int | None = None
    user: dict[str, Any] | None = None

    @model_validator(mode="before")
    @classmethod
    def _fill_expires_at(cls, data: Any) -> Any:
        # Prefer expires_at, then expires_in (relative to receipt), then the access token's exp claim
        if not isinstance(data, dict) or data.get("expires_at"):
            return data
        data = dict(data)
        expires_in = data.get("expires_in")
        if isinstance(expires_in, (int, float)) and expires_in > 0:
            data["expires_at"] = int(time.time()) + int(expires_in)
        else:
            data["expires_at"] = _jwt_exp(data.get("access_token"))
        return data

    @property
    def expiry(self) -> datetime | None:
        if self.expires_at is None:
            return None
        return datetime.fromtimestamp(self.expires_at, tz=timezone.utc)

    @property
    def email(self) -> str | None:
        if not self.user:
            return None
        return self.user.get("email")


class PasswordGrantResponse(BaseModel):
    """PKCE password grant: provider answers with a code the desktop app redeems itself."""

    model_config = ConfigDict(extra="ignore")

    code: str = Field(min_length=1)


class LoopbackPayload(BaseModel):
    refresh_token: str = Field(min_length=1)
