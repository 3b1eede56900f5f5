"""Admin schemas for gateway credential management."""

from datetime import datetime

from pydantic import BaseModel, Field


class PaymentSettingsPayload(BaseModel):
    is_active: bool = False
    # Secret fields: plaintext to set, mask token or "" to keep.
    # Other fields: "" clears.
    credentials: dict[str, str | None] = Field(default_factory=dict)


class PaymentSettingsResponse(BaseModel):
    provider: str
    is_active: bool
    configured: bool
    credentials: dict[str, str]
    updated_at: datetime | None = None


class RotationStatus(BaseModel):
    provider: str
    needs_rotation: bool
    error: str | None = None


class ReencryptResponse(BaseModel):
    rewritten: dict[str, int]
