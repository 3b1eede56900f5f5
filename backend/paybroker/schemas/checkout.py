"""Pydantic schemas for checkout session creation and confirmation."""

from pydantic import BaseModel, EmailStr, Field


class CreateSessionRequest(BaseModel):
    plan_id: str
    currency: str | None = None
    country_code: str | None = None
    success_url: str
    cancel_url: str | None = None
    email: EmailStr | None = None
    provider: str | None = None
    payment_method: str | None = None
    billing_interval: str | None = None
    idempotency_key: str | None = Field(default=None, max_length=255)


class CreateSessionResponse(BaseModel):
    provider: str
    reference: str
    url: str
    test_mode: bool


class ConfirmRequest(BaseModel):
    provider: str
    reference: str | None = None
    transaction_id: str | None = None  # Flutterwave numeric id from the redirect


class ConfirmResponse(BaseModel):
    status: str
    reference: str
    plan_id: str
    subscription_id: int | None
    already_applied: bool
