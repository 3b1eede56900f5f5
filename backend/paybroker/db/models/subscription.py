"""Subscription model: a user's paid entitlement and current period."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from paybroker.db.base import Base


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    plan = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False)  # trialing | active | past_due | canceled
    provider = Column(String(50), nullable=False)

    gateway_subscription_code = Column(String(255), unique=True, nullable=True)
    gateway_customer_code = Column(String(255), nullable=True)

    current_period_start = Column(DateTime(timezone=True), nullable=False)
    current_period_end = Column(DateTime(timezone=True), nullable=False)
    auto_renew = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
