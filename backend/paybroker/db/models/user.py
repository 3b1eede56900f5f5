"""User model: identity mirror plus denormalized entitlement tier."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from paybroker.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # identity-provider UUID
    email = Column(String(255), nullable=True)
    role = Column(String(50), nullable=False, default="user")

    # Written together with the effective subscription
    subscription_tier = Column(String(50), nullable=False, default="free")

    # Gateway customer mappings
    paystack_customer_code = Column(String(255), nullable=True)
    flutterwave_customer_id = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
