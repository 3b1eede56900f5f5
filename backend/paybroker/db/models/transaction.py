"""Transaction model: one attempt to purchase a subscription tier."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, Numeric, String

from paybroker.db.base import Base


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reference = Column(String(255), unique=True, nullable=False, index=True)

    user_id = Column(String(36), nullable=True, index=True)  # NULL for guest attempts
    email = Column(String(255), nullable=True)

    amount = Column(Numeric(18, 3, asdecimal=False), nullable=False)  # major units
    currency = Column(String(3), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    gateway = Column(String(50), nullable=False)
    payment_method = Column(String(50), nullable=True)
    plan = Column(String(50), nullable=False)
    billing_interval = Column(String(20), nullable=False, default="monthly")

    # Stage markers, idempotency key, checkout URL, gateway refs
    meta = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    paid_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
