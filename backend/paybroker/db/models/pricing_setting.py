"""PricingSetting model: admin local-price overrides and FX rates (single row)."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer

from paybroker.db.base import Base


class PricingSetting(Base):
    __tablename__ = "pricing_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    local_prices = Column(JSON, nullable=False, default=dict)  # {"pro": {"NGN": 15000}}
    fx_rates = Column(JSON, nullable=False, default=dict)  # {"KES": 129.5} units per base

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
