"""Plan catalog, per-plan feature limits, and the usage event log.

plan_limits.time_window semantics:
  - 0            → count ceiling ("at most N at once", e.g. active wizards)
  - > 0          → rate limit over a trailing window of that length
"""

import uuid
from datetime import datetime, timedelta

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Interval,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from onboard.database import Base
from onboard.models.enums import Feature
from onboard.utils.timeutils import utcnow

# Store the enum *values* ("ai_chat_message"), not the member names.
feature_enum = SAEnum(
    Feature,
    name="feature_enum",
    values_callable=lambda e: [m.value for m in e],
)


class Plan(Base):
    __tablename__ = "plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stripe_price_id: Mapped[str | None] = mapped_column(String(255), unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    limits = relationship(
        "PlanLimit", back_populates="plan", cascade="all, delete-orphan"
    )


class PlanLimit(Base):
    __tablename__ = "plan_limits"

    plan_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("plans.id", ondelete="CASCADE"), primary_key=True
    )
    feature: Mapped[Feature] = mapped_column(feature_enum, primary_key=True)
    time_window: Mapped[timedelta] = mapped_column(Interval, primary_key=True)
    hard_limit: Mapped[int] = mapped_column(BigInteger, nullable=False)

    plan = relationship("Plan", back_populates="limits")

    @property
    def is_count_ceiling(self) -> bool:
        return self.time_window == timedelta(0)


class UsageEvent(Base):
    """Append-only log; one row per consumption of a rate-limited feature."""

    __tablename__ = "usage_events"
    __table_args__ = (
        Index(
            "idx_usage_events_community_feature_time",
            "community_id", "feature", "occurred_at",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    community_id: Mapped[str] = mapped_column(String(100), nullable=False)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    feature: Mapped[Feature] = mapped_column(feature_enum, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    # Retries with the same key never log a second event.
    idempotency_key: Mapped[str | None] = mapped_column(String(255), unique=True)
