"""Admin-owned wizard configuration.

A Wizard is an ordered list of Steps. step_order is unique per wizard;
on PostgreSQL the constraint is DEFERRABLE INITIALLY IMMEDIATE (see the
initial Alembic revision) so reorders can also run with deferred checks.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from onboard.database import Base
from onboard.utils.timeutils import utcnow


class Wizard(Base):
    __tablename__ = "onboarding_wizards"
    __table_args__ = (
        UniqueConstraint("community_id", "name", name="uniq_wizard_name_per_community"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    community_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("communities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # True → roles are granted as each step completes, not at the end
    assign_roles_per_step: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    community = relationship("Community", back_populates="wizards")
    steps = relationship(
        "Step",
        back_populates="wizard",
        order_by="Step.step_order",
        cascade="all, delete-orphan",
    )


class Step(Base):
    __tablename__ = "onboarding_steps"
    __table_args__ = (
        UniqueConstraint("wizard_id", "step_order", name="uniq_step_order_per_wizard"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    wizard_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("onboarding_wizards.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_type_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("step_types.id", ondelete="RESTRICT"), nullable=False
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    config: Mapped[dict] = mapped_column(JSON, default=dict)
    target_role_id: Mapped[str | None] = mapped_column(String(100))
    is_mandatory: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    wizard = relationship("Wizard", back_populates="steps")
    step_type = relationship("StepType")
