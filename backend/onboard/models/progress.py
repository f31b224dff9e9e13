"""Per-user wizard progress.

UserStepProgress   one row per (user, wizard, step); written by upsert so
                   concurrent completions collapse into one final row.
UserWizardCompletion  one row per (user, wizard); version counts re-completions.
UserWizardSession  one row per (user, wizard); the step to resume from.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from onboard.database import Base
from onboard.utils.timeutils import utcnow


class UserStepProgress(Base):
    __tablename__ = "user_wizard_progress"

    user_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    wizard_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("onboarding_wizards.id", ondelete="CASCADE"),
        primary_key=True,
    )
    step_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("onboarding_steps.id", ondelete="CASCADE"),
        primary_key=True,
    )
    # Opaque step-type specific payload (quiz answers, verified handle, ...)
    verified_data: Mapped[dict | None] = mapped_column(JSON(none_as_null=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, default=utcnow)


class UserWizardCompletion(Base):
    __tablename__ = "user_wizard_completions"

    user_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    wizard_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("onboarding_wizards.id", ondelete="CASCADE"),
        primary_key=True,
    )
    completed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)


class UserWizardSession(Base):
    __tablename__ = "user_wizard_sessions"

    user_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    wizard_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("onboarding_wizards.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    last_viewed_step_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("onboarding_steps.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
