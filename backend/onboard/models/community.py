from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from onboard.database import Base
from onboard.utils.timeutils import utcnow


class Community(Base):
    __tablename__ = "communities"

    # Id issued by the hosting platform, not generated here
    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    # NULL → limits of settings.default_plan_code apply
    current_plan_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("plans.id")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    current_plan = relationship("Plan")
    wizards = relationship("Wizard", back_populates="community")
