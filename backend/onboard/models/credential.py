import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum as SAEnum, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from onboard.database import Base
from onboard.models.enums import CredentialPlatform
from onboard.utils.timeutils import utcnow


class UserLinkedCredential(Base):
    """External identity a user proved while completing a credential step."""

    __tablename__ = "user_linked_credentials"
    __table_args__ = (
        UniqueConstraint("user_id", "platform", name="uniq_user_platform"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    platform: Mapped[CredentialPlatform] = mapped_column(
        SAEnum(CredentialPlatform, name="platform_enum"), nullable=False
    )
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)
    username: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
