from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, BigIntPK


class AppUser(Base):
    __tablename__ = "app_user"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    display_name: Mapped[str | None] = mapped_column(Text)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, index=True)
    token_version: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0"
    )

    # Subscription state, read by the tier resolver
    tier: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default="free"
    )
    subscription_status: Mapped[str | None] = mapped_column(String(20))  # e.g. 'ACTIVE'
    free_trial_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint("tier IN ('free', 'premium')", name="check_tier"),
    )
