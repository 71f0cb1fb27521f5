from datetime import datetime

from sqlalchemy import String, Integer, Boolean, Text
from sqlalchemy.orm import Mapped, mapped_column

from autopost.db.base import Base
from autopost.db.types import UTCDateTime, utcnow

class TikTokAccount(Base):
    __tablename__ = "tiktok_accounts"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String, nullable=True)
    open_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)

    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    scope: Mapped[str | None] = mapped_column(String, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Rolling daily quota (boundary = next midnight UTC)
    daily_post_count: Mapped[int] = mapped_column(Integer, default=0)
    daily_post_reset_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_post_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
