from datetime import datetime

from sqlalchemy import String, Integer, Float, Text, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column

from autopost.core.enums import JobStatus
from autopost.db.base import Base
from autopost.db.types import UTCDateTime, utcnow

class TikTokJob(Base):
    __tablename__ = "tiktok_jobs"

    id: Mapped[str] = mapped_column(String, primary_key=True)

    # Product identity
    product_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(String, nullable=False)
    affiliate_url: Mapped[str | None] = mapped_column(String, nullable=True)
    platform: Mapped[str] = mapped_column(String(20), default="shopee")

    # Generated creative
    hook1: Mapped[str | None] = mapped_column(Text, nullable=True)
    hook2: Mapped[str | None] = mapped_column(Text, nullable=True)
    hook3: Mapped[str | None] = mapped_column(Text, nullable=True)
    ending: Mapped[str | None] = mapped_column(Text, nullable=True)
    caption: Mapped[str | None] = mapped_column(Text, nullable=True)
    hashtags: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Media
    image_url: Mapped[str | None] = mapped_column(String, nullable=True)
    image_urls: Mapped[list | None] = mapped_column(JSON, nullable=True)
    video_url: Mapped[str | None] = mapped_column(String, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String, nullable=True)
    video_duration: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(20), default=JobStatus.PENDING.value, index=True)
    progress: Mapped[int] = mapped_column(Integer, default=0)
    progress_step: Mapped[str | None] = mapped_column(String, nullable=True)
    scheduled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)
    posted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    tiktok_account_id: Mapped[str | None] = mapped_column(String, ForeignKey("tiktok_accounts.id"), nullable=True)
    tiktok_post_id: Mapped[str | None] = mapped_column(String, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    @property
    def hooks(self) -> list[str]:
        return [h for h in (self.hook1, self.hook2, self.hook3) if h]

    @property
    def script_segments(self) -> list[str]:
        """Spoken order: hooks then the ending CTA."""
        return [s for s in (self.hook1, self.hook2, self.hook3, self.ending) if s]

    @property
    def all_image_urls(self) -> list[str]:
        urls = list(self.image_urls or [])
        if not urls and self.image_url:
            urls = [self.image_url]
        return urls

    def assign_schedule(self, scheduled_at: datetime, account_id: str) -> None:
        if not self.video_url:
            raise ValueError(f"Job {self.id} has no video and cannot be scheduled")
        self.scheduled_at = scheduled_at
        self.tiktok_account_id = account_id
        self.status = JobStatus.PENDING.value

    def mark_posted(self, post_id: str, posted_at: datetime) -> None:
        if not post_id or posted_at is None:
            raise ValueError(f"Job {self.id} needs a post id and timestamp to be marked DONE")
        self.tiktok_post_id = post_id
        self.posted_at = posted_at
        self.status = JobStatus.DONE.value
        self.progress = 100
        self.progress_step = "Posted to TikTok"
        self.error = None
