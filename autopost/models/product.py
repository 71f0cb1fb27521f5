from datetime import datetime

from sqlalchemy import String, JSON
from sqlalchemy.orm import Mapped, mapped_column

from autopost.db.base import Base
from autopost.db.types import UTCDateTime, utcnow

class Product(Base):
    """Read side of the storefront product catalogue."""
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    image_url: Mapped[str | None] = mapped_column(String, nullable=True)
    images: Mapped[list | None] = mapped_column(JSON, nullable=True)
    affiliate_url: Mapped[str | None] = mapped_column(String, nullable=True)
    platform: Mapped[str] = mapped_column(String(20), default="shopee")

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
