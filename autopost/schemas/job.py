from datetime import datetime
from pydantic import BaseModel, Field

class JobOut(BaseModel):
    id: str
    product_id: str
    product_name: str
    affiliate_url: str | None = None
    platform: str
    hook1: str | None = None
    hook2: str | None = None
    hook3: str | None = None
    ending: str | None = None
    caption: str | None = None
    hashtags: list[str] | None = None
    image_url: str | None = None
    image_urls: list[str] | None = None
    video_url: str | None = None
    thumbnail_url: str | None = None
    video_duration: float | None = None
    status: str
    progress: int | None = None
    progress_step: str | None = None
    scheduled_at: datetime | None = None
    posted_at: datetime | None = None
    tiktok_account_id: str | None = None
    tiktok_post_id: str | None = None
    retry_count: int = 0
    error: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True

class JobProgressOut(BaseModel):
    id: str
    progress: int | None = None
    progress_step: str | None = None
    status: str

class JobCreate(BaseModel):
    """Manual job: product data typed in directly."""
    product_name: str
    product_id: str | None = None
    affiliate_url: str | None = None
    platform: str = "shopee"
    image_urls: list[str] = Field(default_factory=list)
    caption: str | None = None

class JobCreateFromProduct(BaseModel):
    product_id: str

class BulkImportIn(BaseModel):
    product_ids: list[str] = Field(default_factory=list, max_length=100)

class RetryIn(BaseModel):
    job_ids: list[str] = Field(default_factory=list, max_length=50)
    run_pipeline: bool = True
    background: bool = False

class ItemResultOut(BaseModel):
    job_id: str
    status: str
    message: str = ""

    class Config:
        from_attributes = True

class BatchSummaryOut(BaseModel):
    processed: int
    success: int
    failed: int
    skipped: int = 0
    results: list[ItemResultOut] = Field(default_factory=list)

    class Config:
        from_attributes = True
