from datetime import datetime
from pydantic import BaseModel, Field

from autopost.core.enums import RenderBackend, TextStyle, WatermarkPosition, WatermarkType

class WatermarkOptions(BaseModel):
    enabled: bool = False
    type: WatermarkType = WatermarkType.TEXT
    text: str | None = None
    image_path: str | None = None  # local file, e.g. static/brand/logo.png
    position: WatermarkPosition = WatermarkPosition.BOTTOM_RIGHT
    opacity: float = Field(default=0.7, ge=0, le=1)
    scale: float = Field(default=0.15, gt=0, le=1)
    margin: int = Field(default=30, ge=0, le=300)

class VideoOptionsIn(BaseModel):
    background_music: str | None = None
    music_volume: float | None = Field(default=None, ge=0, le=1)
    show_text_overlay: bool | None = None
    text_style: TextStyle | None = None
    watermark: WatermarkOptions | None = None
    backend: RenderBackend = RenderBackend.SLIDESHOW
    image_style: str | None = None

class RunPipelineIn(BaseModel):
    job_id: str
    generate_hooks: bool | None = None
    generate_video: bool | None = None
    auto_schedule: bool | None = None
    video: VideoOptionsIn = Field(default_factory=VideoOptionsIn)
    background: bool = False

class ProcessPendingIn(BaseModel):
    limit: int = Field(default=5, ge=1, le=50)

class PipelineResultOut(BaseModel):
    success: bool
    stage: str
    message: str
    job_id: str
    error: str | None = None
    scheduled_at: datetime | None = None

    class Config:
        from_attributes = True

class QueuedOut(BaseModel):
    queued: bool = True
    rq_job_id: str

class NextSlotOut(BaseModel):
    account_id: str | None = None
    scheduled_at: datetime

class SchedulerStatsOut(BaseModel):
    pending: int
    scheduled: int
    processing: int
    done: int
    failed: int
    posted_today: int
