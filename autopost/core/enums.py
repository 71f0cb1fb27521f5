from enum import Enum

class JobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    FAILED = "FAILED"

# Statuses that still occupy a posting slot
ACTIVE_JOB_STATUSES = (JobStatus.PENDING.value, JobStatus.PROCESSING.value)

class PipelineStage(str, Enum):
    CREATED = "created"
    HOOKS = "hooks"
    VIDEO = "video"
    SCHEDULED = "scheduled"
    POSTED = "posted"
    FAILED = "failed"

class PublishStatus(str, Enum):
    INIT = "INIT"
    UPLOADING = "UPLOADING"
    PROCESSING_UPLOAD = "PROCESSING_UPLOAD"
    PROCESSING_DOWNLOAD = "PROCESSING_DOWNLOAD"
    SEND_TO_USER_INBOX = "SEND_TO_USER_INBOX"
    PUBLISH_COMPLETE = "PUBLISH_COMPLETE"
    FAILED = "FAILED"

class PublishMode(str, Enum):
    DIRECT_POST = "DIRECT_POST"
    INBOX_DRAFT = "INBOX_DRAFT"

class PrivacyLevel(str, Enum):
    PUBLIC_TO_EVERYONE = "PUBLIC_TO_EVERYONE"
    MUTUAL_FOLLOW_FRIENDS = "MUTUAL_FOLLOW_FRIENDS"
    FOLLOWER_OF_CREATOR = "FOLLOWER_OF_CREATOR"
    SELF_ONLY = "SELF_ONLY"

class TextStyle(str, Enum):
    MINIMAL = "minimal"
    BOLD = "bold"
    NEON = "neon"
    SIMPLE = "simple"

class WatermarkPosition(str, Enum):
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"
    CENTER = "center"

class WatermarkType(str, Enum):
    IMAGE = "image"
    TEXT = "text"

class RenderBackend(str, Enum):
    SLIDESHOW = "slideshow"
    AI_IMAGES = "ai_images"
    TEXT_TO_VIDEO = "text_to_video"

class ImageStyle(str, Enum):
    PRODUCT_SHOWCASE = "product-showcase"
    LIFESTYLE = "lifestyle"
    PROMOTIONAL = "promotional"
    MINIMAL = "minimal"
