from datetime import datetime
from pydantic import BaseModel

class AccountOut(BaseModel):
    id: str
    display_name: str | None = None
    open_id: str | None = None
    is_active: bool
    daily_post_count: int = 0
    daily_post_reset_at: datetime | None = None
    last_post_at: datetime | None = None
    token_expires_at: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True

class AccountUpdate(BaseModel):
    is_active: bool | None = None
    display_name: str | None = None
