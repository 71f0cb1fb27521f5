from datetime import datetime
from typing import TypeVar, Generic, Type, Optional
from uuid import uuid4

from sqlalchemy import func, or_, and_, update
from sqlalchemy.orm import Session

from autopost.core.enums import JobStatus, ACTIVE_JOB_STATUSES
from autopost.db.base import Base
from autopost.db.types import as_utc

T = TypeVar("T", bound=Base)

class BaseRepository(Generic[T]):
    """Generic repository for CRUD operations."""

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model

    def get_by_id(self, id: str) -> Optional[T]:
        return self.db.query(self.model).filter(self.model.id == id).first()

    def get_many(self, ids: list[str]) -> list[T]:
        if not ids:
            return []
        return self.db.query(self.model).filter(self.model.id.in_(ids)).all()

    def get_all(self) -> list[T]:
        return self.db.query(self.model).all()

    def create(self, **kwargs) -> T:
        if "id" not in kwargs:
            kwargs["id"] = str(uuid4())
        instance = self.model(**kwargs)
        self.db.add(instance)
        return instance

    def delete(self, id: str) -> bool:
        instance = self.get_by_id(id)
        if instance:
            self.db.delete(instance)
            return True
        return False


class JobRepository(BaseRepository):
    """Repository for TikTokJob operations."""

    def __init__(self, db: Session):
        from autopost.models import TikTokJob
        super().__init__(db, TikTokJob)

    def list(self, status: str | None = None, limit: int = 100):
        q = self.db.query(self.model)
        if status:
            q = q.filter(self.model.status == status)
        return q.order_by(self.model.created_at.desc()).limit(limit).all()

    def get_active_for_product(self, product_id: str):
        return self.db.query(self.model).filter(
            self.model.product_id == product_id,
            self.model.status.in_(ACTIVE_JOB_STATUSES),
        ).first()

    def get_due(self, now: datetime, limit: int):
        """PENDING jobs whose slot has passed and that have a video and an account."""
        return self.db.query(self.model).filter(
            self.model.status == JobStatus.PENDING.value,
            self.model.scheduled_at.is_not(None),
            self.model.scheduled_at <= now,
            self.model.video_url.is_not(None),
            self.model.tiktok_account_id.is_not(None),
        ).order_by(self.model.scheduled_at.asc()).limit(limit).all()

    def get_needing_pipeline(self, limit: int, with_hooks: bool = True, with_schedule: bool = True):
        """
        PENDING jobs with work left. Hookless jobs only count until they have a
        video, and unscheduled ones only when something can schedule them.
        """
        branches = [and_(self.model.video_url.is_(None), self.model.image_url.is_not(None))]
        if with_hooks:
            branches.append(and_(self.model.hook1.is_(None), self.model.video_url.is_(None)))
        if with_schedule:
            branches.append(and_(self.model.video_url.is_not(None), self.model.scheduled_at.is_(None)))
        return self.db.query(self.model).filter(
            self.model.status == JobStatus.PENDING.value,
            or_(*branches),
        ).order_by(self.model.created_at.asc()).limit(limit).all()

    def count_scheduled_between(self, start: datetime, end: datetime, account_id: str | None = None) -> int:
        q = self.db.query(func.count(self.model.id)).filter(
            self.model.status.in_(ACTIVE_JOB_STATUSES),
            self.model.scheduled_at >= start,
            self.model.scheduled_at < end,
        )
        if account_id:
            q = q.filter(self.model.tiktok_account_id == account_id)
        return q.scalar() or 0

    def last_scheduled_at(self, account_id: str | None = None) -> datetime | None:
        q = self.db.query(func.max(self.model.scheduled_at)).filter(
            self.model.status.in_(ACTIVE_JOB_STATUSES),
            self.model.scheduled_at.is_not(None),
        )
        if account_id:
            q = q.filter(self.model.tiktok_account_id == account_id)
        latest = q.scalar()
        if latest is None:
            return None
        if isinstance(latest, str):
            latest = datetime.fromisoformat(latest)
        return as_utc(latest)

    def count_by_status(self) -> dict[str, int]:
        rows = self.db.query(self.model.status, func.count(self.model.id)).group_by(self.model.status).all()
        return {status: count for status, count in rows}

    def claim_for_posting(self, job_id: str) -> bool:
        """Atomically move PENDING -> PROCESSING; False if another sweep owns it."""
        result = self.db.execute(
            update(self.model)
            .where(self.model.id == job_id, self.model.status == JobStatus.PENDING.value)
            .values(status=JobStatus.PROCESSING.value, progress=10, progress_step="Starting upload...")
        )
        self.db.commit()
        return result.rowcount == 1

    def increment_retry(self, job_id: str) -> int:
        self.db.execute(
            update(self.model)
            .where(self.model.id == job_id)
            .values(retry_count=self.model.retry_count + 1)
        )
        self.db.commit()
        return self.db.query(self.model.retry_count).filter(self.model.id == job_id).scalar()


class AccountRepository(BaseRepository):
    """Repository for TikTokAccount operations."""

    def __init__(self, db: Session):
        from autopost.models import TikTokAccount
        super().__init__(db, TikTokAccount)

    def get_active(self):
        return self.db.query(self.model).filter(
            self.model.is_active == True
        ).all()

    def get_by_open_id(self, open_id: str):
        return self.db.query(self.model).filter(self.model.open_id == open_id).first()

    def least_recently_posted(self):
        """Active account that posted longest ago; never-posted accounts first."""
        return self.db.query(self.model).filter(
            self.model.is_active == True
        ).order_by(
            self.model.last_post_at.is_not(None),
            self.model.last_post_at.asc(),
            self.model.created_at.asc(),
        ).first()

    def reset_daily_count_if_due(self, account_id: str, now: datetime, next_reset: datetime) -> bool:
        """Zero the counter once per boundary; repeated calls are no-ops."""
        result = self.db.execute(
            update(self.model)
            .where(
                self.model.id == account_id,
                or_(self.model.daily_post_reset_at.is_(None), self.model.daily_post_reset_at <= now),
            )
            .values(daily_post_count=0, daily_post_reset_at=next_reset)
        )
        self.db.commit()
        return result.rowcount == 1

    def reserve_post(self, account_id: str, cap: int) -> bool:
        """Increment the daily counter only while it is below the cap."""
        result = self.db.execute(
            update(self.model)
            .where(self.model.id == account_id, self.model.daily_post_count < cap)
            .values(daily_post_count=self.model.daily_post_count + 1)
        )
        self.db.commit()
        return result.rowcount == 1

    def release_post(self, account_id: str) -> None:
        self.db.execute(
            update(self.model)
            .where(self.model.id == account_id, self.model.daily_post_count > 0)
            .values(daily_post_count=self.model.daily_post_count - 1)
        )
        self.db.commit()

    def stamp_last_post(self, account_id: str, posted_at: datetime) -> None:
        self.db.execute(
            update(self.model)
            .where(self.model.id == account_id)
            .values(last_post_at=posted_at)
        )
        self.db.commit()


class ProductRepository(BaseRepository):
    """Repository for Product reads."""

    def __init__(self, db: Session):
        from autopost.models import Product
        super().__init__(db, Product)
