"""
Posting Scheduler - picks the next posting slot for an account.

A slot always lands inside a configured best hour, at least
min_post_interval after the account's latest scheduled post, on a day
that still has room under max_posts_per_day. Hours and "today" are
evaluated in the configured posting timezone.
"""
from __future__ import annotations

import logging
import random
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from autopost.core.config import PipelineConfig
from autopost.core.enums import JobStatus
from autopost.db.repositories import JobRepository
from autopost.db.types import as_utc, utcnow

logger = logging.getLogger(__name__)

# Random minute offset stays in the first half of the hour
MINUTE_JITTER = 30
MAX_LOOKAHEAD_DAYS = 14

DayCounter = Callable[[date], int]


def _at(day: date, hour: int, minute: int, tz) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=tz)


def compute_next_slot(
    now: datetime,
    config: PipelineConfig,
    last_scheduled_at: Optional[datetime] = None,
    count_on_day: DayCounter = lambda day: 0,
    rng: random.Random | None = None,
) -> datetime:
    """Pure slot computation; returns an aware UTC datetime."""
    rng = rng or random.Random()
    tz = config.zone
    hours = config.best_posting_hours
    cap = config.max_posts_per_day
    interval = timedelta(minutes=config.min_post_interval_minutes)

    local_now = as_utc(now).astimezone(tz)
    earliest = local_now
    if last_scheduled_at is not None:
        earliest = max(earliest, as_utc(last_scheduled_at).astimezone(tz) + interval)

    today = local_now.date()
    if count_on_day(today) >= cap:
        slot = _at(today + timedelta(days=1), hours[0], 0, tz)
        if slot >= earliest and count_on_day(slot.date()) < cap:
            return slot.astimezone(timezone.utc)
        earliest = max(earliest, slot)

    later = [h for h in hours if h > earliest.hour]
    if later:
        day, hour = earliest.date(), later[0]
    else:
        day, hour = earliest.date() + timedelta(days=1), hours[0]

    for _ in range(MAX_LOOKAHEAD_DAYS):
        if count_on_day(day) < cap:
            return _at(day, hour, rng.randrange(MINUTE_JITTER), tz).astimezone(timezone.utc)
        day, hour = day + timedelta(days=1), hours[0]

    raise RuntimeError(f"No posting slot with free capacity in the next {MAX_LOOKAHEAD_DAYS} days")


class PostingScheduler:
    def __init__(self, db: Session, config: PipelineConfig,
                 clock: Callable[[], datetime] = utcnow, rng: random.Random | None = None):
        self.db = db
        self.config = config
        self.clock = clock
        self.rng = rng or random.Random()
        self.jobs = JobRepository(db)

    def _day_bounds(self, day: date) -> tuple[datetime, datetime]:
        tz = self.config.zone
        start = datetime.combine(day, time.min, tzinfo=tz)
        return start.astimezone(timezone.utc), (start + timedelta(days=1)).astimezone(timezone.utc)

    def count_on_day(self, day: date, account_id: Optional[str] = None) -> int:
        start, end = self._day_bounds(day)
        return self.jobs.count_scheduled_between(start, end, account_id)

    def next_slot(self, account_id: Optional[str] = None) -> datetime:
        slot = compute_next_slot(
            now=self.clock(),
            config=self.config,
            last_scheduled_at=self.jobs.last_scheduled_at(account_id),
            count_on_day=lambda day: self.count_on_day(day, account_id),
            rng=self.rng,
        )
        logger.info(f"[scheduler] Next slot for {account_id or 'any account'}: {slot.isoformat()}")
        return slot

    def scheduler_stats(self) -> dict[str, int]:
        counts = self.jobs.count_by_status()
        today_start, today_end = self._day_bounds(as_utc(self.clock()).astimezone(self.config.zone).date())
        scheduled = self.jobs.db.query(self.jobs.model).filter(
            self.jobs.model.status == JobStatus.PENDING.value,
            self.jobs.model.scheduled_at.is_not(None),
        ).count()
        posted_today = self.jobs.db.query(self.jobs.model).filter(
            self.jobs.model.status == JobStatus.DONE.value,
            self.jobs.model.posted_at >= today_start,
            self.jobs.model.posted_at < today_end,
        ).count()
        return {
            "pending": counts.get(JobStatus.PENDING.value, 0),
            "scheduled": scheduled,
            "processing": counts.get(JobStatus.PROCESSING.value, 0),
            "done": counts.get(JobStatus.DONE.value, 0),
            "failed": counts.get(JobStatus.FAILED.value, 0),
            "posted_today": posted_today,
        }

    def cancel_scheduled_job(self, job_id: str) -> bool:
        job = self.jobs.get_by_id(job_id)
        if not job or job.status != JobStatus.PENDING.value or job.scheduled_at is None:
            return False
        job.scheduled_at = None
        job.tiktok_account_id = None
        job.progress_step = "Schedule cancelled"
        self.db.commit()
        return True

    def reschedule_failed_job(self, job_id: str) -> Optional[datetime]:
        """FAILED -> PENDING at the next slot for its account, retry budget restored."""
        job = self.jobs.get_by_id(job_id)
        if not job or job.status != JobStatus.FAILED.value or not job.video_url:
            return None
        slot = self.next_slot(job.tiktok_account_id)
        job.scheduled_at = slot
        job.status = JobStatus.PENDING.value
        job.retry_count = 0
        job.error = None
        job.progress_step = f"Rescheduled for {slot.isoformat()}"
        self.db.commit()
        return slot
