"""
TikTok Publisher - per-account token lifecycle, daily quota and the post flow.
All counter mutations are single guarded UPDATEs (see AccountRepository).
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from autopost.core.config import PipelineConfig
from autopost.core.enums import JobStatus, PublishMode
from autopost.core.errors import AuthError, RateLimitError
from autopost.core.logging import JobContext
from autopost.db.repositories import AccountRepository, JobRepository
from autopost.db.types import as_utc, utcnow
from autopost.services.tiktok_client import TikTokClient

logger = logging.getLogger(__name__)

TOKEN_REFRESH_BUFFER = timedelta(minutes=5)


def next_utc_midnight(now: datetime) -> datetime:
    now = as_utc(now)
    return datetime(now.year, now.month, now.day, tzinfo=timezone.utc) + timedelta(days=1)


@dataclass
class DailyLimit:
    can_post: bool
    remaining: int
    count: int


@dataclass
class PostResult:
    success: bool
    post_id: Optional[str] = None
    publish_id: Optional[str] = None
    error: Optional[str] = None


class TikTokPublisher:
    def __init__(
        self,
        db: Session,
        client: TikTokClient,
        config: PipelineConfig,
        clock: Callable[[], datetime] = utcnow,
        mode: str = PublishMode.DIRECT_POST.value,
    ):
        self.db = db
        self.client = client
        self.config = config
        self.clock = clock
        self.mode = mode
        self.accounts = AccountRepository(db)
        self.jobs = JobRepository(db)

    def get_valid_access_token(self, account_id: str) -> str:
        account = self.accounts.get_by_id(account_id)
        if not account:
            raise AuthError(f"TikTok account not found: {account_id}")
        if not account.is_active:
            raise AuthError(f"TikTok account {account_id} is inactive")

        now = self.clock()
        expires_at = as_utc(account.token_expires_at)
        if expires_at is not None and expires_at - now > TOKEN_REFRESH_BUFFER:
            return account.access_token

        if not account.refresh_token:
            raise AuthError(f"TikTok account {account_id} token expired and has no refresh token")

        logger.info(f"[publisher] Refreshing access token for account {account_id}")
        try:
            tokens = self.client.refresh_access_token(account.refresh_token)
        except AuthError:
            raise
        except Exception as e:
            raise AuthError(f"Token refresh failed for account {account_id}: {e}", cause=e) from e

        account.access_token = tokens.access_token
        if tokens.refresh_token:
            account.refresh_token = tokens.refresh_token
        account.token_expires_at = now + timedelta(seconds=tokens.expires_in)
        if tokens.scope:
            account.scope = tokens.scope
        self.db.commit()
        return account.access_token

    def check_daily_limit(self, account_id: str) -> DailyLimit:
        now = self.clock()
        if self.accounts.reset_daily_count_if_due(account_id, now, next_utc_midnight(now)):
            logger.info(f"[publisher] Daily post counter reset for account {account_id}")

        account = self.accounts.get_by_id(account_id)
        if not account:
            return DailyLimit(can_post=False, remaining=0, count=0)
        self.db.refresh(account)

        cap = self.config.max_posts_per_day
        count = account.daily_post_count or 0
        return DailyLimit(can_post=count < cap, remaining=max(0, cap - count), count=count)

    def _update_job(self, job_id: str, **values) -> None:
        job = self.jobs.get_by_id(job_id)
        if job:
            for key, value in values.items():
                setattr(job, key, value)
            self.db.commit()

    def post_video(self, account_id: str, job_id: str, video_url: str, caption: str) -> PostResult:
        """
        Publish one video. The account's quota slot is reserved up front and
        handed back if anything fails, so concurrent sweeps cannot overshoot
        the daily cap.
        """
        reserved = False
        publish_id = None
        with JobContext(job_id=job_id, account_id=account_id):
            try:
                limit = self.check_daily_limit(account_id)
                if not limit.can_post:
                    raise RateLimitError(f"Daily post limit reached ({self.config.max_posts_per_day})")
                if not self.accounts.reserve_post(account_id, self.config.max_posts_per_day):
                    raise RateLimitError(f"Daily post limit reached ({self.config.max_posts_per_day})")
                reserved = True

                token = self.get_valid_access_token(account_id)

                self._update_job(job_id, status=JobStatus.PROCESSING.value, progress=30,
                                 progress_step="Uploading video to TikTok...")
                init = self.client.init_url_upload(token, video_url, caption, mode=self.mode)
                publish_id = init.publish_id
                logger.info(f"[publisher] Upload initialised, publish_id={publish_id}")

                self._update_job(job_id, progress=50, progress_step="Waiting for TikTok to process video...")
                status = self.client.wait_for_publish(token, publish_id)

                post_id = status.post_id or publish_id
                posted_at = self.clock()
                job = self.jobs.get_by_id(job_id)
                job.mark_posted(post_id, posted_at)
                self.db.commit()

            except Exception as e:
                self.db.rollback()
                if reserved:
                    self.accounts.release_post(account_id)
                message = str(e) or e.__class__.__name__
                logger.error(f"[publisher] Post failed for job {job_id}: {message}")
                self._update_job(job_id, status=JobStatus.FAILED.value, error=message,
                                 progress_step="Posting failed")
                return PostResult(success=False, publish_id=publish_id, error=message)

            # Job is already DONE; stamp errors are logged only
            try:
                self.accounts.stamp_last_post(account_id, posted_at)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.warning(f"[publisher] Posted job {job_id} but could not stamp last_post_at: {e}")

            logger.info(f"[publisher] Posted job {job_id} as {post_id}")
            return PostResult(success=True, post_id=post_id, publish_id=publish_id)
