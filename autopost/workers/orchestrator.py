"""
Pipeline Orchestrator - Product -> Job -> Hooks -> Video -> Schedule -> Post -> Notify.

Each public method is one sequential call chain; rq workers and the cron
loop call them, and bulk operations loop over jobs one at a time.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from autopost.core.config import PipelineConfig
from autopost.core.enums import JobStatus, PipelineStage, RenderBackend
from autopost.core.logging import JobContext
from autopost.db.context import get_db_session
from autopost.db.repositories import AccountRepository, JobRepository, ProductRepository
from autopost.db.types import utcnow
from autopost.models import TikTokJob
from autopost.services.compositor import VideoCompositor, VideoCompositionRequest, WatermarkSpec, CompositionResult
from autopost.services.hooks import HookGenerator
from autopost.services.notifier import Notifier
from autopost.services.posting_scheduler import PostingScheduler
from autopost.services.publisher import TikTokPublisher
from autopost.services.storage import MediaStorage

logger = logging.getLogger(__name__)

MUSIC_OFF = ("", "none", "off")


def retry_delay(retry_count: int) -> timedelta:
    """Backoff before the next post attempt: 2, 4, 8... minutes."""
    return timedelta(minutes=2 ** retry_count)


def build_caption(job: TikTokJob) -> str:
    parts = [job.caption or job.product_name]
    if job.hashtags:
        parts.append(" ".join(job.hashtags))
    return " ".join(p for p in parts if p)


@dataclass
class VideoOptions:
    background_music: Optional[str] = None
    music_volume: Optional[float] = None
    show_text_overlay: Optional[bool] = None
    text_style: Optional[str] = None
    watermark: Optional[WatermarkSpec] = None
    backend: str = RenderBackend.SLIDESHOW.value
    image_style: Optional[str] = None


@dataclass
class PipelineOptions:
    generate_hooks: Optional[bool] = None
    generate_video: Optional[bool] = None
    auto_schedule: Optional[bool] = None
    video: VideoOptions = field(default_factory=VideoOptions)


@dataclass
class PipelineResult:
    success: bool
    stage: str
    message: str
    job_id: str
    error: Optional[str] = None
    scheduled_at: Optional[datetime] = None


@dataclass
class ItemResult:
    job_id: str
    status: str  # success | failed | skipped
    message: str = ""


@dataclass
class BatchSummary:
    processed: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[ItemResult] = field(default_factory=list)

    def add(self, item: ItemResult):
        self.processed += 1
        if item.status == "success":
            self.success += 1
        elif item.status == "failed":
            self.failed += 1
        else:
            self.skipped += 1
        self.results.append(item)


class JobProgressSink:
    """Writes compositor checkpoints onto the job row in their own session."""

    def __init__(self, session_factory: Callable[[], Session], job_id: str):
        self.session_factory = session_factory
        self.job_id = job_id

    def __call__(self, percent: int, step: str):
        try:
            with get_db_session(self.session_factory) as db:
                db.execute(
                    update(TikTokJob)
                    .where(TikTokJob.id == self.job_id)
                    .values(progress=percent, progress_step=step)
                )
                db.commit()
        except SQLAlchemyError as e:
            logger.warning(f"[pipeline] Progress update failed for {self.job_id}: {e}")


class PipelineOrchestrator:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: PipelineConfig,
        compositor: Optional[VideoCompositor] = None,
        hook_generator: Optional[HookGenerator] = None,
        notifier: Optional[Notifier] = None,
        storage: Optional[MediaStorage] = None,
        publisher_factory: Optional[Callable[[Session], TikTokPublisher]] = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.session_factory = session_factory
        self.config = config
        self.compositor = compositor
        self.hook_generator = hook_generator
        self.notifier = notifier or Notifier([])
        self.storage = storage or MediaStorage()
        self.publisher_factory = publisher_factory
        self.clock = clock
        self.sleep = sleep
        self.rng = rng or random.Random()

    def _scheduler(self, db: Session) -> PostingScheduler:
        return PostingScheduler(db, self.config, clock=self.clock, rng=self.rng)

    @staticmethod
    def _set_progress(db: Session, job: TikTokJob, percent: int, step: str):
        job.progress = percent
        job.progress_step = step
        db.commit()

    # =========================================================================
    # Job creation
    # =========================================================================

    def create_job_from_product(self, product_id: str) -> tuple[TikTokJob, bool]:
        """
        Seed a job from a product. Returns (job, created); an existing
        PENDING/PROCESSING job for the same product is returned as-is.
        """
        with get_db_session(self.session_factory) as db:
            product = ProductRepository(db).get_by_id(product_id)
            if not product:
                raise LookupError(f"Product not found: {product_id}")

            job_product_id = f"{product.platform}-{product.id[-8:]}"
            jobs = JobRepository(db)
            existing = jobs.get_active_for_product(job_product_id)
            if existing:
                logger.info(f"[pipeline] Active job {existing.id} already exists for {job_product_id}")
                return existing, False

            images = list(dict.fromkeys(u for u in [product.image_url, *(product.images or [])] if u))
            job = jobs.create(
                product_id=job_product_id,
                product_name=product.title,
                affiliate_url=product.affiliate_url,
                platform=product.platform,
                image_url=images[0] if images else None,
                image_urls=images,
                status=JobStatus.PENDING.value,
                progress=0,
                progress_step="Created",
                retry_count=0,
            )
            db.commit()
            logger.info(f"[pipeline] Created job {job.id} for product {product.title}")
            return job, True

    def create_jobs_from_products(self, product_ids: list[str]) -> BatchSummary:
        summary = BatchSummary()
        for product_id in product_ids:
            try:
                job, created = self.create_job_from_product(product_id)
                summary.add(ItemResult(job.id, "success" if created else "skipped",
                                       "created" if created else "active job exists"))
            except Exception as e:
                logger.error(f"[pipeline] Import of product {product_id} failed: {e}")
                summary.add(ItemResult(product_id, "failed", str(e)))
        return summary

    # =========================================================================
    # Pipeline run
    # =========================================================================

    def run_auto_pipeline(self, job_id: str, options: Optional[PipelineOptions] = None) -> PipelineResult:
        options = options or PipelineOptions()
        generate_hooks = self.config.auto_generate_hooks if options.generate_hooks is None else options.generate_hooks
        generate_video = self.config.auto_generate_video if options.generate_video is None else options.generate_video
        auto_schedule = self.config.auto_schedule if options.auto_schedule is None else options.auto_schedule

        with JobContext(job_id=job_id), get_db_session(self.session_factory) as db:
            jobs = JobRepository(db)
            job = jobs.get_by_id(job_id)
            if not job:
                return PipelineResult(False, PipelineStage.CREATED.value, "Job not found", job_id,
                                      error="Job not found")
            if job.status in (JobStatus.PROCESSING.value, JobStatus.DONE.value):
                message = "Job is being processed" if job.status == JobStatus.PROCESSING.value else "Job already posted"
                logger.info(f"[pipeline] Skipping job {job_id}: {message}")
                return PipelineResult(False, PipelineStage.CREATED.value, message, job_id, error=message)

            stage = PipelineStage.CREATED
            try:
                # 1. Hooks (non-fatal)
                if generate_hooks and not job.hook1 and self.hook_generator:
                    stage = PipelineStage.HOOKS
                    self._set_progress(db, job, 10, "Generating hooks...")
                    try:
                        hooks = self.hook_generator.generate(job.product_name)
                        job.hook1, job.hook2, job.hook3 = hooks.hook1, hooks.hook2, hooks.hook3
                        job.ending = hooks.ending
                        job.caption = job.caption or hooks.caption
                        job.hashtags = hooks.hashtags
                        self._set_progress(db, job, 25, "Hooks generated")
                    except Exception as e:
                        db.rollback()
                        logger.warning(f"[pipeline] Hook generation failed, continuing without hooks: {e}")

                # 2. Video (fatal)
                backend = options.video.backend
                has_source = bool(job.all_image_urls) or backend != RenderBackend.SLIDESHOW.value
                if generate_video and not job.video_url and has_source and self.compositor:
                    stage = PipelineStage.VIDEO
                    job.status = JobStatus.PROCESSING.value
                    self._set_progress(db, job, 30, "Generating video...")
                    try:
                        result = self._render(job, options.video)
                    except Exception as e:
                        db.rollback()
                        message = f"Video generation failed: {e}"
                        logger.error(f"[pipeline] {message}")
                        job.status = JobStatus.FAILED.value
                        job.error = message
                        job.progress_step = "Video generation failed"
                        db.commit()
                        self.notifier.notify_job_status(job)
                        return PipelineResult(False, stage.value, message, job_id, error=str(e))

                    job.video_url = self.storage.url_for(result.video_path)
                    job.thumbnail_url = self.storage.url_for(result.thumbnail_path)
                    job.video_duration = result.duration
                    job.status = JobStatus.PENDING.value
                    self._set_progress(db, job, 70, "Video generated")

                # 3. Schedule
                if auto_schedule and job.video_url and not job.scheduled_at:
                    account = AccountRepository(db).least_recently_posted()
                    if account:
                        slot = self._scheduler(db).next_slot(account.id)
                        job.assign_schedule(slot, account.id)
                        stage = PipelineStage.SCHEDULED
                        self._set_progress(db, job, 90, f"Scheduled for {slot.isoformat()}")
                    else:
                        logger.warning("[pipeline] No active TikTok account; leaving job unscheduled")

                # 4. Summary
                if job.scheduled_at:
                    stage = PipelineStage.SCHEDULED
                    message = f"Scheduled for {job.scheduled_at.isoformat()}"
                    job.progress = 100
                elif job.video_url:
                    stage = PipelineStage.VIDEO
                    message = "Ready to post"
                    job.progress = 100
                else:
                    message = "Waiting for video"
                job.progress_step = message
                db.commit()

                logger.info(f"[pipeline] Job {job_id}: {message}")
                return PipelineResult(True, stage.value, message, job_id, scheduled_at=job.scheduled_at)

            except Exception as e:
                db.rollback()
                logger.exception(f"[pipeline] Job {job_id} failed at {stage.value}: {e}")
                job = jobs.get_by_id(job_id)
                if job:
                    job.status = JobStatus.FAILED.value
                    job.error = f"Pipeline failed at {stage.value}: {e}"
                    db.commit()
                    self.notifier.notify_job_status(job)
                return PipelineResult(False, stage.value, "Pipeline failed", job_id, error=str(e))

    def _render(self, job: TikTokJob, opts: VideoOptions) -> CompositionResult:
        music = self.config.default_music if opts.background_music is None else opts.background_music
        segments = job.hooks
        ending = job.ending or ""
        if not segments and not ending:
            # No hooks: narrate the product name so the video can still be built
            ending = job.product_name

        request = VideoCompositionRequest(
            product_name=job.product_name,
            image_urls=job.all_image_urls,
            hooks=segments,
            ending=ending,
            background_music=None if (music or "").lower() in MUSIC_OFF else music,
            music_volume=self.config.default_music_volume if opts.music_volume is None else opts.music_volume,
            show_text_overlay=(self.config.default_show_text_overlay
                               if opts.show_text_overlay is None else opts.show_text_overlay),
            text_style=opts.text_style or self.config.default_text_style,
            watermark=opts.watermark,
        )
        sink = JobProgressSink(self.session_factory, job.id)

        if opts.backend == RenderBackend.AI_IMAGES.value:
            return self.compositor.compose_ai_slideshow(request, opts.image_style, sink)
        if opts.backend == RenderBackend.TEXT_TO_VIDEO.value:
            return self.compositor.compose_text_to_video(request, opts.image_style or "product-showcase", sink)
        return self.compositor.compose_video(request, sink)

    def process_pending_pipelines(self, limit: int = 5, options: Optional[PipelineOptions] = None) -> BatchSummary:
        """Run the pipeline for PENDING jobs that still lack hooks, a video or a slot."""
        opts = options or PipelineOptions()
        generate_hooks = self.config.auto_generate_hooks if opts.generate_hooks is None else opts.generate_hooks
        auto_schedule = self.config.auto_schedule if opts.auto_schedule is None else opts.auto_schedule
        with get_db_session(self.session_factory) as db:
            can_schedule = auto_schedule and AccountRepository(db).least_recently_posted() is not None
            job_ids = [j.id for j in JobRepository(db).get_needing_pipeline(
                limit,
                with_hooks=generate_hooks and self.hook_generator is not None,
                with_schedule=can_schedule,
            )]

        logger.info(f"[pipeline] {len(job_ids)} pending pipeline(s) to process")
        summary = BatchSummary()
        for i, job_id in enumerate(job_ids):
            if i:
                self.sleep(self.config.pending_batch_delay_seconds)
            summary.add(self._run_item(job_id, options))
        return summary

    def _run_item(self, job_id: str, options: Optional[PipelineOptions]) -> ItemResult:
        try:
            result = self.run_auto_pipeline(job_id, options)
        except Exception as e:
            logger.exception(f"[pipeline] Unexpected error for job {job_id}: {e}")
            return ItemResult(job_id, "failed", str(e))
        if result.success:
            return ItemResult(job_id, "success", result.message)
        return ItemResult(job_id, "failed", result.error or result.message)

    def retry_jobs(self, job_ids: list[str], options: Optional[PipelineOptions] = None,
                   run_pipeline: bool = True) -> BatchSummary:
        """
        Manual / bulk retry: FAILED -> PENDING with a fresh retry budget,
        then back through the pipeline. One bad job never stops the batch.
        """
        summary = BatchSummary()
        for i, job_id in enumerate(job_ids):
            if i and run_pipeline:
                self.sleep(self.config.pending_batch_delay_seconds)
            try:
                with get_db_session(self.session_factory) as db:
                    job = JobRepository(db).get_by_id(job_id)
                    if not job:
                        summary.add(ItemResult(job_id, "failed", "Job not found"))
                        continue
                    if job.status != JobStatus.FAILED.value:
                        summary.add(ItemResult(job_id, "failed", f"Job is {job.status}, not FAILED"))
                        continue
                    job.status = JobStatus.PENDING.value
                    job.retry_count = 0
                    job.error = None
                    job.progress = 0
                    job.progress_step = "Queued for retry"
                    db.commit()
            except SQLAlchemyError as e:
                logger.error(f"[pipeline] Could not reset job {job_id}: {e}")
                summary.add(ItemResult(job_id, "failed", str(e)))
                continue

            if run_pipeline:
                summary.add(self._run_item(job_id, options))
            else:
                summary.add(ItemResult(job_id, "success", "Queued for retry"))
        return summary

    def job_progress(self, job_ids: list[str]) -> list[dict]:
        with get_db_session(self.session_factory) as db:
            return [
                {"id": j.id, "progress": j.progress, "progress_step": j.progress_step, "status": j.status}
                for j in JobRepository(db).get_many(job_ids)
            ]

    def next_posting_slot(self, account_id: Optional[str] = None) -> datetime:
        with get_db_session(self.session_factory) as db:
            return self._scheduler(db).next_slot(account_id)

    def scheduler_stats(self) -> dict[str, int]:
        with get_db_session(self.session_factory) as db:
            return self._scheduler(db).scheduler_stats()

    # =========================================================================
    # Posting sweep
    # =========================================================================

    def process_scheduled_jobs(self) -> BatchSummary:
        """Post every due job, oldest slot first, spaced by inter_post_delay."""
        if self.publisher_factory is None:
            raise RuntimeError("No publisher configured for the posting sweep")

        with get_db_session(self.session_factory) as db:
            due = [
                (j.id, j.tiktok_account_id, j.video_url, build_caption(j))
                for j in JobRepository(db).get_due(self.clock(), self.config.sweep_batch_size)
            ]

        logger.info(f"[sweep] {len(due)} job(s) due for posting")
        summary = BatchSummary()
        for i, (job_id, account_id, video_url, caption) in enumerate(due):
            if i:
                self.sleep(self.config.inter_post_delay_seconds)
            try:
                summary.add(self._post_one(job_id, account_id, video_url, caption))
            except Exception as e:
                logger.exception(f"[sweep] Unexpected error posting job {job_id}: {e}")
                summary.add(ItemResult(job_id, "failed", str(e)))
        return summary

    def _post_one(self, job_id: str, account_id: str, video_url: str, caption: str) -> ItemResult:
        with JobContext(job_id=job_id, account_id=account_id), get_db_session(self.session_factory) as db:
            publisher = self.publisher_factory(db)
            jobs = JobRepository(db)

            limit = publisher.check_daily_limit(account_id)
            if not limit.can_post:
                logger.info(f"[sweep] Account {account_id} is at its daily limit; job {job_id} waits")
                return ItemResult(job_id, "skipped", "Daily limit reached")

            if not jobs.claim_for_posting(job_id):
                return ItemResult(job_id, "skipped", "Already being processed")

            result = publisher.post_video(account_id, job_id, video_url, caption)
            job = jobs.get_by_id(job_id)
            db.refresh(job)

            if result.success:
                self.notifier.notify_job_status(job)
                return ItemResult(job_id, "success", result.post_id or "")

            self.handle_post_failure(db, job, result.error or "Unknown error")
            if job.status == JobStatus.FAILED.value:
                self.notifier.notify_job_status(job)
            return ItemResult(job_id, "failed", job.error or "")

    def handle_post_failure(self, db: Session, job: TikTokJob, error: str) -> None:
        """Bounded retry: back to PENDING after 2^n minutes, FAILED once the budget is spent."""
        jobs = JobRepository(db)
        retry_count = jobs.increment_retry(job.id)
        db.refresh(job)
        max_retries = self.config.max_retries

        if retry_count >= max_retries:
            job.status = JobStatus.FAILED.value
            job.error = f"Giving up after max retries ({max_retries}). Last error: {error}"
            job.progress_step = "Posting failed"
            logger.error(f"[sweep] Job {job.id} failed permanently: {error}")
        else:
            delay = retry_delay(retry_count)
            job.status = JobStatus.PENDING.value
            job.scheduled_at = self.clock() + delay
            job.error = f"Retry {retry_count}/{max_retries}: {error}"
            job.progress_step = f"Retrying in {int(delay.total_seconds() // 60)} min"
            logger.warning(f"[sweep] Job {job.id} retry {retry_count}/{max_retries} in {delay}")
        db.commit()
