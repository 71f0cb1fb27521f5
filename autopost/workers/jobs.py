"""
rq job entrypoints. Services are built once per worker process.
"""
import logging
from typing import Optional

from autopost.core.config import pipeline_config
from autopost.core.settings import settings
from autopost.db.session import SessionLocal
from autopost.services.compositor import VideoCompositor
from autopost.services.encoder import Encoder
from autopost.services.hooks import HookGenerator
from autopost.services.image_generator import ImageGenerator
from autopost.services.media_fetcher import MediaFetcher
from autopost.services.notifier import Notifier
from autopost.services.publisher import TikTokPublisher
from autopost.services.storage import MediaStorage
from autopost.services.text_to_video import TextToVideoClient
from autopost.services.tiktok_client import TikTokClient
from autopost.services.voice import VoiceSynthesizer
from autopost.workers.orchestrator import PipelineOptions, PipelineOrchestrator

logger = logging.getLogger(__name__)

# Lazy loading services
_services = {}


def get_services():
    if not _services:
        logger.info("Initializing pipeline services...")
        storage = MediaStorage(settings.media_root, settings.public_base_url)
        encoder = Encoder()
        compositor = VideoCompositor(
            fetcher=MediaFetcher(),
            voice=VoiceSynthesizer(encoder, voice=settings.tts_voice, tts_bin=settings.edge_tts_bin),
            encoder=encoder,
            output_dir=storage.videos_dir,
            music_dir=settings.music_dir,
            image_generator=ImageGenerator() if settings.openai_api_key else None,
            text_to_video=TextToVideoClient() if settings.gemini_api_key else None,
        )
        client = TikTokClient()
        _services["storage"] = storage
        _services["orchestrator"] = PipelineOrchestrator(
            session_factory=SessionLocal,
            config=pipeline_config,
            compositor=compositor,
            hook_generator=HookGenerator() if settings.groq_api_key else None,
            notifier=Notifier(),
            storage=storage,
            publisher_factory=lambda db: TikTokPublisher(db, client, pipeline_config),
        )
    return _services


def get_orchestrator() -> PipelineOrchestrator:
    return get_services()["orchestrator"]


def run_pipeline_job(job_id: str, options: Optional[PipelineOptions] = None) -> dict:
    logger.info(f"Running pipeline for job: {job_id}")
    result = get_orchestrator().run_auto_pipeline(job_id, options)
    return {"success": result.success, "stage": result.stage, "message": result.message, "error": result.error}


def process_pending_pipelines_job(limit: int = 5) -> dict:
    summary = get_orchestrator().process_pending_pipelines(limit)
    return {"processed": summary.processed, "success": summary.success, "failed": summary.failed}


def process_scheduled_jobs_job() -> dict:
    summary = get_orchestrator().process_scheduled_jobs()
    logger.info(f"Posting sweep done: {summary.success} posted, {summary.failed} failed, {summary.skipped} skipped")
    return {"processed": summary.processed, "success": summary.success,
            "failed": summary.failed, "skipped": summary.skipped}


def retry_jobs_job(job_ids: list[str], run_pipeline: bool = True) -> dict:
    summary = get_orchestrator().retry_jobs(job_ids, run_pipeline=run_pipeline)
    return {"processed": summary.processed, "success": summary.success, "failed": summary.failed}
