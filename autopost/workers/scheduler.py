"""
Scheduler - cron loop for the auto pipeline.
Each tick advances a few pending pipelines, then runs the posting sweep.
"""
import logging
import time

from autopost.core.logging import setup_logging
from autopost.core.settings import settings
from autopost.db.base import Base
from autopost.db.session import engine
from autopost.workers.jobs import get_orchestrator

logger = logging.getLogger(__name__)

PENDING_PER_TICK = 3


def init_db():
    """Create tables if they don't exist"""
    logger.info("Initializing database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready.")


def tick(orchestrator=None) -> dict:
    """One cron pass. Errors in one half never skip the other."""
    orchestrator = orchestrator or get_orchestrator()
    report = {"pipelines": None, "posts": None}

    try:
        pending = orchestrator.process_pending_pipelines(PENDING_PER_TICK)
        report["pipelines"] = {"processed": pending.processed, "success": pending.success,
                               "failed": pending.failed}
    except Exception as e:
        logger.exception(f"Error processing pending pipelines: {e}")

    try:
        posts = orchestrator.process_scheduled_jobs()
        report["posts"] = {"processed": posts.processed, "success": posts.success,
                           "failed": posts.failed, "skipped": posts.skipped}
    except Exception as e:
        logger.exception(f"Error in posting sweep: {e}")

    return report


if __name__ == "__main__":
    setup_logging(settings.log_level, settings.log_structured)

    # Wait for DB to be ready
    for attempt in range(10):
        try:
            init_db()
            break
        except Exception as e:
            logger.warning(f"DB not ready (attempt {attempt + 1}/10): {e}")
            time.sleep(3)

    logger.info(f"Scheduler started. Ticking every {settings.poll_interval_seconds}s")
    while True:
        tick()
        time.sleep(settings.poll_interval_seconds)
