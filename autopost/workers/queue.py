"""
Queue Configuration - io/render queues with retry support.
Posting sweeps go to io, full pipeline runs (hooks + render) go to render.
"""
from redis import Redis
from rq import Queue, Retry

from autopost.core.settings import settings

# Redis connection
redis_conn = Redis.from_url(settings.redis_url)

# Default queue for small admin jobs
queue = Queue(settings.rq_queue_name, connection=redis_conn)

# IO Queue: TikTok uploads and status polling
io_queue = Queue(settings.rq_queue_io, connection=redis_conn)

# Render Queue: hook generation + FFmpeg composition
render_queue = Queue(settings.rq_queue_render, connection=redis_conn)


# =============================================================================
# Retry Configuration
# =============================================================================

def get_retry_config(max_retries: int = 3) -> Retry:
    """
    Default retry configuration with exponential backoff.
    Intervals: 30s, 60s, 120s
    """
    return Retry(max=max_retries, interval=[30, 60, 120])


# Post failures are retried by the sweep itself; rq only retries crashed runs
RETRY_DEFAULT = get_retry_config(3)


# =============================================================================
# Helper Functions
# =============================================================================

def enqueue_io(func, *args, job_timeout=600, **kwargs):
    """Enqueue job to IO queue with retry"""
    return io_queue.enqueue(
        func, *args,
        job_timeout=job_timeout,
        retry=RETRY_DEFAULT,
        **kwargs
    )


def enqueue_render(func, *args, job_timeout=1800, **kwargs):
    """Enqueue job to Render queue. Failures are recorded on the job, no rq retry."""
    return render_queue.enqueue(
        func, *args,
        job_timeout=job_timeout,
        **kwargs
    )
