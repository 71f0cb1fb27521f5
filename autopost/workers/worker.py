from rq import Worker

from autopost.core.logging import setup_logging
from autopost.core.settings import settings
from autopost.workers.queue import queue, io_queue, render_queue, redis_conn

if __name__ == "__main__":
    setup_logging(settings.log_level, settings.log_structured)
    w = Worker([io_queue, render_queue, queue], connection=redis_conn)
    w.work()
