from __future__ import annotations
from typing import Any, Callable
import structlog
from redis import Redis
from rq import Queue
from challenge_league.config import settings

log = structlog.get_logger()

# RQ queue (lazy single instance; Redis connects on first command)
_redis = Redis.from_url(settings.redis_url)
q = Queue("default", connection=_redis)

def enqueue(func: Callable[..., Any], *args: Any, job_timeout: int = 60, **kwargs: Any):
    """Enqueue a job; failures are logged and never propagate to the caller."""
    job_name = getattr(func, "__name__", repr(func))
    if not settings.task_queue_enabled:
        log.info("task_queue.skipped", job=job_name)
        return None
    try:
        return q.enqueue(func, *args, job_timeout=job_timeout, **kwargs)
    except Exception:
        log.warning("task_queue.enqueue_failed", job=job_name, exc_info=True)
        return None
