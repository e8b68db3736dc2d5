from photostory.config import Settings, get_settings
from photostory.queue.base import JobQueue, QueueMessage
from photostory.queue.memory import InMemoryJobQueue


def create_queue(settings: Settings | None = None) -> JobQueue:
    """Queue backend selected by settings.queue_backend."""
    settings = settings or get_settings()
    if settings.queue_backend == "redis":
        from photostory.queue.redis_queue import RedisJobQueue

        return RedisJobQueue()
    return InMemoryJobQueue(visibility_timeout=settings.render_lock_timeout_seconds)


__all__ = [
    "JobQueue",
    "QueueMessage",
    "InMemoryJobQueue",
    "create_queue",
]
