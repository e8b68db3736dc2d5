from photostory.worker.backoff import compute_backoff
from photostory.worker.channels import HttpJobChannel, JobChannel, ServiceJobChannel
from photostory.worker.rate_limiter import StartRateLimiter
from photostory.worker.runner import RenderWorker
from photostory.worker.watchdog import Watchdog

__all__ = [
    "compute_backoff",
    "HttpJobChannel",
    "JobChannel",
    "ServiceJobChannel",
    "StartRateLimiter",
    "RenderWorker",
    "Watchdog",
]
