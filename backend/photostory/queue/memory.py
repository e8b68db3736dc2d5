"""In-process queue for single-node deployments and tests."""

import asyncio
import heapq
import itertools
import logging
import time
import uuid
from dataclasses import replace
from typing import Callable

from photostory.queue.base import JobQueue, QueueMessage

logger = logging.getLogger(__name__)


class InMemoryJobQueue(JobQueue):
    def __init__(self, *, visibility_timeout: float = 3600.0, clock: Callable[[], float] = time.monotonic):
        self.visibility_timeout = visibility_timeout
        self._clock = clock
        self._ready: list[tuple[float, int, QueueMessage]] = []
        self._inflight: dict[str, tuple[float, QueueMessage]] = {}
        self._seq = itertools.count()
        self._cond = asyncio.Condition()
        self._closed = False

    def _push(self, message: QueueMessage, ready_at: float) -> None:
        heapq.heappush(self._ready, (ready_at, next(self._seq), replace(message, receipt="")))

    def _reclaim_expired(self, now: float) -> None:
        expired = [r for r, (deadline, _) in self._inflight.items() if deadline <= now]
        for receipt in expired:
            _, message = self._inflight.pop(receipt)
            logger.warning(f"[QUEUE] Lease expired for job {message.job_id}, redelivering")
            self._push(message, now)

    def _next_wakeup(self, now: float) -> float | None:
        times = [deadline for deadline, _ in self._inflight.values()]
        if self._ready:
            times.append(self._ready[0][0])
        return min(times) - now if times else None

    async def enqueue(self, job_id: str, project_id: str, *, delay: float = 0.0, attempt: int = 1) -> None:
        async with self._cond:
            self._push(QueueMessage(job_id=job_id, project_id=project_id, attempt=attempt), self._clock() + delay)
            self._cond.notify_all()

    async def dequeue(self, timeout: float = 0.0) -> QueueMessage | None:
        deadline = self._clock() + timeout
        async with self._cond:
            while True:
                now = self._clock()
                self._reclaim_expired(now)
                if self._ready and self._ready[0][0] <= now:
                    _, _, message = heapq.heappop(self._ready)
                    leased = replace(message, receipt=uuid.uuid4().hex)
                    self._inflight[leased.receipt] = (now + self.visibility_timeout, leased)
                    return leased
                remaining = deadline - now
                if self._closed or remaining <= 0:
                    return None
                wakeup = self._next_wakeup(now)
                wait = remaining if wakeup is None else min(remaining, wakeup)
                try:
                    await asyncio.wait_for(self._cond.wait(), timeout=max(wait, 0.001))
                except asyncio.TimeoutError:
                    pass

    async def ack(self, message: QueueMessage) -> None:
        async with self._cond:
            self._inflight.pop(message.receipt, None)

    async def nack(self, message: QueueMessage, *, delay: float) -> None:
        async with self._cond:
            if self._inflight.pop(message.receipt, None) is None:
                # Lease already expired and the message was redelivered
                logger.warning(f"[QUEUE] nack for unknown lease on job {message.job_id}")
                return
            self._push(replace(message, attempt=message.attempt + 1), self._clock() + delay)
            self._cond.notify_all()

    async def stats(self) -> dict[str, int]:
        return {"scheduled": len(self._ready), "inflight": len(self._inflight)}

    async def close(self) -> None:
        async with self._cond:
            self._closed = True
            self._cond.notify_all()
