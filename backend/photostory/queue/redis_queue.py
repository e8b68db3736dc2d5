"""Redis-backed durable queue.

Keys (prefix = settings.redis_queue_name):
- {prefix}:scheduled  zset  payload -> ready-at epoch seconds
- {prefix}:inflight   zset  receipt -> lease deadline
- {prefix}:leases     hash  receipt -> payload

Lease, reclaim and release each run as one Lua script so several worker
processes can share the queue.
"""

import asyncio
import logging
import time
import uuid

import redis.asyncio as redis

from photostory.config import get_settings
from photostory.exceptions import TransientInfraError
from photostory.queue.base import JobQueue, QueueMessage

logger = logging.getLogger(__name__)

_LEASE_SCRIPT = """
local now = tonumber(ARGV[1])
local expired = redis.call('ZRANGEBYSCORE', KEYS[2], '-inf', now)
for _, receipt in ipairs(expired) do
  local payload = redis.call('HGET', KEYS[3], receipt)
  if payload then
    redis.call('ZADD', KEYS[1], now, payload)
  end
  redis.call('ZREM', KEYS[2], receipt)
  redis.call('HDEL', KEYS[3], receipt)
end
local ready = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', now, 'LIMIT', 0, 1)
if #ready == 0 then
  return false
end
redis.call('ZREM', KEYS[1], ready[1])
redis.call('ZADD', KEYS[2], now + tonumber(ARGV[2]), ARGV[3])
redis.call('HSET', KEYS[3], ARGV[3], ready[1])
return ready[1]
"""

_RELEASE_SCRIPT = """
local removed = redis.call('ZREM', KEYS[2], ARGV[1])
redis.call('HDEL', KEYS[3], ARGV[1])
if removed == 1 and ARGV[2] ~= '' then
  redis.call('ZADD', KEYS[1], tonumber(ARGV[3]), ARGV[2])
end
return removed
"""


class RedisJobQueue(JobQueue):
    def __init__(
        self,
        client: redis.Redis | None = None,
        *,
        name: str | None = None,
        visibility_timeout: float | None = None,
        poll_interval: float | None = None,
    ):
        settings = get_settings()
        self._redis = client or redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
        prefix = name or settings.redis_queue_name
        self.scheduled_key = f"{prefix}:scheduled"
        self.inflight_key = f"{prefix}:inflight"
        self.leases_key = f"{prefix}:leases"
        self.visibility_timeout = visibility_timeout or settings.render_lock_timeout_seconds
        self.poll_interval = poll_interval or settings.render_poll_interval_seconds
        self._lease = self._redis.register_script(_LEASE_SCRIPT)
        self._release = self._redis.register_script(_RELEASE_SCRIPT)

    @property
    def _keys(self) -> list[str]:
        return [self.scheduled_key, self.inflight_key, self.leases_key]

    async def enqueue(self, job_id: str, project_id: str, *, delay: float = 0.0, attempt: int = 1) -> None:
        message = QueueMessage(job_id=job_id, project_id=project_id, attempt=attempt)
        try:
            await self._redis.zadd(self.scheduled_key, {message.to_json(): time.time() + delay})
        except redis.RedisError as e:
            raise TransientInfraError(f"Queue unavailable: {e}") from e
        logger.info(f"[QUEUE] Enqueued job {job_id} (attempt {attempt}, delay {delay:.1f}s)")

    async def dequeue(self, timeout: float = 0.0) -> QueueMessage | None:
        deadline = time.monotonic() + timeout
        while True:
            receipt = uuid.uuid4().hex
            try:
                payload = await self._lease(keys=self._keys, args=[time.time(), self.visibility_timeout, receipt])
            except redis.RedisError as e:
                raise TransientInfraError(f"Queue unavailable: {e}") from e
            if payload:
                return QueueMessage.from_json(payload, receipt=receipt)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(self.poll_interval, remaining))

    async def ack(self, message: QueueMessage) -> None:
        await self._release(keys=self._keys, args=[message.receipt, "", 0])

    async def nack(self, message: QueueMessage, *, delay: float) -> None:
        retry = QueueMessage(job_id=message.job_id, project_id=message.project_id, attempt=message.attempt + 1)
        removed = await self._release(keys=self._keys, args=[message.receipt, retry.to_json(), time.time() + delay])
        if not removed:
            logger.warning(f"[QUEUE] nack for unknown lease on job {message.job_id}")

    async def stats(self) -> dict[str, int]:
        scheduled = await self._redis.zcard(self.scheduled_key)
        inflight = await self._redis.zcard(self.inflight_key)
        return {"scheduled": int(scheduled), "inflight": int(inflight)}

    async def close(self) -> None:
        await self._redis.aclose()
