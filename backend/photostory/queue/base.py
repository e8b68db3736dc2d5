"""Durable job queue interface.

Delivery is at-least-once: a dequeued message is leased for the visibility
timeout and comes back if it is neither acked nor nacked in time. Consumers
must therefore tolerate seeing a job more than once.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class QueueMessage:
    job_id: str
    project_id: str
    attempt: int = 1
    receipt: str = ""

    def to_json(self) -> str:
        data = asdict(self)
        data.pop("receipt")
        return json.dumps(data, sort_keys=True)

    @classmethod
    def from_json(cls, payload: str | bytes, receipt: str = "") -> "QueueMessage":
        data = json.loads(payload)
        return cls(job_id=data["job_id"], project_id=data["project_id"], attempt=int(data.get("attempt", 1)), receipt=receipt)


class JobQueue(ABC):
    @abstractmethod
    async def enqueue(self, job_id: str, project_id: str, *, delay: float = 0.0, attempt: int = 1) -> None:
        """Make a job available after `delay` seconds."""

    @abstractmethod
    async def dequeue(self, timeout: float = 0.0) -> QueueMessage | None:
        """Lease the next ready message, waiting up to `timeout` seconds."""

    @abstractmethod
    async def ack(self, message: QueueMessage) -> None:
        """Drop a leased message for good."""

    @abstractmethod
    async def nack(self, message: QueueMessage, *, delay: float) -> None:
        """Release a lease and redeliver as the next attempt after `delay` seconds."""

    @abstractmethod
    async def stats(self) -> dict[str, int]:
        """Counts of scheduled and leased messages."""

    async def close(self) -> None:
        return None
