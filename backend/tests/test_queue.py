"""Tests for the in-process job queue."""

import json

import pytest

from photostory.queue.base import QueueMessage
from photostory.queue.memory import InMemoryJobQueue


class TestQueueMessage:
    def test_json_omits_receipt(self):
        message = QueueMessage(job_id="j1", project_id="p1", attempt=2, receipt="r")

        assert json.loads(message.to_json()) == {"attempt": 2, "job_id": "j1", "project_id": "p1"}

    def test_from_json_defaults_attempt(self):
        message = QueueMessage.from_json('{"job_id": "j1", "project_id": "p1"}', receipt="abc")

        assert message == QueueMessage(job_id="j1", project_id="p1", attempt=1, receipt="abc")


class TestInMemoryJobQueue:
    @pytest.mark.asyncio
    async def test_enqueue_dequeue_ack(self, queue: InMemoryJobQueue):
        await queue.enqueue("j1", "p1")

        message = await queue.dequeue()

        assert (message.job_id, message.project_id, message.attempt) == ("j1", "p1", 1)
        assert message.receipt
        assert await queue.stats() == {"scheduled": 0, "inflight": 1}

        await queue.ack(message)
        assert await queue.stats() == {"scheduled": 0, "inflight": 0}

    @pytest.mark.asyncio
    async def test_empty_queue_returns_none(self, queue: InMemoryJobQueue):
        assert await queue.dequeue() is None

    @pytest.mark.asyncio
    async def test_delayed_message_waits(self, queue: InMemoryJobQueue, fake_clock):
        await queue.enqueue("j1", "p1", delay=30)

        assert await queue.dequeue() is None
        fake_clock.advance(30)
        assert (await queue.dequeue()).job_id == "j1"

    @pytest.mark.asyncio
    async def test_messages_come_out_in_ready_order(self, queue: InMemoryJobQueue):
        await queue.enqueue("late", "p1", delay=5)
        await queue.enqueue("first", "p2")
        await queue.enqueue("second", "p3")

        assert (await queue.dequeue()).job_id == "first"
        assert (await queue.dequeue()).job_id == "second"

    @pytest.mark.asyncio
    async def test_expired_lease_is_redelivered(self, queue: InMemoryJobQueue, fake_clock):
        await queue.enqueue("j1", "p1")
        first = await queue.dequeue()

        assert await queue.dequeue() is None
        fake_clock.advance(queue.visibility_timeout)

        second = await queue.dequeue()
        assert second.job_id == "j1"
        assert second.attempt == first.attempt
        assert second.receipt != first.receipt

    @pytest.mark.asyncio
    async def test_nack_schedules_next_attempt(self, queue: InMemoryJobQueue, fake_clock):
        await queue.enqueue("j1", "p1")
        message = await queue.dequeue()

        await queue.nack(message, delay=10)

        assert await queue.dequeue() is None
        fake_clock.advance(10)
        retried = await queue.dequeue()
        assert retried.attempt == 2

    @pytest.mark.asyncio
    async def test_nack_after_lease_expired_is_ignored(self, queue: InMemoryJobQueue, fake_clock):
        await queue.enqueue("j1", "p1")
        stale = await queue.dequeue()
        fake_clock.advance(queue.visibility_timeout)
        redelivered = await queue.dequeue()

        await queue.nack(stale, delay=0)

        assert redelivered.attempt == 1
        assert await queue.stats() == {"scheduled": 0, "inflight": 1}

    @pytest.mark.asyncio
    async def test_close_releases_waiters(self):
        queue = InMemoryJobQueue()
        await queue.close()

        assert await queue.dequeue(timeout=5) is None
