"""
Test cases for the background task dispatchers
"""
import asyncio
import json

import pytest

from apps.lectures.exceptions import ConcurrentModification, UnknownTask
from apps.lectures.services.dispatcher import (
    PROCESSING_KEY,
    SCHEDULED_KEY,
    InProcessTaskDispatcher,
    RedisTaskDispatcher,
)


class FlakyHandler:
    """Fails a fixed number of times before succeeding"""

    def __init__(self, failures=0, error=RuntimeError):
        self.failures = failures
        self.error = error
        self.payloads = []

    async def __call__(self, payload):
        self.payloads.append(payload)
        if len(self.payloads) <= self.failures:
            raise self.error("temporary failure")


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestInProcessTaskDispatcher:

    def test_runs_after_delay(self, sleep_recorder):
        handler = FlakyHandler()
        dispatcher = InProcessTaskDispatcher(sleep=sleep_recorder)
        dispatcher.register("demo", handler)

        async def scenario():
            await dispatcher.enqueue("demo", {"record_id": "r1"}, delay=2.5)
            await dispatcher.drain()

        asyncio.run(scenario())
        assert handler.payloads == [{"record_id": "r1"}]
        assert sleep_recorder.calls == [2.5]

    def test_enqueue_does_not_wait_for_handler(self, no_sleep_fn):
        started = []

        async def slow(payload):
            await asyncio.sleep(0)
            started.append(payload)

        dispatcher = InProcessTaskDispatcher(sleep=no_sleep_fn)
        dispatcher.register("slow", slow)

        async def scenario():
            await dispatcher.enqueue("slow", {"n": 1})
            before = list(started)
            await dispatcher.drain()
            return before

        assert asyncio.run(scenario()) == []
        assert started == [{"n": 1}]

    def test_failures_are_retried_up_to_max_attempts(self, sleep_recorder):
        handler = FlakyHandler(failures=5)
        dispatcher = InProcessTaskDispatcher(max_attempts=3, retry_delay=4.0, sleep=sleep_recorder)
        dispatcher.register("demo", handler)

        async def scenario():
            await dispatcher.enqueue("demo", {})
            await dispatcher.drain()

        asyncio.run(scenario())
        assert len(handler.payloads) == 3
        assert sleep_recorder.calls == [4.0, 4.0]

    def test_retry_then_success(self, no_sleep_fn):
        handler = FlakyHandler(failures=1)
        dispatcher = InProcessTaskDispatcher(max_attempts=3, sleep=no_sleep_fn)
        dispatcher.register("demo", handler)

        async def scenario():
            await dispatcher.enqueue("demo", {})
            await dispatcher.drain()

        asyncio.run(scenario())
        assert len(handler.payloads) == 2

    def test_concurrency_conflicts_are_not_retried(self, no_sleep_fn):
        def conflict(message):
            return ConcurrentModification("r1", 0, 1)

        handler = FlakyHandler(failures=5, error=conflict)
        dispatcher = InProcessTaskDispatcher(max_attempts=3, sleep=no_sleep_fn)
        dispatcher.register("demo", handler)

        async def scenario():
            await dispatcher.enqueue("demo", {})
            await dispatcher.drain()

        asyncio.run(scenario())
        assert len(handler.payloads) == 1

    def test_unknown_task_is_rejected_at_enqueue(self, no_sleep_fn):
        dispatcher = InProcessTaskDispatcher(sleep=no_sleep_fn)
        with pytest.raises(UnknownTask):
            asyncio.run(dispatcher.enqueue("missing", {}))


class TestRedisTaskDispatcher:

    def build(self, fake_redis, clock, **kwargs):
        dispatcher = RedisTaskDispatcher(fake_redis, clock=clock, retry_delay=5.0, lease_seconds=60, **kwargs)
        return dispatcher

    def test_due_tasks_run_and_leave_no_trace(self, fake_redis):
        clock = Clock()
        handler = FlakyHandler()
        dispatcher = self.build(fake_redis, clock)
        dispatcher.register("demo", handler)

        async def scenario():
            await dispatcher.enqueue("demo", {"record_id": "r1"}, delay=10)
            not_yet = await dispatcher.run_due_tasks()
            clock.now += 10
            ran = await dispatcher.run_due_tasks()
            return not_yet, ran

        assert asyncio.run(scenario()) == (0, 1)
        assert handler.payloads == [{"record_id": "r1"}]
        assert fake_redis.zsets[SCHEDULED_KEY] == {}
        assert fake_redis.zsets[PROCESSING_KEY] == {}

    def test_failed_task_is_rescheduled_with_next_attempt(self, fake_redis):
        clock = Clock()
        handler = FlakyHandler(failures=1)
        dispatcher = self.build(fake_redis, clock, max_attempts=3)
        dispatcher.register("demo", handler)

        async def scenario():
            await dispatcher.enqueue("demo", {})
            await dispatcher.run_due_tasks()
            scheduled = dict(fake_redis.zsets[SCHEDULED_KEY])
            clock.now += 5
            await dispatcher.run_due_tasks()
            return scheduled

        scheduled = asyncio.run(scenario())
        (envelope, due_at), = scheduled.items()
        assert json.loads(envelope)["attempt"] == 2
        assert due_at == 1005.0
        assert len(handler.payloads) == 2
        assert fake_redis.zsets[SCHEDULED_KEY] == {}

    def test_exhausted_task_is_dropped(self, fake_redis):
        clock = Clock()
        handler = FlakyHandler(failures=10)
        dispatcher = self.build(fake_redis, clock, max_attempts=2)
        dispatcher.register("demo", handler)

        async def scenario():
            await dispatcher.enqueue("demo", {})
            await dispatcher.run_due_tasks()
            clock.now += 5
            await dispatcher.run_due_tasks()
            clock.now += 5
            return await dispatcher.run_due_tasks()

        assert asyncio.run(scenario()) == 0
        assert len(handler.payloads) == 2

    def test_expired_lease_is_rescheduled(self, fake_redis):
        clock = Clock()
        dispatcher = self.build(fake_redis, clock)
        dispatcher.register("demo", FlakyHandler())
        envelope = json.dumps({"id": "t1", "task": "demo", "payload": {}, "attempt": 1}, sort_keys=True)
        fake_redis.zsets[PROCESSING_KEY] = {f"dead-worker|{envelope}": 990.0}

        reaped = asyncio.run(dispatcher.reap_expired_leases())

        assert reaped == 1
        assert fake_redis.zsets[PROCESSING_KEY] == {}
        assert fake_redis.zsets[SCHEDULED_KEY] == {envelope: 1000.0}

    def test_live_lease_is_left_alone(self, fake_redis):
        clock = Clock()
        dispatcher = self.build(fake_redis, clock)
        fake_redis.zsets[PROCESSING_KEY] = {"other-worker|{}": 1050.0}

        assert asyncio.run(dispatcher.reap_expired_leases()) == 0
        assert "other-worker|{}" in fake_redis.zsets[PROCESSING_KEY]

    def test_worker_loop_start_and_stop(self, fake_redis):
        handler = FlakyHandler()
        dispatcher = RedisTaskDispatcher(fake_redis, poll_interval=0.01)
        dispatcher.register("demo", handler)

        async def scenario():
            await dispatcher.start()
            await dispatcher.enqueue("demo", {"n": 1})
            for _ in range(100):
                if handler.payloads:
                    break
                await asyncio.sleep(0.01)
            await dispatcher.stop()

        asyncio.run(scenario())
        assert handler.payloads == [{"n": 1}]
