"""
Deferred task execution with an at-least-once contract.

Handlers are registered by task name and receive the JSON-serialisable payload
they were enqueued with. A handler may run more than once for the same
enqueue, so handlers must be idempotent for the fields they own.
"""
import asyncio
import json
import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import redis.asyncio as redis

from apps.lectures.exceptions import (
    ConcurrentModification,
    DocumentNotFound,
    DocumentValidationError,
    UnknownTask,
)

logger = logging.getLogger(__name__)

TaskHandler = Callable[[Dict[str, Any]], Awaitable[Any]]

# Failures that will not change on a later attempt
NON_RETRYABLE_ERRORS = (ConcurrentModification, DocumentNotFound, DocumentValidationError)

SCHEDULED_KEY = "tasks:scheduled"
PROCESSING_KEY = "tasks:processing"


class TaskDispatcher(ABC):
    """Run registered handlers later, retrying failures a bounded number of times"""

    def __init__(self, max_attempts: int = 3, retry_delay: float = 5.0):
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.handlers: Dict[str, TaskHandler] = {}

    def register(self, task_ref: str, handler: TaskHandler) -> None:
        self.handlers[task_ref] = handler

    def _handler_for(self, task_ref: str) -> TaskHandler:
        handler = self.handlers.get(task_ref)
        if handler is None:
            raise UnknownTask(f"No handler registered for task '{task_ref}'")
        return handler

    def _should_retry(self, error: Exception, attempt: int) -> bool:
        return attempt < self.max_attempts and not isinstance(error, NON_RETRYABLE_ERRORS)

    @abstractmethod
    async def enqueue(self, task_ref: str, payload: Dict[str, Any], delay: float = 0) -> str:
        """Schedule task_ref to run with payload after delay seconds; returns a task id"""

    async def start(self) -> None:
        """Begin executing tasks"""

    async def stop(self) -> None:
        """Stop executing tasks"""


class InProcessTaskDispatcher(TaskDispatcher):
    """Runs tasks as asyncio tasks inside the API process.

    Pending tasks are lost if the process exits; use RedisTaskDispatcher when
    tasks must survive a restart.
    """

    def __init__(self, max_attempts: int = 3, retry_delay: float = 5.0, sleep=asyncio.sleep):
        super().__init__(max_attempts=max_attempts, retry_delay=retry_delay)
        self.sleep = sleep
        self._tasks: Set[asyncio.Task] = set()

    async def enqueue(self, task_ref: str, payload: Dict[str, Any], delay: float = 0) -> str:
        self._handler_for(task_ref)
        task_id = str(uuid.uuid4())
        task = asyncio.create_task(self._execute(task_id, task_ref, dict(payload), delay))
        # Keep a reference so the task is not garbage collected mid-flight
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"Enqueued task {task_ref} ({task_id}) with delay {delay}s")
        return task_id

    async def _execute(self, task_id: str, task_ref: str, payload: Dict[str, Any], delay: float):
        if delay:
            await self.sleep(delay)
        handler = self._handler_for(task_ref)
        attempt = 1
        while True:
            try:
                await handler(payload)
                logger.info(f"Task {task_ref} ({task_id}) completed on attempt {attempt}")
                return
            except Exception as e:
                if not self._should_retry(e, attempt):
                    logger.error(
                        f"Task {task_ref} ({task_id}) failed after {attempt} attempt(s): {e}",
                        exc_info=True
                    )
                    return
                logger.warning(f"Task {task_ref} ({task_id}) attempt {attempt} failed, retrying: {e}")
                attempt += 1
                await self.sleep(self.retry_delay)

    async def drain(self) -> None:
        """Wait until every pending task, including tasks they enqueue, has finished"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def stop(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.info("In-process task dispatcher stopped")


class RedisTaskDispatcher(TaskDispatcher):
    """
    Durable dispatcher backed by two Redis sorted sets.

    ``tasks:scheduled`` holds task envelopes scored by due time. A worker
    claims a due envelope by moving it to ``tasks:processing`` scored by its
    lease expiry, and removes it once the handler finishes. Envelopes whose
    lease expired (the worker died mid-task) are moved back to the schedule
    and run again.
    """

    def __init__(
        self,
        client: redis.Redis,
        max_attempts: int = 3,
        retry_delay: float = 5.0,
        poll_interval: float = 1.0,
        lease_seconds: int = 300,
        batch_size: int = 10,
        clock: Callable[[], float] = time.time
    ):
        super().__init__(max_attempts=max_attempts, retry_delay=retry_delay)
        self.client = client
        self.poll_interval = poll_interval
        self.lease_seconds = lease_seconds
        self.batch_size = batch_size
        self.clock = clock
        self.worker_id = uuid.uuid4().hex
        self._worker: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @staticmethod
    def _envelope(task_id: str, task_ref: str, payload: Dict[str, Any], attempt: int) -> str:
        return json.dumps(
            {"id": task_id, "task": task_ref, "payload": payload, "attempt": attempt},
            sort_keys=True
        )

    async def enqueue(self, task_ref: str, payload: Dict[str, Any], delay: float = 0) -> str:
        self._handler_for(task_ref)
        task_id = str(uuid.uuid4())
        envelope = self._envelope(task_id, task_ref, payload, attempt=1)
        await self.client.zadd(SCHEDULED_KEY, {envelope: self.clock() + delay})
        logger.debug(f"Scheduled task {task_ref} ({task_id}) with delay {delay}s")
        return task_id

    async def _claim(self, envelope: str) -> Optional[str]:
        """Move an envelope from the schedule to processing; None if another worker won"""
        member = f"{self.worker_id}|{envelope}"
        await self.client.zadd(PROCESSING_KEY, {member: self.clock() + self.lease_seconds})
        if not await self.client.zrem(SCHEDULED_KEY, envelope):
            await self.client.zrem(PROCESSING_KEY, member)
            return None
        return member

    async def run_due_tasks(self) -> int:
        """Run every task that is due now; returns the number of tasks run"""
        due = await self.client.zrangebyscore(
            SCHEDULED_KEY, "-inf", self.clock(), start=0, num=self.batch_size
        )
        ran = 0
        for raw in due:
            envelope = raw.decode() if isinstance(raw, bytes) else raw
            member = await self._claim(envelope)
            if member is None:
                continue
            await self._execute(envelope)
            await self.client.zrem(PROCESSING_KEY, member)
            ran += 1
        return ran

    async def _execute(self, envelope: str) -> None:
        task = json.loads(envelope)
        task_ref, task_id, attempt = task["task"], task["id"], task["attempt"]
        try:
            handler = self._handler_for(task_ref)
        except UnknownTask as e:
            logger.error(f"Dropping task {task_id}: {e}")
            return

        try:
            await handler(task["payload"])
            logger.info(f"Task {task_ref} ({task_id}) completed on attempt {attempt}")
        except Exception as e:
            if not self._should_retry(e, attempt):
                logger.error(
                    f"Task {task_ref} ({task_id}) failed after {attempt} attempt(s): {e}",
                    exc_info=True
                )
                return
            logger.warning(f"Task {task_ref} ({task_id}) attempt {attempt} failed, retrying: {e}")
            retry = self._envelope(task_id, task_ref, task["payload"], attempt + 1)
            await self.client.zadd(SCHEDULED_KEY, {retry: self.clock() + self.retry_delay})

    async def reap_expired_leases(self) -> int:
        """Return tasks whose worker lease expired to the schedule"""
        expired = await self.client.zrangebyscore(PROCESSING_KEY, "-inf", self.clock())
        for raw in expired:
            member = raw.decode() if isinstance(raw, bytes) else raw
            envelope = member.split("|", 1)[1]
            await self.client.zadd(SCHEDULED_KEY, {envelope: self.clock()})
            await self.client.zrem(PROCESSING_KEY, member)
            logger.warning(f"Lease expired, rescheduling task {json.loads(envelope)['id']}")
        return len(expired)

    async def _worker_loop(self):
        logger.info(f"Task worker {self.worker_id} started")
        while not self._stopping.is_set():
            ran = 0
            try:
                await self.reap_expired_leases()
                ran = await self.run_due_tasks()
            except (redis.RedisError, OSError) as e:
                logger.error(f"Task worker Redis error: {e}")
            if not ran:
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass

    async def start(self) -> None:
        if self._worker is None:
            self._stopping.clear()
            self._worker = asyncio.create_task(self._worker_loop())

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._stopping.set()
        await self._worker
        self._worker = None
        logger.info(f"Task worker {self.worker_id} stopped")
