"""
Shared fixtures for the lecture pipeline tests
"""
import os

# Settings are read at import time; keep tests off real services
os.environ.setdefault("LECTURES_DATABASE_URL", "sqlite+aiosqlite:///./test_lectures.db")
os.environ.setdefault("LECTURES_REQUEUE_UNPROCESSED_ON_STARTUP", "false")
os.environ.setdefault("LECTURES_TASK_BACKEND", "memory")

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from apps.lectures.db import build_engine, build_session_factory, init_lectures_db
from apps.lectures.exceptions import (
    ExternalResourceNotFound,
    StorageObjectNotFound,
    UploadTargetExpired,
)
from apps.lectures.schemas.document import StoredObjectResponse, UploadTargetResponse
from apps.lectures.schemas.external import (
    ContainerConfig,
    ConversationMessage,
    ResourceStatus,
    RunState,
    SearchContainer,
    UploadedResource,
)
from apps.lectures.services.ai_service import ExternalAIService
from apps.lectures.services.dispatcher import TaskDispatcher
from apps.lectures.services.record_store import DocumentRecordStore
from apps.lectures.services.storage_service import ObjectStorage


class FakeObjectStorage(ObjectStorage):
    """In-memory storage whose download URLs point at storage.test"""

    def __init__(self):
        self.objects: Dict[str, Tuple[bytes, str]] = {}
        self.tokens = set()
        self.deleted: List[str] = []
        self.resolve_calls: List[str] = []

    def put(self, storage_id: str, data: bytes = b"%PDF-1.4 lecture", content_type: str = "application/pdf"):
        self.objects[storage_id] = (data, content_type)

    async def issue_upload_target(self) -> UploadTargetResponse:
        token = f"token-{len(self.tokens) + 1}"
        self.tokens.add(token)
        return UploadTargetResponse(
            upload_url=f"http://storage.test/upload/{token}",
            token=token,
            expires_at=datetime.now(timezone.utc)
        )

    async def store_upload(self, token: str, data: bytes, content_type: str) -> StoredObjectResponse:
        if token not in self.tokens:
            raise UploadTargetExpired("Upload URL is unknown or has expired")
        self.tokens.discard(token)
        storage_id = f"s{len(self.objects) + 1}"
        self.put(storage_id, data, content_type)
        return StoredObjectResponse(storage_id=storage_id, content_type=content_type, size=len(data))

    async def resolve_download_url(self, storage_id: str) -> str:
        self.resolve_calls.append(storage_id)
        if storage_id not in self.objects:
            raise StorageObjectNotFound(storage_id)
        return f"http://storage.test/objects/{storage_id}"

    async def read_object(self, storage_id: str):
        if storage_id not in self.objects:
            raise StorageObjectNotFound(storage_id)
        return self.objects[storage_id]

    async def object_size(self, storage_id: str) -> int:
        if storage_id not in self.objects:
            raise StorageObjectNotFound(storage_id)
        return len(self.objects[storage_id][0])

    async def delete(self, storage_id: str) -> None:
        self.deleted.append(storage_id)
        self.objects.pop(storage_id, None)


class RecordingDispatcher(TaskDispatcher):
    """Collects enqueued tasks without running them"""

    def __init__(self):
        super().__init__(max_attempts=1, retry_delay=0)
        self.enqueued: List[Tuple[str, dict, float]] = []

    async def enqueue(self, task_ref, payload, delay=0):
        self.enqueued.append((task_ref, dict(payload), delay))
        return f"task-{len(self.enqueued)}"

    def names(self) -> List[str]:
        return [task_ref for task_ref, _, _ in self.enqueued]


class FakeAIService(ExternalAIService):
    """Scripted AI service that records every call"""

    def __init__(self, run_statuses: Optional[List[str]] = None, known_ids=None, messages=None):
        self.run_statuses = list(run_statuses or ["completed"])
        self.known_ids = set(known_ids or [])
        self.messages = messages if messages is not None else [
            ConversationMessage(id="msg-2", role="assistant", text="Treatment is rest."),
            ConversationMessage(id="msg-1", role="user", text="question"),
        ]
        self.calls: List[tuple] = []
        self.uploads: List[Tuple[bytes, str]] = []
        self.deleted_resources: List[str] = []
        self.deleted_containers: List[str] = []
        self.status_polls = 0
        self.fail_attach = set()
        self.fail_delete_container = False
        self.fail_delete_resource = False

    async def upload_resource(self, data, name, purpose="assistants", content_type=None):
        self.uploads.append((data, name))
        external_id = f"file-{len(self.uploads)}"
        self.known_ids.add(external_id)
        return UploadedResource(id=external_id, filename=name, bytes=len(data), status="uploaded")

    async def delete_resource(self, external_id):
        self.calls.append(("delete_resource", external_id))
        if self.fail_delete_resource:
            raise ExternalResourceNotFound("Delete failed", status_code=404, body="no such file")
        self.deleted_resources.append(external_id)

    async def get_resource_status(self, external_id):
        self.calls.append(("get_resource_status", external_id))
        if external_id not in self.known_ids:
            raise ExternalResourceNotFound("Status check failed", status_code=404, body="no such file")
        return ResourceStatus(id=external_id, status="processed", filename=f"{external_id}.pdf")

    async def create_container(self, config: ContainerConfig):
        self.calls.append(("create_container", config.name))
        return SearchContainer(id="asst-1", vector_store_id="vs-1")

    async def attach_resource(self, container, external_id):
        self.calls.append(("attach_resource", external_id))
        if external_id in self.fail_attach:
            raise ExternalResourceNotFound("Attach failed", status_code=404, body="no such file")

    async def create_conversation(self):
        self.calls.append(("create_conversation",))
        return "thread-1"

    async def post_message(self, conversation_id, text):
        self.calls.append(("post_message", text))

    async def create_run(self, container, conversation_id, instructions=None):
        self.calls.append(("create_run", container.id))
        return RunState(id="run-1", status="queued")

    async def get_run_status(self, conversation_id, run_id):
        self.status_polls += 1
        index = min(self.status_polls, len(self.run_statuses)) - 1
        return RunState(id=run_id, status=self.run_statuses[index])

    async def list_messages(self, conversation_id):
        self.calls.append(("list_messages", conversation_id))
        return list(self.messages)

    async def delete_container(self, container):
        self.deleted_containers.append(container.id)
        if self.fail_delete_container:
            raise ExternalResourceNotFound("Delete failed", status_code=404, body="gone")


class FakeRedis:
    """The subset of redis.asyncio.Redis used by storage and the task queue"""

    def __init__(self):
        self.values: Dict[str, bytes] = {}
        self.hashes: Dict[str, Dict[str, bytes]] = {}
        self.zsets: Dict[str, Dict[str, float]] = {}
        self.expiry: Dict[str, int] = {}

    @staticmethod
    def _bytes(value) -> bytes:
        if isinstance(value, bytes):
            return value
        return str(value).encode()

    async def ping(self):
        return True

    async def set(self, key, value, ex=None):
        self.values[key] = self._bytes(value)
        if ex is not None:
            self.expiry[key] = ex
        return True

    async def getdel(self, key):
        return self.values.pop(key, None)

    async def hset(self, key, mapping):
        self.hashes.setdefault(key, {}).update({k: self._bytes(v) for k, v in mapping.items()})
        return len(mapping)

    async def hget(self, key, field):
        return self.hashes.get(key, {}).get(field)

    async def hmget(self, key, fields):
        stored = self.hashes.get(key, {})
        return [stored.get(field) for field in fields]

    async def exists(self, key):
        return int(key in self.values or key in self.hashes)

    async def delete(self, key):
        removed = int(self.values.pop(key, None) is not None) + int(self.hashes.pop(key, None) is not None)
        return removed

    async def zadd(self, key, mapping):
        zset = self.zsets.setdefault(key, {})
        added = sum(1 for member in mapping if member not in zset)
        zset.update({member: float(score) for member, score in mapping.items()})
        return added

    async def zrem(self, key, member):
        return int(self.zsets.get(key, {}).pop(member, None) is not None)

    async def zrangebyscore(self, key, min, max, start=None, num=None):
        low, high = float(min), float(max)
        members = sorted(
            (score, member) for member, score in self.zsets.get(key, {}).items()
            if low <= score <= high
        )
        selected = [member.encode() for _, member in members]
        if start is not None and num is not None:
            selected = selected[start:start + num]
        return selected


async def no_sleep(seconds):
    return None


@pytest.fixture
def fake_storage():
    storage = FakeObjectStorage()
    # sized to match the 1024 bytes the test registrations declare
    storage.put("s1", b"%PDF-1.4 lecture".ljust(1024, b"\n"))
    return storage


@pytest.fixture
def recording_dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def fake_ai():
    return FakeAIService(known_ids=["ext-1", "ext-2"])


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'lectures.db'}"


@pytest.fixture
def make_store(database_url):
    """Async factory for a record store on a fresh SQLite database.

    Engines are bound to the event loop they are used on, so each test builds
    its store inside its own asyncio.run call and disposes the engine after.
    """
    async def _make():
        engine = build_engine(database_url)
        await init_lectures_db(engine)
        return DocumentRecordStore(build_session_factory(engine)), engine
    return _make


@pytest.fixture
def sleep_recorder():
    calls = []

    async def _sleep(seconds):
        calls.append(seconds)
        await asyncio.sleep(0)

    _sleep.calls = calls
    return _sleep


@pytest.fixture
def no_sleep_fn():
    return no_sleep
