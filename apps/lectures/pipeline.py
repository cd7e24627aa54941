import logging
from dataclasses import dataclass
from typing import Optional

import httpx
import redis.asyncio as redis
from fastapi import Request
from sqlalchemy.orm import sessionmaker

from apps.lectures.config import LecturesSettings
from apps.lectures.schemas.external import ContainerConfig
from apps.lectures.services.ai_service import ExternalAIService, OpenAIAssistantService
from apps.lectures.services.dispatcher import (
    InProcessTaskDispatcher,
    RedisTaskDispatcher,
    TaskDispatcher,
)
from apps.lectures.services.document_service import DocumentService
from apps.lectures.services.ingestion_service import IngestionService
from apps.lectures.services.local_processor import LocalProcessor
from apps.lectures.services.record_store import DocumentRecordStore
from apps.lectures.services.search_service import PollPolicy, SearchService
from apps.lectures.services.storage_service import ObjectStorage, RedisObjectStorage
from apps.lectures.tasks import register_pipeline_tasks

logger = logging.getLogger(__name__)


@dataclass
class LecturePipeline:
    """Every long-lived pipeline component, built once per application"""
    settings: LecturesSettings
    redis: redis.Redis
    store: DocumentRecordStore
    storage: ObjectStorage
    dispatcher: TaskDispatcher
    ai_service: ExternalAIService
    http_client: httpx.AsyncClient
    local_processor: LocalProcessor
    ingestion_service: IngestionService
    search_service: SearchService
    document_service: DocumentService

    async def start(self):
        await self.dispatcher.start()
        if self.settings.REQUEUE_UNPROCESSED_ON_STARTUP:
            await self.document_service.requeue_unprocessed()

    async def stop(self):
        await self.dispatcher.stop()
        await self.http_client.aclose()


def build_dispatcher(settings: LecturesSettings, redis_client: redis.Redis) -> TaskDispatcher:
    if settings.TASK_BACKEND == "redis":
        return RedisTaskDispatcher(
            redis_client,
            max_attempts=settings.TASK_MAX_ATTEMPTS,
            retry_delay=settings.TASK_RETRY_DELAY_SECONDS,
            poll_interval=settings.TASK_POLL_INTERVAL_SECONDS,
            lease_seconds=settings.TASK_LEASE_SECONDS
        )
    if settings.TASK_BACKEND != "memory":
        raise ValueError(f"Unknown task backend '{settings.TASK_BACKEND}', expected 'memory' or 'redis'")
    return InProcessTaskDispatcher(
        max_attempts=settings.TASK_MAX_ATTEMPTS,
        retry_delay=settings.TASK_RETRY_DELAY_SECONDS
    )


def build_pipeline(
    settings: LecturesSettings,
    session_factory: sessionmaker,
    redis_client: redis.Redis,
    storage: Optional[ObjectStorage] = None,
    dispatcher: Optional[TaskDispatcher] = None,
    ai_service: Optional[ExternalAIService] = None,
    http_client: Optional[httpx.AsyncClient] = None
) -> LecturePipeline:
    """Assemble the pipeline from settings; any component may be supplied instead"""
    store = DocumentRecordStore(session_factory)
    storage = storage or RedisObjectStorage(
        redis_client,
        public_base_url=settings.PUBLIC_BASE_URL,
        upload_ttl_seconds=settings.UPLOAD_URL_TTL_SECONDS
    )
    dispatcher = dispatcher or build_dispatcher(settings, redis_client)
    ai_service = ai_service or OpenAIAssistantService()
    http_client = http_client or httpx.AsyncClient(
        timeout=settings.FETCH_TIMEOUT_SECONDS,
        follow_redirects=True
    )

    local_processor = LocalProcessor(store, storage, max_file_size=settings.MAX_FILE_SIZE_BYTES)
    ingestion_service = IngestionService(store, storage, ai_service, dispatcher, http_client)
    search_service = SearchService(
        ai_service,
        poll_policy=PollPolicy(
            interval=settings.SEARCH_POLL_INTERVAL_SECONDS,
            max_attempts=settings.SEARCH_MAX_POLL_ATTEMPTS
        ),
        container_config=ContainerConfig(model=settings.OPENAI_MODEL)
    )
    document_service = DocumentService(store, storage, dispatcher, search_service)
    register_pipeline_tasks(dispatcher, local_processor, ingestion_service)

    logger.info(f"Lecture pipeline built with {type(dispatcher).__name__}")
    return LecturePipeline(
        settings=settings,
        redis=redis_client,
        store=store,
        storage=storage,
        dispatcher=dispatcher,
        ai_service=ai_service,
        http_client=http_client,
        local_processor=local_processor,
        ingestion_service=ingestion_service,
        search_service=search_service,
        document_service=document_service
    )


def get_pipeline(request: Request) -> LecturePipeline:
    return request.app.state.lectures


def get_document_service(request: Request) -> DocumentService:
    return get_pipeline(request).document_service
