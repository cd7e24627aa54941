import logging
from typing import Optional

import httpx

from apps.lectures.exceptions import (
    ConcurrentModification,
    DocumentNotFound,
    ExternalServiceError,
    FetchFailed,
    StorageObjectNotFound,
    StorageUnavailable,
)
from apps.lectures.models import DocumentRecord
from apps.lectures.schemas.external import UploadedResource
from apps.lectures.services.ai_service import ExternalAIService
from apps.lectures.services.dispatcher import TaskDispatcher
from apps.lectures.services.record_store import DocumentRecordStore
from apps.lectures.services.storage_service import ObjectStorage
from apps.lectures.tasks import RECORD_EXTERNAL_RESULT

logger = logging.getLogger(__name__)


class IngestionService:
    """
    Moves stored document bytes into the external AI service.

    Each step of ingest_for_search is terminal on failure; retries belong to
    the dispatcher. Nothing is rolled back when a later step fails.
    """

    def __init__(
        self,
        store: DocumentRecordStore,
        storage: ObjectStorage,
        ai_service: ExternalAIService,
        dispatcher: TaskDispatcher,
        http_client: httpx.AsyncClient
    ):
        self.store = store
        self.storage = storage
        self.ai_service = ai_service
        self.dispatcher = dispatcher
        self.http_client = http_client

    async def ingest_for_search(
        self,
        record_id: str,
        storage_id: str,
        file_name: str,
        file_type: str,
        expected_version: Optional[int] = None
    ) -> Optional[UploadedResource]:
        """
        Upload a stored document to the AI service and schedule the record update.

        Returns the uploaded resource, or None when the record is already
        linked to an external resource.

        Raises:
            DocumentNotFound: the record was deleted before ingestion ran
            StorageUnavailable: no download URL could be produced
            FetchFailed: the byte download returned a non-success response
            ExternalUploadFailed: the AI service rejected the upload
        """
        record = await self.store.get(record_id)
        if record.external_processed:
            logger.info(f"Document {record_id} already linked to {record.external_id}, skipping ingestion")
            return None

        try:
            download_url = await self.storage.resolve_download_url(storage_id)
        except StorageObjectNotFound as e:
            raise StorageUnavailable(f"Failed to get file URL for storage object {storage_id}") from e

        data = await self._fetch(download_url)
        resource = await self.ai_service.upload_resource(data, file_name, "assistants", file_type)
        logger.info(f"Document {record_id} uploaded to AI service as {resource.id}")

        await self.dispatcher.enqueue(RECORD_EXTERNAL_RESULT, {
            "record_id": record_id,
            "external_id": resource.id,
            "expected_version": expected_version,
        })
        return resource

    async def _fetch(self, url: str) -> bytes:
        try:
            response = await self.http_client.get(url)
        except httpx.HTTPError as e:
            raise FetchFailed(f"Failed to fetch file from {url}: {e}") from e
        if not response.is_success:
            raise FetchFailed("Failed to fetch file", status_code=response.status_code, body=response.text)
        return response.content

    async def record_external_result(
        self,
        record_id: str,
        external_id: str,
        expected_version: Optional[int] = None
    ) -> DocumentRecord:
        """
        Link a record to its uploaded resource and mark it searchable.

        A repeated delivery for a link that is already in place returns the
        record unchanged. If the record is gone or was concurrently modified,
        the uploaded resource is deleted and the error propagates.
        """
        try:
            return await self.store.patch(
                record_id,
                {"external_id": external_id, "external_processed": True},
                expected_version=expected_version
            )
        except ConcurrentModification:
            current = await self.store.get(record_id)
            if current.external_processed and current.external_id == external_id:
                logger.info(f"Document {record_id} already linked to {external_id}")
                return current
            await self.delete_external_resource(external_id)
            raise
        except DocumentNotFound:
            await self.delete_external_resource(external_id)
            raise

    async def delete_external_resource(self, external_id: str) -> None:
        """Best-effort delete of an external resource; failures are logged only"""
        try:
            await self.ai_service.delete_resource(external_id)
        except ExternalServiceError as e:
            logger.warning(f"Failed to delete external resource {external_id}: {e}")
