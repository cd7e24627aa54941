import logging
from typing import List, Optional

from apps.lectures.exceptions import (
    DocumentNotFound,
    DocumentValidationError,
    StorageObjectNotFound,
    StorageVerificationFailed,
)
from apps.lectures.models import DocumentRecord
from apps.lectures.schemas.document import (
    DocumentRegister,
    ProcessingStatus,
    ProcessingStatusUpdate,
    UploadTargetResponse,
)
from apps.lectures.schemas.search import SearchResponse
from apps.lectures.services.dispatcher import TaskDispatcher
from apps.lectures.services.record_store import DocumentRecordStore
from apps.lectures.services.search_service import SearchService
from apps.lectures.services.storage_service import ObjectStorage
from apps.lectures.tasks import (
    DELETE_EXTERNAL_RESOURCE,
    INGEST_FOR_SEARCH,
    PROCESS_UPLOADED_DOCUMENT,
)

logger = logging.getLogger(__name__)


class DocumentService:
    """Entry point for the lecture pipeline used by the HTTP routes"""

    def __init__(
        self,
        store: DocumentRecordStore,
        storage: ObjectStorage,
        dispatcher: TaskDispatcher,
        search_service: SearchService
    ):
        self.store = store
        self.storage = storage
        self.dispatcher = dispatcher
        self.search_service = search_service

    async def request_upload_target(self) -> UploadTargetResponse:
        """Issue a short-lived upload URL; no record is created"""
        return await self.storage.issue_upload_target()

    async def register_upload(self, document: DocumentRegister) -> str:
        """
        Register an uploaded file and schedule its processing.

        The storage object must resolve before any record exists. Local
        processing is always scheduled; external ingestion only when requested.
        Returns the new record id without waiting for either task.

        Raises:
            DocumentValidationError: required metadata is missing
            StorageVerificationFailed: the storage object does not exist
        """
        self._validate_metadata(document)

        try:
            await self.storage.resolve_download_url(document.storage_id)
        except StorageObjectNotFound as e:
            logger.warning(f"Rejected registration for missing storage object {document.storage_id}")
            raise StorageVerificationFailed(document.storage_id, str(e)) from e

        record_id = await self.store.create({
            "owner_id": document.owner_id,
            "storage_id": document.storage_id,
            "file_name": document.file_name,
            "file_type": document.file_type,
            "file_size": document.file_size,
            "title": document.title,
            "description": document.description,
            "tags": document.tags,
        })
        record = await self.store.get(record_id)

        await self.dispatcher.enqueue(PROCESS_UPLOADED_DOCUMENT, {"record_id": record_id})
        if document.request_external_processing:
            await self.dispatcher.enqueue(INGEST_FOR_SEARCH, {
                "record_id": record_id,
                "storage_id": record.storage_id,
                "file_name": record.file_name,
                "file_type": record.file_type,
                "expected_version": record.version,
            })
        logger.info(
            f"Registered document {record_id} for owner {document.owner_id} "
            f"(external processing: {document.request_external_processing})"
        )
        return record_id

    # Single-step name for callers that upload and register together
    upload_document = register_upload

    @staticmethod
    def _validate_metadata(document: DocumentRegister) -> None:
        missing = [
            name for name in ("owner_id", "storage_id", "file_name", "file_type", "title")
            if not (getattr(document, name) or "").strip()
        ]
        if missing:
            raise DocumentValidationError(f"Missing required fields: {', '.join(missing)}")

    async def get_document(self, record_id: str) -> DocumentRecord:
        return await self.store.get(record_id)

    async def get_processing_status(self, record_id: str) -> ProcessingStatus:
        record = await self.store.get(record_id)
        return ProcessingStatus.model_validate(record)

    async def list_documents(self, owner_id: str) -> List[DocumentRecord]:
        return await self.store.list_by_owner(owner_id)

    async def list_searchable(self, owner_id: Optional[str] = None) -> List[DocumentRecord]:
        """Documents whose external resource is ready for search"""
        if owner_id:
            return [record for record in await self.store.list_by_owner(owner_id) if record.is_searchable]
        return await self.store.list_by_status(external_processed=True)

    async def get_by_external_id(self, external_id: str) -> DocumentRecord:
        return await self.store.find_by_external_id(external_id)

    async def link_external(
        self, record_id: str, external_id: str, expected_version: Optional[int] = None
    ) -> DocumentRecord:
        """Record that a document already has an external resource"""
        if not (external_id or "").strip():
            raise DocumentValidationError("external_id is required")
        return await self.store.patch(
            record_id,
            {"external_id": external_id.strip(), "external_processed": True},
            expected_version=expected_version
        )

    async def update_processing_status(self, record_id: str, update: ProcessingStatusUpdate) -> DocumentRecord:
        fields = update.model_dump(exclude_unset=True, exclude={"expected_version"})
        if not fields:
            raise DocumentValidationError("No status fields to update")
        return await self.store.patch(record_id, fields, expected_version=update.expected_version)

    async def delete_document(self, record_id: str) -> None:
        """
        Delete a document's stored bytes, its external resource and its record.

        Storage and external cleanup are best effort and never block removing
        the record. The external delete runs as a background task.
        """
        record = await self.store.get(record_id)

        try:
            await self.storage.delete(record.storage_id)
        except Exception as e:
            logger.warning(f"Failed to delete storage object {record.storage_id}: {e}")

        if record.external_id:
            try:
                await self.dispatcher.enqueue(DELETE_EXTERNAL_RESOURCE, {"external_id": record.external_id})
            except Exception as e:
                logger.warning(f"Failed to schedule delete of external resource {record.external_id}: {e}")

        if not await self.store.delete(record_id):
            raise DocumentNotFound(record_id)
        logger.info(f"Deleted document {record_id}")

    async def search_documents(self, query: str, external_ids: List[str]) -> SearchResponse:
        return await self.search_service.search_documents(query, external_ids)

    async def requeue_unprocessed(self) -> int:
        """Schedule local processing for records that never started it"""
        pending = await self.store.list_by_status(local_processed=False)
        for record in pending:
            await self.dispatcher.enqueue(PROCESS_UPLOADED_DOCUMENT, {"record_id": record.id})
        if pending:
            logger.info(f"Requeued local processing for {len(pending)} documents")
        return len(pending)
