import logging
from enum import Enum

from apps.lectures.exceptions import LocalProcessingFailed
from apps.lectures.models import DocumentRecord
from apps.lectures.services.record_store import DocumentRecordStore
from apps.lectures.services.storage_service import ObjectStorage

logger = logging.getLogger(__name__)


class ContentKind(str, Enum):
    TEXT = "text"
    PDF = "pdf"
    WORD = "word"
    SLIDES = "slides"


def classify_content(file_type: str) -> ContentKind:
    """Map a MIME type to the content family it is processed as"""
    mime = (file_type or "").lower()
    if mime.startswith("text/"):
        return ContentKind.TEXT
    if "pdf" in mime:
        return ContentKind.PDF
    if "word" in mime or "docx" in mime:
        return ContentKind.WORD
    if "powerpoint" in mime or "pptx" in mime or "presentationml" in mime:
        return ContentKind.SLIDES
    raise LocalProcessingFailed(
        f"Unsupported file type '{file_type}'. Please upload a text, PDF, Word, or PowerPoint file."
    )


class LocalProcessor:
    """Validates an uploaded document and records the outcome on its local fields.

    Only local_processed, local_complete and local_error are written, with
    plain patches, so this never races the external ingestion fields.
    """

    def __init__(self, store: DocumentRecordStore, storage: ObjectStorage, max_file_size: int):
        self.store = store
        self.storage = storage
        self.max_file_size = max_file_size

    async def process_uploaded_document(self, record_id: str) -> DocumentRecord:
        # Missing record is fatal: there is nowhere to record the failure
        record = await self.store.get(record_id)

        await self.store.patch(record_id, {
            "local_processed": True,
            "local_complete": False,
            "local_error": None,
        })

        try:
            kind = await self._validate(record)
        except Exception as e:
            logger.error(f"Local processing failed for document {record_id}: {e}")
            await self.store.patch(record_id, {
                "local_processed": True,
                "local_complete": False,
                "local_error": str(e)[:2000],
            })
            raise

        logger.info(f"Document {record_id} processed locally as {kind.value}")
        return await self.store.patch(record_id, {"local_complete": True})

    async def _validate(self, record: DocumentRecord) -> ContentKind:
        if record.file_size <= 0:
            raise LocalProcessingFailed("File is empty")
        if record.file_size > self.max_file_size:
            raise LocalProcessingFailed(
                f"File is {record.size_mb} MB, larger than the {self._limit_mb()} MB limit"
            )
        kind = classify_content(record.file_type)
        await self.storage.resolve_download_url(record.storage_id)

        stored_size = await self.storage.object_size(record.storage_id)
        if stored_size > self.max_file_size:
            raise LocalProcessingFailed(
                f"Stored file is {stored_size} bytes, larger than the {self._limit_mb()} MB limit"
            )
        if stored_size != record.file_size:
            raise LocalProcessingFailed(
                f"Stored file is {stored_size} bytes but {record.file_size} bytes were declared"
            )
        return kind

    def _limit_mb(self) -> float:
        return round(self.max_file_size / (1024 * 1024), 2)
