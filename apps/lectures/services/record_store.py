import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.orm import sessionmaker

from apps.lectures.exceptions import (
    ConcurrentModification,
    DocumentNotFound,
    DocumentValidationError,
)
from apps.lectures.models import DocumentRecord
from apps.lectures.models.document import utcnow

logger = logging.getLogger(__name__)

# Columns a caller may set through patch(); identity, storage reference and
# concurrency bookkeeping are managed by the store itself.
PATCHABLE_FIELDS = frozenset({
    "title",
    "description",
    "tags",
    "local_processed",
    "local_complete",
    "local_error",
    "external_id",
    "external_processed",
    "external_embedded",
})

CREATABLE_FIELDS = PATCHABLE_FIELDS | {
    "owner_id",
    "storage_id",
    "file_name",
    "file_type",
    "file_size",
}


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Strip, drop blanks and deduplicate tags, keeping first-seen order"""
    if not tags:
        return []
    seen = []
    for tag in tags:
        if tag is None:
            continue
        cleaned = str(tag).strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen


class DocumentRecordStore:
    """Typed CRUD over DocumentRecord with secondary lookups.

    Every call opens its own session from the injected factory, so request
    handlers and background tasks never share a session.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def create(self, fields: Dict[str, Any]) -> str:
        """Create a new record at version 0 and return its id"""
        unknown = set(fields) - CREATABLE_FIELDS
        if unknown:
            raise DocumentValidationError(f"Unknown document fields: {sorted(unknown)}")

        values = dict(fields)
        title = (values.get("title") or "").strip()
        if not title:
            raise DocumentValidationError("title is required")
        values["title"] = title
        values["tags"] = normalize_tags(values.get("tags"))
        if values.get("external_processed") and not values.get("external_id"):
            raise DocumentValidationError("external_processed requires external_id")

        record = DocumentRecord(**values)
        async with self.session_factory() as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)
        logger.info(f"Document record created with ID: {record.id}")
        return record.id

    async def get(self, record_id: str) -> DocumentRecord:
        async with self.session_factory() as session:
            record = await session.get(DocumentRecord, record_id)
        if record is None:
            raise DocumentNotFound(record_id)
        return record

    async def patch(
        self,
        record_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> DocumentRecord:
        """
        Update fields on a record.

        With expected_version the update is a compare-and-swap: it only applies
        while the stored version equals expected_version, and bumps the version
        by one. Without it the update is last-writer-wins and the version is
        left alone.

        Raises:
            DocumentNotFound: no record with this id
            ConcurrentModification: stored version differs from expected_version
            DocumentValidationError: unknown fields, external_processed
                without an external_id, or clearing external_id on a
                record that is still external_processed
        """
        unknown = set(fields) - PATCHABLE_FIELDS
        if unknown:
            raise DocumentValidationError(f"Unknown document fields: {sorted(unknown)}")

        values = dict(fields)
        if "tags" in values:
            values["tags"] = normalize_tags(values["tags"])
        if "title" in values:
            values["title"] = (values["title"] or "").strip()
            if not values["title"]:
                raise DocumentValidationError("title is required")
        if "external_id" in values and values["external_id"] is None and values.get("external_processed"):
            raise DocumentValidationError("external_processed requires external_id")

        stmt = update(DocumentRecord).where(DocumentRecord.id == record_id)
        if expected_version is not None:
            stmt = stmt.where(DocumentRecord.version == expected_version)
            values["version"] = DocumentRecord.version + 1
        # a processed record must keep its external id
        guard_external = bool(values.get("external_processed")) and not values.get("external_id")
        if guard_external:
            stmt = stmt.where(DocumentRecord.external_id.is_not(None))
        clears_external_id = "external_id" in values and values["external_id"] is None
        if clears_external_id and "external_processed" not in values:
            stmt = stmt.where(DocumentRecord.external_processed.is_(False))
        values["last_updated"] = utcnow()

        async with self.session_factory() as session:
            result = await session.execute(stmt.values(**values))
            await session.commit()

            if result.rowcount == 0:
                current = await session.get(DocumentRecord, record_id)
                if current is None:
                    raise DocumentNotFound(record_id)
                if expected_version is not None and current.version != expected_version:
                    logger.warning(
                        f"Rejected stale patch on document {record_id}: "
                        f"expected v{expected_version}, found v{current.version}"
                    )
                    raise ConcurrentModification(record_id, expected_version, current.version)
                if clears_external_id:
                    raise DocumentValidationError(
                        "external_id cannot be cleared while external_processed is set"
                    )
                raise DocumentValidationError("external_processed requires external_id")

            record = await session.get(DocumentRecord, record_id, populate_existing=True)
        return record

    async def delete(self, record_id: str) -> bool:
        """Delete a record, returning False if it did not exist"""
        async with self.session_factory() as session:
            result = await session.execute(
                delete(DocumentRecord).where(DocumentRecord.id == record_id)
            )
            await session.commit()
        return result.rowcount > 0

    async def list_by_owner(self, owner_id: str) -> List[DocumentRecord]:
        """List an owner's records, newest first"""
        query = (
            select(DocumentRecord)
            .where(DocumentRecord.owner_id == owner_id)
            .order_by(DocumentRecord.uploaded_at.desc())
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def list_by_status(
        self,
        local_processed: Optional[bool] = None,
        external_processed: Optional[bool] = None
    ) -> List[DocumentRecord]:
        """List records by processing flags; a None flag is not filtered on"""
        query = select(DocumentRecord)
        if local_processed is not None:
            query = query.where(DocumentRecord.local_processed == local_processed)
        if external_processed is not None:
            query = query.where(DocumentRecord.external_processed == external_processed)
        query = query.order_by(DocumentRecord.uploaded_at.asc())
        async with self.session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def find_by_external_id(self, external_id: str) -> DocumentRecord:
        async with self.session_factory() as session:
            result = await session.execute(
                select(DocumentRecord).where(DocumentRecord.external_id == external_id)
            )
            record = result.scalars().first()
        if record is None:
            raise DocumentNotFound(f"external:{external_id}")
        return record
