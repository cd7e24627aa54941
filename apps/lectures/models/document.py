from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentRecord(SQLModel, table=True):
    __tablename__ = "lecture_documents"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    owner_id: str = Field(max_length=255, index=True)

    # Storage reference
    storage_id: str = Field(max_length=255)
    file_name: str = Field(max_length=255)
    file_type: str = Field(max_length=255)
    file_size: int = Field(default=0)

    # Descriptive metadata
    title: str = Field(max_length=255, index=True)
    description: Optional[str] = Field(default=None, max_length=2000)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    # Local processing state
    local_processed: bool = Field(default=False, index=True)
    local_complete: bool = Field(default=False)
    local_error: Optional[str] = Field(default=None, max_length=2000)

    # External (AI) processing state
    external_id: Optional[str] = Field(default=None, max_length=255, index=True)
    external_processed: bool = Field(default=False, index=True)
    external_embedded: bool = Field(default=False)

    # Optimistic concurrency
    version: int = Field(default=0)
    last_updated: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )

    uploaded_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )

    def __repr__(self):
        return f"<DocumentRecord {self.title} ({self.file_name}) v{self.version}>"

    @property
    def is_searchable(self) -> bool:
        """Check if the document has been ingested by the AI service"""
        return self.external_processed and self.external_id is not None

    @property
    def size_mb(self) -> float:
        """Return document size in megabytes"""
        return round(self.file_size / (1024 * 1024), 2)
