from .document_service import DocumentService
from .ingestion_service import IngestionService
from .local_processor import LocalProcessor
from .record_store import DocumentRecordStore
from .search_service import PollPolicy, SearchService

__all__ = [
    "DocumentService",
    "IngestionService",
    "LocalProcessor",
    "DocumentRecordStore",
    "PollPolicy",
    "SearchService",
]
