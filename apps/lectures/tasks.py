"""Background task names and their handlers"""
import logging

logger = logging.getLogger(__name__)

PROCESS_UPLOADED_DOCUMENT = "lectures.process_uploaded_document"
INGEST_FOR_SEARCH = "lectures.ingest_for_search"
RECORD_EXTERNAL_RESULT = "lectures.record_external_result"
DELETE_EXTERNAL_RESOURCE = "lectures.delete_external_resource"


def register_pipeline_tasks(dispatcher, local_processor, ingestion_service) -> None:
    """Bind every pipeline task name to its handler on the dispatcher"""

    async def process_uploaded_document(payload):
        await local_processor.process_uploaded_document(payload["record_id"])

    async def ingest_for_search(payload):
        await ingestion_service.ingest_for_search(
            record_id=payload["record_id"],
            storage_id=payload["storage_id"],
            file_name=payload["file_name"],
            file_type=payload["file_type"],
            expected_version=payload.get("expected_version")
        )

    async def record_external_result(payload):
        await ingestion_service.record_external_result(
            record_id=payload["record_id"],
            external_id=payload["external_id"],
            expected_version=payload.get("expected_version")
        )

    async def delete_external_resource(payload):
        await ingestion_service.delete_external_resource(payload["external_id"])

    dispatcher.register(PROCESS_UPLOADED_DOCUMENT, process_uploaded_document)
    dispatcher.register(INGEST_FOR_SEARCH, ingest_for_search)
    dispatcher.register(RECORD_EXTERNAL_RESULT, record_external_result)
    dispatcher.register(DELETE_EXTERNAL_RESOURCE, delete_external_resource)
    logger.info(f"Registered {len(dispatcher.handlers)} pipeline tasks")
