import logging

from fastapi import APIRouter, Depends, HTTPException, status

from apps.lectures.exceptions import LectureSearchError
from apps.lectures.pipeline import LecturePipeline, get_document_service, get_pipeline
from apps.lectures.routes.errors import to_http_exception
from apps.lectures.schemas.external import ResourceStatus
from apps.lectures.schemas.search import SearchRequest, SearchResponse
from apps.lectures.services.document_service import DocumentService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/search", response_model=SearchResponse)
async def search_documents(
    request: SearchRequest,
    document_service: DocumentService = Depends(get_document_service)
):
    """
    Answer a question from the given AI-ready lecture files

    - **query**: the question
    - **external_ids**: external file ids to search, at least one
    """
    try:
        return await document_service.search_documents(request.query, request.external_ids)
    except HTTPException:
        raise
    except LectureSearchError as e:
        logger.warning(f"Search failed: {e}")
        raise to_http_exception(e) from e
    except Exception as e:
        logger.error(f"Search failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error searching files: {str(e)}"
        )


@router.get("/external/{external_id}/status", response_model=ResourceStatus)
async def check_external_status(
    external_id: str,
    pipeline: LecturePipeline = Depends(get_pipeline)
):
    """Status of one file on the AI service"""
    try:
        return await pipeline.search_service.check_resource_status(external_id)
    except LectureSearchError as e:
        raise to_http_exception(e) from e
