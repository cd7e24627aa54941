import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from apps.lectures.exceptions import LectureSearchError
from apps.lectures.pipeline import get_document_service
from apps.lectures.routes.errors import to_http_exception
from apps.lectures.schemas.document import (
    DocumentRead,
    DocumentRegister,
    DocumentRegisterResponse,
    ExternalLinkRequest,
    ProcessingStatus,
    ProcessingStatusUpdate,
)
from apps.lectures.services.document_service import DocumentService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/documents", response_model=DocumentRegisterResponse, status_code=status.HTTP_201_CREATED)
async def register_document(
    document: DocumentRegister,
    document_service: DocumentService = Depends(get_document_service)
):
    """
    Register a document whose bytes are already in storage

    - **storage_id**: id returned by the upload URL
    - **title**: required display title
    - **tags**: optional, duplicates are dropped
    - **request_external_processing**: also upload the file for AI search
    """
    try:
        document_id = await document_service.register_upload(document)
    except HTTPException:
        raise
    except LectureSearchError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        logger.error(f"Failed to register document: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to register document: {str(e)}"
        )
    return DocumentRegisterResponse(
        document_id=document_id,
        message="Document registered, processing has been scheduled"
    )


@router.get("/documents", response_model=List[DocumentRead])
async def list_documents(
    owner_id: str,
    document_service: DocumentService = Depends(get_document_service)
):
    """List an owner's documents, newest first"""
    return await document_service.list_documents(owner_id)


@router.get("/documents/searchable", response_model=List[DocumentRead])
async def list_searchable_documents(
    owner_id: Optional[str] = None,
    document_service: DocumentService = Depends(get_document_service)
):
    """List documents that are ready for AI search"""
    return await document_service.list_searchable(owner_id)


@router.get("/documents/external/{external_id}", response_model=DocumentRead)
async def get_document_by_external_id(
    external_id: str,
    document_service: DocumentService = Depends(get_document_service)
):
    try:
        return await document_service.get_by_external_id(external_id)
    except LectureSearchError as e:
        raise to_http_exception(e) from e


@router.get("/documents/{document_id}", response_model=DocumentRead)
async def get_document(
    document_id: str,
    document_service: DocumentService = Depends(get_document_service)
):
    try:
        return await document_service.get_document(document_id)
    except LectureSearchError as e:
        raise to_http_exception(e) from e


@router.get("/documents/{document_id}/status", response_model=ProcessingStatus)
async def get_processing_status(
    document_id: str,
    document_service: DocumentService = Depends(get_document_service)
):
    """Local and external processing state of a document"""
    try:
        return await document_service.get_processing_status(document_id)
    except LectureSearchError as e:
        raise to_http_exception(e) from e


@router.patch("/documents/{document_id}/status", response_model=DocumentRead)
async def update_processing_status(
    document_id: str,
    update: ProcessingStatusUpdate,
    document_service: DocumentService = Depends(get_document_service)
):
    """
    Update processing flags

    - **expected_version**: when given, the update only applies if the
      document is still at this version (409 otherwise)
    """
    try:
        return await document_service.update_processing_status(document_id, update)
    except LectureSearchError as e:
        raise to_http_exception(e) from e


@router.post("/documents/{document_id}/external", response_model=DocumentRead)
async def link_external_resource(
    document_id: str,
    link: ExternalLinkRequest,
    document_service: DocumentService = Depends(get_document_service)
):
    """Record an external file id for a document and mark it searchable"""
    try:
        return await document_service.link_external(
            document_id, link.external_id, expected_version=link.expected_version
        )
    except LectureSearchError as e:
        raise to_http_exception(e) from e


@router.delete("/documents/{document_id}")
async def delete_document(
    document_id: str,
    document_service: DocumentService = Depends(get_document_service)
):
    """Delete a document, its stored bytes and its external file"""
    try:
        await document_service.delete_document(document_id)
    except HTTPException:
        raise
    except LectureSearchError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        logger.error(f"Failed to delete document {document_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete document: {str(e)}"
        )
    return {"message": "Document deleted successfully"}
