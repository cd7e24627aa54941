from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status

from apps.lectures.exceptions import LectureSearchError
from apps.lectures.pipeline import LecturePipeline, get_document_service, get_pipeline
from apps.lectures.routes.errors import to_http_exception
from apps.lectures.schemas.document import StoredObjectResponse, UploadTargetResponse
from apps.lectures.services.document_service import DocumentService

router = APIRouter(prefix="/storage")


@router.post("/upload-url", response_model=UploadTargetResponse)
async def generate_upload_url(document_service: DocumentService = Depends(get_document_service)):
    """Issue a short-lived URL to upload one file to"""
    return await document_service.request_upload_target()


@router.post("/upload/{token}", response_model=StoredObjectResponse)
async def upload_bytes(
    token: str,
    file: UploadFile = File(...),
    pipeline: LecturePipeline = Depends(get_pipeline)
):
    """Store the uploaded file under a new storage id, consuming the upload URL"""
    max_size = pipeline.settings.MAX_FILE_SIZE_BYTES
    # read at most one byte past the limit
    data = await file.read(max_size + 1)
    if len(data) > max_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds the {max_size} byte upload limit"
        )
    try:
        return await pipeline.storage.store_upload(token, data, file.content_type)
    except LectureSearchError as e:
        raise to_http_exception(e) from e


@router.get("/objects/{storage_id}")
async def download_object(storage_id: str, pipeline: LecturePipeline = Depends(get_pipeline)):
    try:
        data, content_type = await pipeline.storage.read_object(storage_id)
    except LectureSearchError as e:
        raise to_http_exception(e) from e
    return Response(content=data, media_type=content_type)
