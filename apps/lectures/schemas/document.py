from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class UploadTargetResponse(BaseModel):
    """Short-lived write target for raw document bytes"""
    upload_url: str
    token: str
    expires_at: datetime


class StoredObjectResponse(BaseModel):
    storage_id: str
    content_type: str
    size: int


class DocumentRegister(BaseModel):
    """Metadata registered after the bytes have been written to storage"""
    owner_id: str
    storage_id: str
    file_name: str
    file_type: str
    file_size: int = Field(ge=0)
    title: str
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    request_external_processing: bool = False


class DocumentRead(BaseModel):
    """Complete document record for API responses"""
    id: str
    owner_id: str
    storage_id: str
    file_name: str
    file_type: str
    file_size: int
    title: str
    description: Optional[str] = None
    tags: List[str] = []
    local_processed: bool
    local_complete: bool
    local_error: Optional[str] = None
    external_id: Optional[str] = None
    external_processed: bool
    external_embedded: bool
    version: int
    last_updated: datetime
    uploaded_at: datetime

    model_config = {
        "from_attributes": True
    }


class DocumentRegisterResponse(BaseModel):
    document_id: str
    message: str


class ProcessingStatus(BaseModel):
    local_processed: bool
    local_complete: bool
    local_error: Optional[str] = None
    external_processed: bool

    model_config = {
        "from_attributes": True
    }


class ProcessingStatusUpdate(BaseModel):
    """Schema for updating processing flags on a record"""
    local_processed: Optional[bool] = None
    local_complete: Optional[bool] = None
    local_error: Optional[str] = None
    external_processed: Optional[bool] = None
    external_id: Optional[str] = None
    expected_version: Optional[int] = None


class ExternalLinkRequest(BaseModel):
    external_id: str
    expected_version: Optional[int] = None
