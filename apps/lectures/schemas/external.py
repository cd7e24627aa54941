"""Typed payloads returned by the external AI service endpoints.

Every endpoint either returns one of these models or raises an
``ExternalServiceError`` subclass, so callers never inspect raw SDK objects.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class RunStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    INCOMPLETE = "incomplete"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


TERMINAL_RUN_STATUSES = frozenset({
    RunStatus.COMPLETED,
    RunStatus.FAILED,
    RunStatus.CANCELLED,
    RunStatus.EXPIRED,
})


class UploadedResource(BaseModel):
    id: str
    filename: str
    bytes: int = 0
    status: Optional[str] = None


class ResourceStatus(BaseModel):
    id: str
    status: Optional[str] = None
    filename: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.status == "processed"


class SearchContainer(BaseModel):
    """An assistant together with the vector store its file search reads"""
    id: str
    vector_store_id: str


class RunState(BaseModel):
    id: str
    status: RunStatus

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RUN_STATUSES


class ConversationMessage(BaseModel):
    id: str
    role: str
    text: str
    created_at: Optional[datetime] = None


DEFAULT_ASSISTANT_INSTRUCTIONS = (
    "You are a helpful assistant that searches through uploaded medical lecture files. "
    "Answer questions using ONLY the content from the uploaded files. "
    "If the information isn't in the files, explicitly say so and explain that you can "
    "only answer based on the uploaded content. "
    "If files are available but don't contain relevant info, say what topics the files DO cover. "
    "When providing information, cite which specific lecture file it came from."
)

DEFAULT_RUN_INSTRUCTIONS = (
    "Be sure to search through all attached files thoroughly. "
    "If the information isn't found, acknowledge that fact."
)


class ContainerConfig(BaseModel):
    """Settings for the assistant created for one search"""
    name: str = "Medical Lecture File Search Assistant"
    model: str = "gpt-4o"
    instructions: str = DEFAULT_ASSISTANT_INSTRUCTIONS
