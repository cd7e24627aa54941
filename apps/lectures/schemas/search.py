from typing import List, Optional

from pydantic import BaseModel

from apps.lectures.schemas.external import ConversationMessage


class SearchRequest(BaseModel):
    query: str
    external_ids: List[str]


class ResourceCheck(BaseModel):
    """Per-resource readiness recorded before a search run"""
    external_id: str
    found: bool
    status: Optional[str] = None
    error: Optional[str] = None


class SearchResponse(BaseModel):
    answers: List[ConversationMessage]
    checks: List[ResourceCheck] = []
    polls: int = 0
