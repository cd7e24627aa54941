from fastapi import APIRouter
from apps.lectures.routes import documents, health, search, storage

router = APIRouter()

# Include document routes
router.include_router(documents.router, prefix="", tags=["Documents"])

# Include search routes
router.include_router(search.router, prefix="", tags=["Search"])

# Include upload/download routes
router.include_router(storage.router, prefix="", tags=["Storage"])

router.include_router(health.router, prefix="", tags=["Health"])
