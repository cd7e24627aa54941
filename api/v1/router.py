# api/v1/router.py
from fastapi import APIRouter
from api.v1.lectures import router as lectures_router

router = APIRouter()

# Mount the lecture ingestion and search API
router.include_router(lectures_router, prefix="/lectures")
