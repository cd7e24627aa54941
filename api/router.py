# api/router.py
from fastapi import APIRouter
from api.v1.router import router as v1_router

API_VERSIONS = {"v1": "/api/v1"}

router = APIRouter()


@router.get("/", tags=["Root"])
async def root():
    """Service name and the mounted API versions"""
    return {"service": "lecture-search", "versions": API_VERSIONS}


router.include_router(v1_router, prefix=API_VERSIONS["v1"])
