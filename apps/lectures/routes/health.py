import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from apps.lectures.pipeline import LecturePipeline, get_pipeline
from apps.lectures.redis_client import redis_health_check
from common.utils.llm_connections import is_llm_configured

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(pipeline: LecturePipeline = Depends(get_pipeline)):
    """Report database and Redis reachability"""
    health_status = {
        "timestamp": datetime.now().isoformat(),
        "service": "lecture-search",
        "status": "unknown",
        "checks": {}
    }

    try:
        async with pipeline.store.session_factory() as session:
            await session.execute(text("SELECT 1"))
        health_status["checks"]["database"] = {"status": "healthy"}
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        health_status["checks"]["database"] = {"status": "error", "error": str(e)}

    redis_ok = await redis_health_check(pipeline.redis)
    health_status["checks"]["redis"] = {"status": "healthy" if redis_ok else "unhealthy"}

    health_status["checks"]["openai"] = {
        "status": "configured" if is_llm_configured() else "missing_api_key"
    }

    core_checks = [health_status["checks"]["database"], health_status["checks"]["redis"]]
    health_status["status"] = "healthy" if all(c["status"] == "healthy" for c in core_checks) else "degraded"
    return health_status
