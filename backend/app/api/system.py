import asyncio

from fastapi import APIRouter
from loguru import logger

from app.config import APP_VERSION
from app.core import llm
from app.db import postgres, qdrant
from app.models.system import HealthResponse

router = APIRouter(prefix="/api/system", tags=["system"])


async def check_postgres() -> bool:
    try:
        return await postgres.fetch_val("SELECT 1") == 1
    except Exception as e:
        logger.warning("[system] postgres check failed: {}", e)
        return False


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    postgres_ok, qdrant_ok, llm_ok = await asyncio.gather(
        check_postgres(),
        qdrant.ping(),
        llm.ping(),
    )

    return HealthResponse(
        status="ok" if all([postgres_ok, qdrant_ok, llm_ok]) else "error",
        version=APP_VERSION,
        dependencies={
            "postgres": "connected" if postgres_ok else "error",
            "qdrant": "connected" if qdrant_ok else "error",
            "llm": "connected" if llm_ok else "error",
        },
    )
