import asyncio
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from app.config import APP_VERSION, get_settings
from app.db import postgres
from app.api import conversations, system, widget


def configure_logging() -> None:
    logger.remove()
    logger.add(sys.stderr, level=get_settings().log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting Emily backend...")
    settings = get_settings()
    logger.info(
        f"Connecting to PostgreSQL at {settings.postgres_host}:{settings.postgres_port}"
    )

    for attempt in range(10):
        try:
            await postgres.create_pool()
            break
        except Exception as e:
            if attempt < 9:
                logger.warning(
                    f"DB connection attempt {attempt + 1} failed: {e}. Retrying in 2s..."
                )
                await asyncio.sleep(2)
            else:
                logger.error("Failed to connect to database after 10 attempts")
                raise

    logger.info("Emily backend ready")
    yield

    await postgres.close_pool()
    logger.info("Emily backend shut down")


app = FastAPI(
    title="Emily API",
    version=APP_VERSION,
    description="Retrieval-augmented chat for business websites",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Conversation-Id"],
)

app.include_router(widget.router)
app.include_router(conversations.router)
app.include_router(system.router)


@app.get("/")
async def root():
    return {"message": "Emily API", "version": APP_VERSION, "docs": "/docs"}
