"""
Thin async Qdrant client using httpx.

Each knowledge base has its own collection, written by the training job and
only ever read here. Search failures are mapped onto the pipeline's error
taxonomy so callers can tell "not trained yet" apart from "Qdrant is down".
"""
import httpx
from loguru import logger
from pydantic import ValidationError

from app.config import get_settings
from app.core.errors import (
    KnowledgeBaseNotTrainedError,
    VectorSearchError,
    VectorStoreUnavailableError,
)
from app.models.domain import ScoredPoint


def collection_name(website_id: str) -> str:
    return f"website_{website_id}"


def _headers() -> dict[str, str]:
    api_key = get_settings().qdrant_api_key
    return {"api-key": api_key} if api_key else {}


async def ping() -> bool:
    settings = get_settings()
    try:
        async with httpx.AsyncClient(timeout=2.0, headers=_headers()) as client:
            resp = await client.get(f"{settings.qdrant_base_url}/collections")
            return resp.status_code == 200
    except httpx.HTTPError as e:
        logger.warning("[qdrant] health check failed: {}", e)
        return False


async def search(website_id: str, vector: list[float], limit: int = 5) -> list[ScoredPoint]:
    """
    Return the `limit` nearest training items to `vector`, best first.

    Raises KnowledgeBaseNotTrainedError when the collection does not exist,
    VectorStoreUnavailableError when Qdrant cannot be reached, and
    VectorSearchError for anything else.
    """
    settings = get_settings()
    name = collection_name(website_id)
    body = {"vector": vector, "limit": limit, "with_payload": True}

    try:
        async with httpx.AsyncClient(
            timeout=settings.qdrant_timeout, headers=_headers()
        ) as client:
            resp = await client.post(
                f"{settings.qdrant_base_url}/collections/{name}/points/search",
                json=body,
            )
            resp.raise_for_status()
            hits = resp.json().get("result", [])
    except httpx.HTTPStatusError as e:
        logger.error(
            "[qdrant] search failed for collection {}: status={} body={}",
            name,
            e.response.status_code,
            e.response.text[:200],
        )
        if e.response.status_code == 404:
            raise KnowledgeBaseNotTrainedError() from e
        raise VectorSearchError(f"Failed to search vectors: HTTP {e.response.status_code}") from e
    except (httpx.ConnectError, httpx.TimeoutException) as e:
        logger.error("[qdrant] cannot reach {}: {!r}", settings.qdrant_base_url, e)
        raise VectorStoreUnavailableError() from e
    except (httpx.HTTPError, ValueError) as e:
        logger.error("[qdrant] search failed for collection {}: {!r}", name, e)
        raise VectorSearchError(f"Failed to search vectors: {e}") from e

    try:
        points = [ScoredPoint(score=h["score"], payload=h["payload"]) for h in hits]
    except (KeyError, TypeError, ValidationError) as e:
        raise VectorSearchError(f"Malformed search result from {name}") from e

    logger.debug("[qdrant] {} hits from {} (limit {})", len(points), name, limit)
    return points
