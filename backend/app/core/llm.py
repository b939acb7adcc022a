"""
OpenAI-compatible LLM calls over httpx: embeddings, search-query rewriting and
streamed chat completions.

One AsyncClient per call. The rewrite never raises; embedding failures raise
EmbeddingError and completion failures raise CompletionError from inside the
stream.
"""

import json
from collections.abc import AsyncGenerator

import httpx
from loguru import logger

from app.config import get_settings
from app.core.errors import CompletionError, EmbeddingError
from app.models.domain import PromptMessage, QueryRewrite

REWRITE_PROMPT = """Rewrite this user question into a search query that will find relevant information in a knowledge base.

User question: "{message}"{context}

Rules:
- Convert questions into statement/keyword form (e.g., "where are you?" -> "location address")
- Keep it concise (3-8 words)
- Focus on the core topic, not the question structure
- If context shows they're following up, incorporate the context

Output ONLY the rewritten search query, nothing else.

Search query:"""


def _headers() -> dict[str, str]:
    api_key = get_settings().openai_api_key
    return {"Authorization": f"Bearer {api_key}"} if api_key else {}


def _chat_body(model: str, messages: list[dict], stream: bool = False) -> dict:
    settings = get_settings()
    body: dict = {"model": model, "messages": messages, "stream": stream}
    if settings.reasoning_effort:
        body["reasoning_effort"] = settings.reasoning_effort
    return body


async def embed_text(text: str) -> list[float]:
    settings = get_settings()
    try:
        async with httpx.AsyncClient(timeout=30.0, headers=_headers()) as client:
            resp = await client.post(
                f"{settings.openai_base_url}/embeddings",
                json={"model": settings.embed_model, "input": text},
            )
            resp.raise_for_status()
            return resp.json()["data"][0]["embedding"]
    except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
        logger.error("[llm] embedding failed: {!r}", e)
        raise EmbeddingError() from e


async def rewrite_query(message: str, conversation_context: str | None = None) -> QueryRewrite:
    """
    Reformulate `message` into a short keyword query for vector search.

    Falls back to the original message with zero tokens on any failure,
    including an empty answer from the model.
    """
    settings = get_settings()
    context = f"\n\nRecent conversation:\n{conversation_context}" if conversation_context else ""
    prompt = REWRITE_PROMPT.format(message=message, context=context)

    try:
        async with httpx.AsyncClient(timeout=30.0, headers=_headers()) as client:
            resp = await client.post(
                f"{settings.openai_base_url}/chat/completions",
                json=_chat_body(settings.rewrite_model, [{"role": "user", "content": prompt}]),
            )
            resp.raise_for_status()
            data = resp.json()

        choices = data.get("choices") or [{}]
        rewritten = ((choices[0].get("message") or {}).get("content") or "").strip()
        tokens_used = int((data.get("usage") or {}).get("total_tokens") or 0)
    except Exception as e:
        logger.warning("[llm] query rewrite failed, using original message: {!r}", e)
        return QueryRewrite(rewritten=message, tokens_used=0)

    logger.debug("[llm] rewrote {!r} -> {!r}", message[:60], rewritten[:60])
    return QueryRewrite(rewritten=rewritten or message, tokens_used=tokens_used)


async def stream_chat(messages: list[PromptMessage]) -> AsyncGenerator[str, None]:
    """Yield content deltas of a streamed chat completion as they arrive."""
    settings = get_settings()
    body = _chat_body(settings.chat_model, [m.model_dump() for m in messages], stream=True)

    try:
        async with httpx.AsyncClient(timeout=settings.llm_timeout, headers=_headers()) as client:
            async with client.stream(
                "POST", f"{settings.openai_base_url}/chat/completions", json=body
            ) as resp:
                if resp.status_code != 200:
                    error_body = await resp.aread()
                    logger.error("[llm] completion error {}: {}", resp.status_code, error_body[:300])
                    raise CompletionError()

                async for line in resp.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    payload = line[len("data:"):].strip()
                    if payload == "[DONE]":
                        break
                    try:
                        chunk = json.loads(payload)
                    except json.JSONDecodeError:
                        continue

                    for choice in chunk.get("choices") or []:
                        token = (choice.get("delta") or {}).get("content")
                        if token:
                            yield token
    except httpx.ConnectError as e:
        logger.error("[llm] cannot connect to {}", settings.openai_base_url)
        raise CompletionError("Cannot connect to the language model") from e
    except httpx.HTTPError as e:
        logger.error("[llm] completion stream broke: {!r}", e)
        raise CompletionError() from e


async def ping() -> bool:
    settings = get_settings()
    try:
        async with httpx.AsyncClient(timeout=2.0, headers=_headers()) as client:
            resp = await client.get(f"{settings.openai_base_url}/models")
            return resp.status_code == 200
    except httpx.HTTPError as e:
        logger.warning("[llm] health check failed: {}", e)
        return False
