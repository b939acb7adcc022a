from fastapi import HTTPException
from fastapi.responses import StreamingResponse
from loguru import logger

from app.core.errors import ChatError
from app.core.pipeline import ChatPipeline


def http_error(exc: ChatError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


async def stream_reply(
    pipeline: ChatPipeline,
    conversation_id: str,
    message: str,
    website_id: str,
    org_id: str,
) -> StreamingResponse:
    """
    Run the pre-stream half of the pipeline, then hand the completion to a
    chunked response. Failures up to that point are request-level errors;
    after it they arrive inline in the body.
    """
    try:
        turn = await pipeline.prepare(conversation_id, message, website_id, org_id)
    except ChatError as e:
        logger.warning("[chat] conversation {} refused before streaming: {}", conversation_id, e.message)
        raise http_error(e) from e

    return StreamingResponse(
        pipeline.stream(turn),
        media_type="text/plain; charset=utf-8",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "X-Conversation-Id": conversation_id,
        },
    )
