from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from app.api.streaming import stream_reply
from app.core.pipeline import ChatPipeline, get_pipeline
from app.db import conversations
from app.models.chat import PausedResponse, WidgetMessageRequest

router = APIRouter(prefix="/api/widget", tags=["widget"])


@router.post("/messages")
async def widget_message(
    body: WidgetMessageRequest,
    pipeline: ChatPipeline = Depends(get_pipeline),
):
    """
    Visitor message from the embedded widget. Stores the message, then
    streams the AI reply unless an operator has paused the conversation.
    """
    website = await conversations.get_website(body.website_id)
    if not website:
        raise HTTPException(status_code=404, detail="Website not found")

    if body.conversation_id:
        conversation = await conversations.get_conversation(body.conversation_id)
        if not conversation or conversation.website_id != body.website_id:
            raise HTTPException(status_code=404, detail="Conversation not found")
    else:
        conversation = await conversations.create_conversation(
            body.website_id, agent_type="visitor", visitor_id=body.visitor_id
        )

    await conversations.append_message(conversation.id, "user", body.content)
    logger.info(
        "[widget] visitor {} message in conversation {} (mode {})",
        body.visitor_id,
        conversation.id,
        conversation.ai_mode,
    )

    if conversation.ai_mode == "paused":
        return PausedResponse(conversation_id=conversation.id)

    return await stream_reply(
        pipeline,
        conversation.id,
        body.content,
        body.website_id,
        website.org_id,
    )
