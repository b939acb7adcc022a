from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from app.api.streaming import stream_reply
from app.core.pipeline import ChatPipeline, get_pipeline
from app.core.security import get_current_user
from app.db import conversations
from app.models.chat import AiModeUpdate, ConversationMessageRequest, ConversationOut, MessageOut
from app.models.domain import Conversation

router = APIRouter(prefix="/api", tags=["conversations"])


async def _require_conversation(conversation_id: str) -> Conversation:
    conversation = await conversations.get_conversation(conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


@router.post("/websites/{website_id}/conversations", response_model=ConversationOut)
async def create_owner_conversation(
    website_id: str,
    current_user: dict = Depends(get_current_user),
) -> ConversationOut:
    website = await conversations.get_website(website_id)
    if not website:
        raise HTTPException(status_code=404, detail="Website not found")
    conversation = await conversations.create_conversation(website_id, agent_type="owner")
    return ConversationOut(**conversation.model_dump())


@router.get("/conversations/{conversation_id}/messages", response_model=list[MessageOut])
async def get_messages(
    conversation_id: str,
    current_user: dict = Depends(get_current_user),
) -> list[MessageOut]:
    await _require_conversation(conversation_id)
    history = await conversations.get_history(conversation_id)
    return [MessageOut(**m.model_dump()) for m in history]


@router.post("/conversations/{conversation_id}/messages")
async def post_message(
    conversation_id: str,
    body: ConversationMessageRequest,
    current_user: dict = Depends(get_current_user),
    pipeline: ChatPipeline = Depends(get_pipeline),
):
    conversation = await _require_conversation(conversation_id)

    # Operator replies and messages on paused conversations are stored as-is
    if conversation.ai_mode == "paused" or body.sender == "assistant":
        await conversations.append_message(conversation_id, body.sender, body.content)
        logger.info(
            "[conversations] stored {} message without AI in {}", body.sender, conversation_id
        )
        return {"success": True}

    website = await conversations.get_website(conversation.website_id)
    if not website:
        raise HTTPException(status_code=404, detail="Website not found")

    await conversations.append_message(conversation_id, "user", body.content)
    return await stream_reply(
        pipeline,
        conversation_id,
        body.content,
        conversation.website_id,
        website.org_id,
    )


@router.put("/conversations/{conversation_id}/ai-mode", response_model=ConversationOut)
async def update_ai_mode(
    conversation_id: str,
    body: AiModeUpdate,
    current_user: dict = Depends(get_current_user),
) -> ConversationOut:
    conversation = await conversations.set_ai_mode(conversation_id, body.ai_mode)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    logger.info(
        "[conversations] user {} set AI mode of {} to {}",
        current_user["id"],
        conversation_id,
        body.ai_mode,
    )
    return ConversationOut(**conversation.model_dump())
