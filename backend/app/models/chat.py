from pydantic import BaseModel, Field
from typing import Literal
from datetime import datetime


class WidgetMessageRequest(BaseModel):
    website_id: str
    content: str = Field(min_length=1)
    visitor_id: str = Field(min_length=1)
    conversation_id: str | None = None


class ConversationMessageRequest(BaseModel):
    content: str = Field(min_length=1)
    sender: Literal["user", "assistant"] = "user"


class AiModeUpdate(BaseModel):
    ai_mode: Literal["auto", "paused"]


class PausedResponse(BaseModel):
    conversation_id: str
    ai_paused: bool = True


class ConversationOut(BaseModel):
    id: str
    website_id: str
    agent_type: str
    ai_mode: str
    created_at: datetime | None


class MessageOut(BaseModel):
    id: str | None
    conversation_id: str
    sender: str
    content: str
    created_at: datetime | None
