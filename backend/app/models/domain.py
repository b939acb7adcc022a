"""
Typed records that cross the storage and service boundaries of the chat
pipeline. Database rows and HTTP payloads are validated into these at the
adapter that produced them; nothing downstream handles raw dicts.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

AiMode = Literal["auto", "paused"]
AgentType = Literal["owner", "visitor"]
Sender = Literal["user", "assistant", "human"]
PromptRole = Literal["system", "user", "assistant"]


class Conversation(BaseModel):
    id: str
    website_id: str
    agent_type: AgentType = "owner"
    ai_mode: AiMode = "auto"
    visitor_id: str | None = None
    created_at: datetime | None = None


class Message(BaseModel):
    id: str | None = None
    conversation_id: str
    sender: Sender
    content: str
    created_at: datetime | None = None


class Website(BaseModel):
    id: str
    org_id: str
    display_name: str | None = None


class KnowledgePayload(BaseModel):
    """Payload stored next to each training item's vector."""

    title: str
    content: str
    source: Literal["manual", "wg"] = "manual"
    created_at: str | None = None


class ScoredPoint(BaseModel):
    score: float
    payload: KnowledgePayload


class Snippet(BaseModel):
    title: str
    content: str


class PromptMessage(BaseModel):
    role: PromptRole
    content: str


class QueryRewrite(BaseModel):
    rewritten: str
    tokens_used: int = 0
