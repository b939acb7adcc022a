"""
Conversation and knowledge-base storage.

The message log is append-only from the chat pipeline's side. Rows are
converted to `app.models.domain` records here; ids are cast to text in SQL so
UUID columns validate as plain strings.
"""

from loguru import logger

from app.db import postgres
from app.models.domain import AgentType, AiMode, Conversation, Message, Sender, Website

_CONVERSATION_COLUMNS = """id::text, website_id::text, agent_type, ai_mode,
                           visitor_id, created_at"""
_MESSAGE_COLUMNS = "id::text, conversation_id::text, sender, content, created_at"


async def count_knowledge_items(website_id: str) -> int:
    count = await postgres.fetch_val(
        "SELECT COUNT(*) FROM training_items WHERE website_id = $1",
        website_id,
    )
    return int(count or 0)


async def get_recent_messages(conversation_id: str, limit: int = 10) -> list[Message]:
    """Last `limit` messages of any sender, returned oldest first."""
    rows = await postgres.fetch_all(
        f"""SELECT {_MESSAGE_COLUMNS} FROM messages
            WHERE conversation_id = $1
            ORDER BY created_at DESC
            LIMIT $2""",
        conversation_id,
        limit,
    )
    return [Message(**dict(r)) for r in reversed(rows)]


async def get_history(conversation_id: str) -> list[Message]:
    rows = await postgres.fetch_all(
        f"""SELECT {_MESSAGE_COLUMNS} FROM messages
            WHERE conversation_id = $1
            ORDER BY created_at ASC""",
        conversation_id,
    )
    logger.debug("[store] {} messages in conversation {}", len(rows), conversation_id)
    return [Message(**dict(r)) for r in rows]


async def append_message(conversation_id: str, sender: Sender, content: str) -> Message:
    row = await postgres.fetch_one(
        f"""INSERT INTO messages (conversation_id, sender, content)
            VALUES ($1, $2, $3)
            RETURNING {_MESSAGE_COLUMNS}""",
        conversation_id,
        sender,
        content,
    )
    return Message(**dict(row))


async def get_conversation(conversation_id: str) -> Conversation | None:
    row = await postgres.fetch_one(
        f"SELECT {_CONVERSATION_COLUMNS} FROM conversations WHERE id = $1",
        conversation_id,
    )
    return Conversation(**dict(row)) if row else None


async def create_conversation(
    website_id: str,
    agent_type: AgentType = "owner",
    visitor_id: str | None = None,
) -> Conversation:
    row = await postgres.fetch_one(
        f"""INSERT INTO conversations (website_id, agent_type, ai_mode, visitor_id)
            VALUES ($1, $2, 'auto', $3)
            RETURNING {_CONVERSATION_COLUMNS}""",
        website_id,
        agent_type,
        visitor_id,
    )
    logger.info("[store] created {} conversation {} for website {}", agent_type, row["id"], website_id)
    return Conversation(**dict(row))


async def set_ai_mode(conversation_id: str, mode: AiMode) -> Conversation | None:
    row = await postgres.fetch_one(
        f"""UPDATE conversations SET ai_mode = $1, updated_at = NOW()
            WHERE id = $2
            RETURNING {_CONVERSATION_COLUMNS}""",
        mode,
        conversation_id,
    )
    return Conversation(**dict(row)) if row else None


async def get_website(website_id: str) -> Website | None:
    row = await postgres.fetch_one(
        "SELECT id::text, org_id::text, display_name FROM websites WHERE id = $1",
        website_id,
    )
    return Website(**dict(row)) if row else None


async def get_display_name(website_id: str) -> str | None:
    website = await get_website(website_id)
    return website.display_name if website else None
