"""
Errors raised by the chat pipeline and its collaborators.

Every error carries the HTTP status the API layer should answer with when it
surfaces before a response stream has started. Once streaming has begun the
pipeline renders the message inline instead, so the status is never used.
"""


class ChatError(Exception):
    status_code: int = 500
    default_message: str = "Chat processing failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class QuotaExceededError(ChatError):
    status_code = 402
    default_message = "Message quota exceeded"


class OrganizationNotFoundError(ChatError):
    status_code = 404
    default_message = "Organization not found"


class WebsiteNotFoundError(ChatError):
    status_code = 404
    default_message = "Website not found"


class ConversationNotFoundError(ChatError):
    status_code = 404
    default_message = "Conversation not found"


class KnowledgeBaseNotTrainedError(ChatError):
    """The tenant's vector collection does not exist."""

    status_code = 409
    default_message = "Bot not trained yet. Please train the bot first from the dashboard."


class VectorStoreUnavailableError(ChatError):
    """Qdrant could not be reached at all."""

    status_code = 503
    default_message = "Cannot connect to vector database. Please contact support."


class VectorSearchError(ChatError):
    status_code = 502
    default_message = "Failed to search vectors"


class EmbeddingError(ChatError):
    status_code = 502
    default_message = "Failed to create embedding"


class CompletionError(ChatError):
    status_code = 502
    default_message = "Failed to generate response"
