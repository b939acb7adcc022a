from pydantic_settings import BaseSettings
from functools import lru_cache

APP_VERSION = "0.1.0"


class Settings(BaseSettings):
    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "emily"
    postgres_user: str = "emily"
    db_password: str = "changeme"
    postgres_min_pool: int = 2
    postgres_max_pool: int = 10

    # LLM (any OpenAI-compatible endpoint)
    openai_base_url: str = "https://api.openai.com/v1"
    openai_api_key: str = ""
    chat_model: str = "gpt-5-nano"
    rewrite_model: str = "gpt-5-nano"
    embed_model: str = "text-embedding-3-small"
    reasoning_effort: str | None = "low"
    llm_timeout: float = 120.0

    # Qdrant
    qdrant_host: str = "localhost"
    qdrant_port: int = 6333
    qdrant_https: bool = False
    qdrant_api_key: str | None = None
    qdrant_timeout: float = 30.0

    # Tokenizer used for usage accounting; must match the chat model family
    tokenizer_encoding: str = "o200k_base"

    # Auth (tokens are issued by the external auth provider)
    jwt_secret_key: str = "supersecretkey-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"

    # App
    log_level: str = "INFO"
    # The widget is embedded on customer domains
    cors_origins: list[str] = ["*"]

    @property
    def database_url(self) -> str:
        return (
            f"postgresql://{self.postgres_user}:{self.db_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def qdrant_base_url(self) -> str:
        scheme = "https" if self.qdrant_https else "http"
        return f"{scheme}://{self.qdrant_host}:{self.qdrant_port}"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
