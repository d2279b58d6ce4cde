"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Upstream AI provider
    # Credentials are NOT cached here; see chatgate.keys.pool
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "z-ai/glm-4.5-air:free"
    app_url: str = "http://localhost:8000"  # sent upstream as HTTP-Referer
    app_title: str = "Chatgate"  # sent upstream as X-Title

    # Admission control
    rate_limit_backend: str = "approximate"  # "approximate" | "memory" | "dynamodb"
    rate_limit_table_name: str = "chatgate-rate-limits"
    aws_region: str = "us-east-1"

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def upstream_chat_url(self) -> str:
        return f"{self.openrouter_base_url.rstrip('/')}/chat/completions"


@lru_cache
def get_settings() -> Settings:
    return Settings()
