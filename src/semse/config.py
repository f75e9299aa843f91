from typing import Optional

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    redis_url: str = "redis://127.0.0.1:6379"
    redis_user: Optional[str] = None
    redis_password: Optional[SecretStr] = None

    # Index is scoped to every key under "<document_prefix>:"
    document_prefix: str = "documents"
    document_index: str = "idx:documents"

    hostname: str = "127.0.0.1"
    port: int = 80

    openai_api_key: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("SEMSE_OPENAI_API_KEY", "OPENAI_API_KEY"),
    )
    openai_base_url: str = "https://api.openai.com/v1"
    embedding_model: str = "text-embedding-3-small"
    completion_model: str = "gpt-3.5-turbo-0125"

    # Must match the DIM of the vector field in the index schema
    dimensions: int = 512

    max_post_body_length: int = 3000  # bytes
    pipeline_concurrency: int = Field(default=1, ge=1)
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="SEMSE_",
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
