"""
Knowledge-base configuration.

Settings are loaded from environment variables prefixed with IDEANOTE_KB_
and from an optional .env file in the working directory, e.g.:

- IDEANOTE_KB_EMBED_PROVIDER: ollama | huggingface | fake
- IDEANOTE_KB_EMBED_MODEL: embedding model name
- IDEANOTE_KB_CHUNK_SIZE / IDEANOTE_KB_CHUNK_OVERLAP: chunking parameters
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class KBSettings(BaseSettings):
    """Indexing, retrieval and model settings for one KB service."""

    # Chunking
    chunk_size: int = Field(default=500, gt=0)
    chunk_overlap: int = Field(default=50, ge=0)

    # Embedding
    embed_provider: str = "ollama"
    embed_model: str = "mxbai-embed-large"
    ollama_base_url: str = "http://localhost:11434"
    batch_size: int = Field(default=32, gt=0)
    max_retries: int = Field(default=3, ge=0)

    # Indexing
    concurrency: int = Field(default=4, gt=0)
    note_timeout: float = Field(default=60.0, gt=0)
    show_progress: bool = False

    # Retrieval
    top_k: int = Field(default=4, gt=0)
    lexical_weight: float = Field(default=0.0, ge=0.0, le=1.0)

    # Answering
    llm_model: str = "qwen2.5:7b"
    llm_temperature: float = 0.2

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"

    model_config = SettingsConfigDict(
        env_prefix="IDEANOTE_KB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
