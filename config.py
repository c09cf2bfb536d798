# config.py
"""Application configuration, loaded once at startup and passed to each component"""
from typing import List

from pydantic import ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import ConfigurationError
from utils.common import get_log_file_path

# Logger name shared by every module (a constant, not part of the settings object)
LOGGER_NAME = "kb_rag"


class Settings(BaseSettings):
    """Application configuration"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    LOG_FILE_PATH: str = get_log_file_path()
    LOG_LEVEL: str = "INFO"

    # Source documents
    DATA_PATH: str = "./data"
    DOCUMENT_EXTENSIONS: List[str] = ["html", "htm"]

    # Chunking (characters)
    CHUNK_SIZE: int = 1000
    CHUNK_OVERLAP: int = 200

    # Retrieval
    TOP_K: int = 5

    # Embedding model
    EMBEDDING_MODEL_NAME: str = "paraphrase-multilingual-mpnet-base-v2"
    EMBEDDING_BATCH_SIZE: int = 500

    # Networked vector store (ChromaDB)
    CHROMA_HOST: str = "localhost"
    CHROMA_PORT: int = 8000
    CHROMA_COLLECTION_NAME: str = "zonneplan_knowledge_base"

    # Batched insertion into the networked store
    INSERT_BATCH_SIZE: int = 100
    INSERT_CONCURRENCY: int = 10

    # Local fallback snapshot
    SNAPSHOT_PATH: str = "./storage/vectorstore.json"

    # LLM (Ollama-compatible API)
    LLM_BASE_URL: str = "http://localhost:11434"
    LLM_MODEL_NAME: str = "llama3.1:8b"
    LLM_TEMPERATURE: float = 0.1
    LLM_MAX_TOKENS: int = 500

    # Per-call timeout for external services (seconds)
    REQUEST_TIMEOUT: float = 60.0

    # Conversation window kept by an interactive session (messages)
    CHAT_HISTORY_LIMIT: int = 10

    @model_validator(mode="after")
    def _check_limits(self) -> "Settings":
        positive = {
            "CHUNK_SIZE": self.CHUNK_SIZE,
            "TOP_K": self.TOP_K,
            "EMBEDDING_BATCH_SIZE": self.EMBEDDING_BATCH_SIZE,
            "INSERT_BATCH_SIZE": self.INSERT_BATCH_SIZE,
            "INSERT_CONCURRENCY": self.INSERT_CONCURRENCY,
            "REQUEST_TIMEOUT": self.REQUEST_TIMEOUT,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")

        if not 0 <= self.CHUNK_OVERLAP < self.CHUNK_SIZE:
            raise ValueError(
                f"CHUNK_OVERLAP must be in [0, CHUNK_SIZE), got {self.CHUNK_OVERLAP} "
                f"with CHUNK_SIZE={self.CHUNK_SIZE}"
            )

        if not self.LLM_BASE_URL.strip() or not self.LLM_MODEL_NAME.strip():
            raise ValueError("LLM_BASE_URL and LLM_MODEL_NAME are required")

        return self


def load_settings(**overrides) -> Settings:
    """Build the settings object, turning validation failures into a ConfigurationError."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
