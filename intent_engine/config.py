"""Configuration management for the intent engine."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Parser selection
    default_parser: str = Field(default="semantic")
    enable_semantic: bool = Field(default=True)
    enable_remote: bool = Field(default=False)
    enable_lexical: bool = Field(default=True)
    enable_keyword: bool = Field(default=True)
    warmup_on_start: bool = Field(default=False)

    # Local embedding model (sentence-transformers)
    semantic_model: str = Field(default="sentence-transformers/all-MiniLM-L6-v2")
    semantic_device: str = Field(default="cpu")

    # Remote embedding provider: "ollama" or "openai"
    embedding_provider: str = Field(default="ollama")
    ollama_url: str = Field(default="http://localhost:11434")
    ollama_embedding_model: str = Field(default="nomic-embed-text")
    openai_api_key: Optional[str] = Field(default=None)
    openai_base_url: Optional[str] = Field(default=None)
    openai_embedding_model: str = Field(default="text-embedding-3-small")

    # Entity extraction
    enable_ner: bool = Field(default=True)
    spacy_model: str = Field(default="en_core_web_sm")

    # Decision resolver (empirically chosen; keep configurable)
    confidence_floor: float = Field(default=0.15)
    tie_break_epsilon: float = Field(default=0.10)
    default_intent: str = Field(default="question")

    # Collaborator timeouts
    embedding_timeout_seconds: float = Field(default=10.0)
    entity_timeout_seconds: float = Field(default=5.0)

    # Short acknowledgement handling ("yes", "ok", ...)
    short_response_max_chars: int = Field(default=15)
    context_excerpt_chars: int = Field(default=100)

    # Data Paths
    seed_corpus_path: Path = Field(default=Path("./config/seed_corpus.yaml"))
    evaluation_dataset_path: Path = Field(default=Path("./config/evaluation_set.yaml"))

    # Logging
    log_level: str = Field(default="INFO")

    @property
    def project_root(self) -> Path:
        """Get the project root directory."""
        return Path(__file__).parent.parent

    def resolve_path(self, path: Path) -> Path:
        """Resolve a path relative to the project root."""
        if path.is_absolute():
            return path
        return self.project_root / path


# Global settings instance
settings = Settings()
