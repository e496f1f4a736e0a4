import re
from typing import List, Literal, Optional

from pydantic import AnyHttpUrl, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Embedding provider (any OpenAI-compatible /embeddings endpoint)
    embedding_api_key: SecretStr = SecretStr("")
    embedding_base_url: AnyHttpUrl = "https://api.openai.com/v1/embeddings"
    embedding_model: str = "text-embedding-3-small"
    embedding_timeout: float = Field(default=60.0, gt=0)

    # Vector store
    data_root: str = "~/.codeflow/indexes"
    vector_metric: Literal["ip", "l2"] = "ip"

    # Retrieval
    window_radius: int = 40
    line_weight: float = 0.55
    window_weight: float = 0.35
    default_top_k: int = 5

    # Ingestion
    ingest_extensions: List[str] = [".md", ".js", ".ts", ".vue", ".jsx", ".tsx", ".py"]
    ingest_exclude_dirs: List[str] = [
        "node_modules",
        ".git",
        "dist",
        "build",
        "vendor",
        ".venv",
        "__pycache__",
    ]

    # Inline (gated) retrieval
    inline_min_prefix: int = 3
    inline_pause_ms: int = 300
    inline_throttle_ms: int = 800
    inline_max_lines: int = 12
    inline_comment_pattern: str = r"^\s*(//|/\*)"

    # Sessions
    session_idle_seconds: float = Field(default=1800.0, gt=0)

    # HTTP server
    host: str = "127.0.0.1"
    port: int = Field(default=8765, ge=1, le=65535)

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="CODEFLOW_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("window_radius", "inline_min_prefix", "inline_pause_ms", "inline_throttle_ms")
    @classmethod
    def _non_negative(cls, v: int, info) -> int:
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0, got {v}")
        return v

    @field_validator("default_top_k", "inline_max_lines")
    @classmethod
    def _positive(cls, v: int, info) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1, got {v}")
        return v

    @field_validator("line_weight", "window_weight")
    @classmethod
    def _unit_interval(cls, v: float, info) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"{info.field_name} must be within [0, 1], got {v}")
        return v

    @field_validator("inline_comment_pattern")
    @classmethod
    def _compilable(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as exc:
            raise ValueError(f"inline_comment_pattern is not a valid regex: {exc}") from exc
        return v

    @field_validator("ingest_extensions")
    @classmethod
    def _dotted_extensions(cls, v: List[str]) -> List[str]:
        normalized = []
        for ext in v:
            ext = ext.strip().lower()
            if not ext:
                continue
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        if not normalized:
            raise ValueError("ingest_extensions must name at least one extension")
        return normalized

    @model_validator(mode="after")
    def _nonzero_view_weights(self) -> "Settings":
        if self.line_weight == 0.0 and self.window_weight == 0.0:
            raise ValueError("line_weight and window_weight can not both be 0")
        return self

    def embedding_api_key_value(self) -> Optional[str]:
        # Local OpenAI-compatible servers commonly run without a key.
        return self.embedding_api_key.get_secret_value() or None


settings = Settings()
