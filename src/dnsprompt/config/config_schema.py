"""Typed configuration model for dnsprompt.

Brief:
  ServerConfig is the immutable bundle handed to the LLM client, chunker and
  UDP listener at startup. Validation errors are surfaced as ConfigError with
  a readable, single-line-per-field message.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..chunker import DEFAULT_MAX_CHUNK_SIZE, DEFAULT_MAX_TOTAL_SIZE
from ..llm_client import OPENROUTER_URL, SamplingParams

DEFAULT_MODELS = (
    "nvidia/nemotron-nano-9b-v2:free",
    "meituan/longcat-flash-chat:free",
    "minimax/minimax-m2:free",
)
DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Keep responses concise and under 200 words."
)
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 53


class ConfigError(ValueError):
    """
    Brief: Configuration could not be loaded or failed validation.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


class ServerConfig(BaseModel):
    """Brief: Validated runtime configuration.

    Inputs:
      - api_key: Completion API bearer token (required, non-empty).
      - models: Ordered model identifiers for fallback (non-empty).
      - system_prompt: System-role message content.
      - host/port: UDP bind address (default 0.0.0.0:53).
      - api_url: Completion endpoint URL.
      - sampling: Optional SamplingParams.
      - max_chunk_size: Bytes per TXT string, 1..255 (default 250).
      - max_total_size: Bytes per answer (default 4096).
      - max_concurrent: Optional in-flight ceiling; None means unbounded.
      - logging: Mapping passed to init_logging().

    Outputs:
      - ServerConfig instance (frozen).
    """

    api_key: str = Field(min_length=1)
    models: List[str] = Field(default_factory=lambda: list(DEFAULT_MODELS))
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)
    api_url: str = OPENROUTER_URL
    sampling: SamplingParams = Field(default_factory=SamplingParams)
    max_chunk_size: int = Field(default=DEFAULT_MAX_CHUNK_SIZE, ge=1, le=255)
    max_total_size: int = Field(default=DEFAULT_MAX_TOTAL_SIZE, ge=1)
    max_concurrent: Optional[int] = Field(default=None, ge=1)
    logging: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        frozen = True
        extra = "forbid"

    @field_validator("models", mode="before")
    @classmethod
    def _split_models(cls, value):
        if isinstance(value, str):
            value = parse_models(value)
        if value is None:
            return value
        cleaned = [str(m).strip() for m in value if str(m).strip()]
        if not cleaned:
            raise ValueError("model list cannot be empty")
        return cleaned

    @property
    def bind_address(self) -> str:
        return f"{self.host}:{self.port}"


def parse_models(text: str) -> List[str]:
    """Brief: Parse a comma-separated model list.

    Inputs:
      - text: e.g. "model1 , model2,,model3".

    Outputs:
      - List[str]: trimmed, non-empty identifiers in order.

    Example:
      >>> parse_models("a , b,,c ")
      ['a', 'b', 'c']
    """

    return [part.strip() for part in str(text).split(",") if part.strip()]


def build_config(data: Dict[str, Any]) -> ServerConfig:
    """Brief: Validate a raw mapping into a ServerConfig.

    Inputs:
      - data: Merged configuration mapping.

    Outputs:
      - ServerConfig.

    Raises:
      - ConfigError: with one line per invalid field.
    """

    try:
        return ServerConfig(**data)
    except ValidationError as exc:
        lines = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
            lines.append(f"{loc}: {err.get('msg')}")
        raise ConfigError("Invalid configuration:\n  " + "\n  ".join(lines)) from exc
