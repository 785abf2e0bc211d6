import os
import sys
from typing import Literal

from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

CONFIG_PATH = "config/config.yaml"

DEFAULT_SYSTEM_PROMPT = (
    "You are an AI Screen Assistant. Respond directly and clearly. "
    "You may include math in LaTeX (inline $...$ or block $$...$$). "
    "Do not include chain-of-thought or meta commentary; just answer the user."
)
DEFAULT_USER_PROMPT = "Describe this screenshot briefly."


class ServerConfig(BaseModel):
    """Server configuration"""

    host: str = Field(default="0.0.0.0", description="Server host address")
    port: int = Field(default=3000, ge=1, le=65535, description="Server port number")
    max_body_size: int = Field(
        default=1024**2 * 300,  # 300 MB, screenshots arrive base64-encoded
        ge=1,
        description="Maximum accepted request body size in bytes",
    )


class CORSConfig(BaseModel):
    """CORS configuration"""

    enabled: bool = Field(default=True, description="Enable CORS support")
    allow_origins: list[str] = Field(
        default=["*"], description="List of allowed origins for CORS requests"
    )
    allow_credentials: bool = Field(default=True, description="Allow credentials in CORS requests")
    allow_methods: list[str] = Field(
        default=["*"], description="List of allowed HTTP methods for CORS requests"
    )
    allow_headers: list[str] = Field(
        default=["*"], description="List of allowed headers for CORS requests"
    )


class OllamaConfig(BaseModel):
    """Inference backend configuration"""

    host: str = Field(
        default_factory=lambda: os.getenv("OLLAMA_HOST") or "http://127.0.0.1:11434",
        validate_default=True,
        description="Base URL of the Ollama daemon",
    )
    model: str = Field(
        default_factory=lambda: os.getenv("OLLAMA_MODEL") or "qwen3-vl",
        description="Model identifier sent with every request",
    )
    timeout: float | None = Field(
        default=600,
        gt=0,
        description="Transport timeout in seconds, null disables it",
    )
    temperature: float = Field(default=0.6, ge=0, description="Sampling temperature")
    top_p: float = Field(default=0.9, gt=0, le=1, description="Nucleus sampling threshold")
    num_predict: int = Field(
        default=-1, ge=-2, description="Maximum tokens to predict, -1 for unbounded"
    )

    @field_validator("host")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        stripped = value.strip().rstrip("/")
        if not stripped:
            raise ValueError("Ollama host must not be empty")
        return stripped


class ConversationConfig(BaseModel):
    """Conversation history configuration"""

    max_turns: int = Field(
        default=12,
        ge=0,
        description="Number of past user/assistant turns kept after the system message",
    )
    max_sessions: int = Field(
        default=256,
        ge=1,
        description="Number of sessions kept in memory before the least recent is evicted",
    )
    system_prompt: str = Field(
        default=DEFAULT_SYSTEM_PROMPT, description="Fixed system instruction for every session"
    )
    default_prompt: str = Field(
        default=DEFAULT_USER_PROMPT,
        description="Prompt used when a request carries no text",
    )


class LoggingConfig(BaseModel):
    """Logging configuration"""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )


class Config(BaseSettings):
    """Application configuration"""

    # Server configuration
    server: ServerConfig = Field(
        default=ServerConfig(),
        description="Server configuration, including host, port and body size limit",
    )

    # CORS configuration
    cors: CORSConfig = Field(
        default=CORSConfig(),
        description="CORS configuration, allows cross-origin requests",
    )

    # Backend configuration
    ollama: OllamaConfig = Field(
        default_factory=OllamaConfig,
        description="Inference backend address, model and sampling options",
    )

    conversation: ConversationConfig = Field(
        default=ConversationConfig(),
        description="Conversation history bounds and prompts",
    )

    # Logging configuration
    logging: LoggingConfig = Field(
        default=LoggingConfig(),
        description="Logging configuration",
    )

    model_config = SettingsConfigDict(
        env_prefix="CONFIG_",
        env_nested_delimiter="__",
        nested_model_default_partial_update=True,
        yaml_file=os.getenv("CONFIG_PATH", CONFIG_PATH),
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        """Read settings: init -> env -> yaml -> default"""
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls),
        )


def initialize_config() -> Config:
    """
    Initialize the configuration.

    Returns:
        Config: Configuration object
    """
    try:
        return Config()  # type: ignore
    except ValidationError as e:
        logger.error(f"Configuration validation failed: {e!s}")
        sys.exit(1)
