"""Configuration settings for the application."""

from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = True
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # Browser origins allowed to call the API
    CORS_ORIGINS: List[str] = ["http://localhost:8000", "http://127.0.0.1:8000"]

    # LLM Configuration
    PROVIDER: str = "anthropic"  # Options: anthropic, openai
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-sonnet-4-5"
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o"
    MAX_TOKENS: int = 8192
    MODEL_TIMEOUT: float = 300.0

    # Transport retry policy (attempts after the first call)
    MODEL_MAX_RETRIES: int = 3
    MODEL_RETRY_BASE_DELAY: float = 1.0
    MODEL_RETRY_MAX_DELAY: float = 30.0

    # Agent run defaults
    MAX_TURNS: int = 20
    TOOL_TIMEOUT: float = 120.0
    EVENT_BUFFER_SIZE: int = 1000

    # Skills & MCP
    SKILLS_DIR: str = "~/.coworker/skills"
    MCP_CONFIG_PATH: str | None = None
    MCP_INIT_TIMEOUT: float = 30.0

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
