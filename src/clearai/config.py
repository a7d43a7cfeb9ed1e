"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # LLM Configuration
    MODEL_PROVIDER: str = "openai"  # Options: openai, anthropic, tgi
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None  # Any OpenAI-compatible endpoint (e.g. Zhipu GLM)
    OPENAI_MODEL: str = "gpt-4o-mini"
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"
    TGI_ENDPOINT: str = "http://tgi:8080/generate"
    MODEL_TEMPERATURE: float = 0.2
    MODEL_MAX_TOKENS: int = 2048
    MODEL_TIMEOUT: float = 120.0  # seconds

    # Agent loop
    MAX_LOOPS: int = 20
    MAX_PROMPT_LENGTH: int = 8000
    RECENT_TOOL_RESULTS: int = 5
    TOOL_RESULT_SUMMARY_CHARS: int = 200
    HISTORY_WINDOW: int = 15

    # Protected paths
    WHITELIST_FILE: str | None = "whitelist.txt"  # user rules, rewritten by the whitelist tools
    SYSTEM_WHITELIST_FILE: str | None = None  # extra read-only system rules
    USE_DEFAULT_WHITELIST: bool = True

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
