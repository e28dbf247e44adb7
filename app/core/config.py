import os
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

class Settings(BaseSettings):
    # Application settings
    APP_NAME: str = os.getenv("APP_NAME", "PromptELT MCP Broker")
    DEBUG: bool = os.getenv("DEBUG", "False") == "True"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # API settings
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", 8000))

    # Logging
    LOG_DIR: str = os.getenv("LOG_DIR", "logs")

    # LLM Configuration
    ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    DEFAULT_MODEL: str = os.getenv("DEFAULT_MODEL", "claude-sonnet-4-20250514")
    LLM_MAX_TOKENS: int = int(os.getenv("LLM_MAX_TOKENS", 4000))

    # Query cache
    QUERY_CACHE_MAX_SIZE: int = int(os.getenv("QUERY_CACHE_MAX_SIZE", 1000))
    QUERY_CACHE_TTL_SECONDS: float = float(os.getenv("QUERY_CACHE_TTL_SECONDS", 300))
    QUERY_CACHE_CLEANUP_INTERVAL: float = float(os.getenv("QUERY_CACHE_CLEANUP_INTERVAL", 60))

    # Schema snapshots
    SCHEMA_HISTORY_LIMIT: int = int(os.getenv("SCHEMA_HISTORY_LIMIT", 50))

    # Status websocket
    STATUS_BROADCAST_INTERVAL: float = float(os.getenv("STATUS_BROADCAST_INTERVAL", 5))

    # Simulated round trip of the mock connectors, in seconds
    CONNECTOR_LATENCY: float = float(os.getenv("CONNECTOR_LATENCY", 0.1))

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

# Create settings instance
settings = Settings()
