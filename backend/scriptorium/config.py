from pydantic_settings import BaseSettings
from typing import Optional
from pydantic import field_validator
import json

class Settings(BaseSettings):
    # Application
    app_name: str = "Scriptorium"
    app_version: str = "0.1.0"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./data/scriptorium.db"
    data_dir: str = "./data"

    # LLM relay (OpenAI-compatible chat completions endpoint)
    openrouter_api_key: Optional[str] = None
    llm_api_url: str = "https://openrouter.ai/api/v1/chat/completions"
    llm_model: str = "deepseek/deepseek-r1-0528:free"
    llm_timeout_connect: float = 10.0
    llm_timeout_read: float = 300.0  # reasoning models can pause for minutes between deltas

    # Context assembly
    ai_context_chapters: int = 10  # Preceding chapters sent along with the current one
    ai_context_warn_tokens: int = 60000  # Log a warning above this prompt size

    # CORS
    cors_origins: str = "*"

    @field_validator('cors_origins', mode='after')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from environment variable"""
        if isinstance(v, str):
            if v == "*":
                return ["*"]
            try:
                # Try to parse as JSON array
                return json.loads(v)
            except (json.JSONDecodeError, ValueError):
                # If not JSON, treat as comma-separated string
                return [origin.strip() for origin in v.split(',')]
        return v

    # Logging
    log_level: str = "INFO"
    log_file: str = "./logs/scriptorium.log"

    class Config:
        env_file = "../.env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields in .env that aren't in the model

# Create global settings instance
settings = Settings()
