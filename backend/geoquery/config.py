"""
Configuration management for the GeoQuery backend.
Handles environment variables and application settings.
"""

from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Settings
    app_name: str = "GeoQuery Spatial Chat"
    app_version: str = "0.1.0"
    debug: bool = False

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # Data Settings
    data_dir: str = "data"
    manifest_path: str = "data/manifest.json"
    database_path: str = ":memory:"  # DuckDB file, or in-memory

    # LLM Settings
    llm_provider: str = "anthropic"  # "anthropic" or "ollama"
    anthropic_api_key: str = ""
    claude_model: str = "claude-sonnet-4-5"
    claude_max_tokens: int = 2000
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "qwen2.5:7b"
    llm_temperature: float = 0.1  # Low temperature for structured output
    llm_timeout_seconds: float = 60.0

    # Cache Settings
    parse_cache_size: int = 200
    parse_cache_ttl_seconds: int = 3600  # NL -> query mapping is stable
    result_cache_size: int = 50  # GeoJSON payloads can be large
    result_cache_ttl_seconds: int = 900

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This function is cached so settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


# Convenience function for FastAPI dependency injection
def get_settings_dependency() -> Settings:
    """FastAPI dependency for injecting settings into route handlers."""
    return get_settings()
