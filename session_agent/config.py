"""Configuration settings for session-agent."""

import logging
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from session_agent.agent import Agent
from session_agent.storage import InMemoryStore, JsonFileStore, KeyValueStore
from session_agent.tools import ToolCatalog


class Settings(BaseSettings):
    """Loaded from SESSION_AGENT_* environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_prefix="SESSION_AGENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    MAX_STEPS: int = 10
    MAX_TOOL_ATTEMPTS: int = 3
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # LLM Configuration
    PROVIDER: str = "openai"  # Options: openai, anthropic
    MODEL: Optional[str] = None
    BASE_URL: Optional[str] = None
    API_KEY: Optional[str] = None

    # Where session state, schedules and message logs live; in memory if unset
    STORAGE_DIR: Optional[str] = None


def configure_logging(level: str = "info") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_store(settings: Settings) -> KeyValueStore:
    if settings.STORAGE_DIR:
        return JsonFileStore(settings.STORAGE_DIR)
    return InMemoryStore()


def build_model(settings: Settings):
    provider = settings.PROVIDER.lower()
    if provider == "openai":
        from session_agent.adaptors.openai import OpenAIAdaptor

        kwargs = {"api_key": settings.API_KEY, "base_url": settings.BASE_URL}
        if settings.MODEL:
            kwargs["model"] = settings.MODEL
        return OpenAIAdaptor(**kwargs)
    if provider == "anthropic":
        from session_agent.adaptors.anthropic import AnthropicAdaptor

        kwargs = {"api_key": settings.API_KEY}
        if settings.MODEL:
            kwargs["model"] = settings.MODEL
        return AnthropicAdaptor(**kwargs)
    raise ValueError(f"Unknown provider '{settings.PROVIDER}'. Options: openai, anthropic")


def build_agent(settings: Settings, catalog: Optional[ToolCatalog] = None) -> Agent:
    if catalog is None:
        from session_agent.builtin_tools import default_catalog

        catalog = default_catalog()
    return Agent(
        model=build_model(settings),
        catalog=catalog,
        max_steps=settings.MAX_STEPS,
        max_tool_attempts=settings.MAX_TOOL_ATTEMPTS,
    )
