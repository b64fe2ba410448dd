from unittest.mock import patch

import pytest

from session_agent.adaptors.openai import OpenAIAdaptor
from session_agent.agent import Agent
from session_agent.config import Settings, build_agent, build_model, build_store
from session_agent.storage import InMemoryStore, JsonFileStore
from session_agent.tools import ToolCatalog


def settings(**overrides):
    return Settings(_env_file=None, **overrides)


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("MAX_STEPS", "PROVIDER", "STORAGE_DIR"):
            monkeypatch.delenv(f"SESSION_AGENT_{name}", raising=False)

        s = settings()

        assert s.MAX_STEPS == 10
        assert s.MAX_TOOL_ATTEMPTS == 3
        assert s.PROVIDER == "openai"
        assert s.STORAGE_DIR is None

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("SESSION_AGENT_MAX_STEPS", "4")
        monkeypatch.setenv("SESSION_AGENT_PROVIDER", "anthropic")

        s = settings()

        assert s.MAX_STEPS == 4
        assert s.PROVIDER == "anthropic"


class TestBuilders:
    def test_memory_store_by_default(self):
        assert isinstance(build_store(settings(STORAGE_DIR=None)), InMemoryStore)

    def test_file_store(self, tmp_path):
        store = build_store(settings(STORAGE_DIR=str(tmp_path / "data")))

        assert isinstance(store, JsonFileStore)
        assert (tmp_path / "data").is_dir()

    def test_openai_model(self):
        model = build_model(
            settings(PROVIDER="openai", API_KEY="sk-test", MODEL="gpt-4o", BASE_URL="http://x/v1")
        )

        assert isinstance(model, OpenAIAdaptor)
        assert model.model == "gpt-4o"
        assert model.base_url == "http://x/v1"

    def test_anthropic_model(self):
        with patch("session_agent.adaptors.anthropic.AsyncAnthropic"):
            model = build_model(settings(PROVIDER="Anthropic", API_KEY="k"))

        assert model.__class__.__name__ == "AnthropicAdaptor"

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            build_model(settings(PROVIDER="carrier-pigeon", API_KEY="k"))

    def test_agent_uses_limits(self):
        agent = build_agent(
            settings(API_KEY="sk-test", PROVIDER="openai", MAX_STEPS=3, MAX_TOOL_ATTEMPTS=1)
        )

        assert isinstance(agent, Agent)
        assert agent.max_steps == 3
        assert agent.executor.max_tool_attempts == 1
        assert "scheduleTask" in agent.catalog

    def test_agent_with_custom_catalog(self):
        catalog = ToolCatalog([])

        agent = build_agent(settings(API_KEY="sk-test", PROVIDER="openai"), catalog=catalog)

        assert agent.catalog is catalog
