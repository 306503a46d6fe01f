"""Tests for provider selection in the model factory."""

import pytest

from core.config import Settings
from services.ai.model_factory import resolve_provider


def _settings(**kwargs) -> Settings:
    return Settings(_env_file=None, **kwargs)  # type: ignore[call-arg]


def test_gemini_is_the_default():
    assert resolve_provider(_settings(GEMINI_API_KEY="g-key")) == "gemini"


def test_azure_with_full_credentials():
    settings = _settings(
        LLM_PROVIDER="azure_openai",
        AZURE_OPENAI_ENDPOINT="https://example.openai.azure.com/",
        AZURE_OPENAI_API_KEY="a-key",
        AZURE_OPENAI_API_VERSION="2024-10-21",
    )
    assert resolve_provider(settings) == "azure_openai"


def test_partial_azure_credentials_fall_back_to_gemini():
    settings = _settings(
        LLM_PROVIDER="azure_openai",
        AZURE_OPENAI_ENDPOINT="https://example.openai.azure.com/",
        GEMINI_API_KEY="g-key",
    )
    assert resolve_provider(settings) == "gemini"


def test_no_credentials_is_a_configuration_error(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    with pytest.raises(ValueError, match="No valid LLM provider configured"):
        resolve_provider(_settings())
