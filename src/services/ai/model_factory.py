"""AI model factory for menu reading.

Builds the multimodal pydantic-ai model that reads menu PDFs and photos,
using Gemini or Azure OpenAI depending on `LLM_PROVIDER`.

Usage:
    from services.ai.model_factory import get_multimodal_model

    model = get_multimodal_model()  # Returns pydantic-ai Model
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal, cast

from pydantic_ai.models import Model
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.models.openai import OpenAIModel
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.providers.openai import OpenAIProvider

from core.config import Settings, get_settings


if TYPE_CHECKING:
    from httpx import AsyncClient

logger = logging.getLogger(__name__)

Provider = Literal["gemini", "azure_openai"]


def _has_azure_credentials(settings: Settings) -> bool:
    return bool(
        settings.AZURE_OPENAI_ENDPOINT
        and settings.AZURE_OPENAI_API_KEY
        and settings.AZURE_OPENAI_API_VERSION
    )


def resolve_provider(settings: Settings | None = None) -> Provider:
    """Pick the provider to use, falling back to Gemini.

    Raises:
        ValueError: If neither provider has usable credentials
    """
    settings = settings or get_settings()
    if settings.LLM_PROVIDER == "azure_openai":
        if _has_azure_credentials(settings):
            return "azure_openai"
        logger.warning(
            "LLM_PROVIDER=azure_openai but credentials missing, falling back to Gemini"
        )
    if not settings.GEMINI_API_KEY:
        raise ValueError(
            "No valid LLM provider configured. Either set Azure OpenAI "
            "credentials (AZURE_OPENAI_ENDPOINT + AZURE_OPENAI_API_KEY + "
            "AZURE_OPENAI_API_VERSION) or Gemini credentials (GEMINI_API_KEY)."
        )
    return "gemini"


def _create_azure_model(
    settings: Settings, model_name: str, http_client: AsyncClient | None
) -> Model:
    from openai import AsyncAzureOpenAI

    # Trailing slashes produce `//openai/...` URLs that Azure answers with 404
    endpoint = (settings.AZURE_OPENAI_ENDPOINT or "").rstrip("/")
    azure_client = AsyncAzureOpenAI(
        azure_endpoint=endpoint,
        api_key=settings.AZURE_OPENAI_API_KEY,
        api_version=settings.AZURE_OPENAI_API_VERSION,
        http_client=http_client,
    )
    return OpenAIModel(model_name, provider=OpenAIProvider(openai_client=azure_client))


def _create_gemini_model(
    settings: Settings, model_name: str, http_client: AsyncClient | None
) -> Model:
    provider = GoogleProvider(api_key=settings.GEMINI_API_KEY, http_client=http_client)
    return cast(Model, GoogleModel(model_name, provider=provider))


def get_multimodal_model(http_client: AsyncClient | None = None) -> Model:
    """Get the multimodal model that reads PDF and image menus.

    Args:
        http_client: Optional HTTP client for custom retry logic.

    Returns:
        A pydantic-ai Model configured for the selected provider.
    """
    settings = get_settings()
    provider = resolve_provider(settings)
    model_name = settings.MULTIMODAL_MODEL
    logger.info("Using %s multimodal model: %s", provider, model_name)
    if provider == "azure_openai":
        return _create_azure_model(settings, model_name, http_client)
    return _create_gemini_model(settings, model_name, http_client)
