"""Streaming access to the multimodal model that reads menus."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from typing import Protocol

import httpx
from pydantic_ai import Agent
from pydantic_ai.exceptions import AgentRunError
from pydantic_ai.messages import BinaryContent
from pydantic_ai.settings import ModelSettings

from services.extraction.exceptions import ModelStreamError
from services.extraction.prompts import MENU_EXTRACTION_PROMPT
from services.images.normalize import MenuFile


logger = logging.getLogger(__name__)


class MenuModelClient(Protocol):
    """Produces the model's answer as a stream of text deltas."""

    def stream(
        self, files: Sequence[MenuFile], prompt: str = MENU_EXTRACTION_PROMPT
    ) -> AsyncIterator[str]:  # pragma: no cover - protocol
        ...


def build_user_content(
    files: Sequence[MenuFile], prompt: str
) -> list[str | BinaryContent]:
    """Prompt first, then one BinaryContent per file in page order."""
    content: list[str | BinaryContent] = [prompt]
    for menu_file in files:
        # The model does not distinguish the legacy image/jpg alias
        media_type = (
            "image/jpeg" if menu_file.content_type == "image/jpg" else menu_file.content_type
        )
        content.append(BinaryContent(data=menu_file.data, media_type=media_type))
    return content


class PydanticAIMenuClient:
    """`MenuModelClient` backed by a pydantic-ai text agent."""

    def __init__(self, agent: Agent[None, str] | None = None, max_tokens: int = 8192):
        self._agent = agent
        self._max_tokens = max_tokens

    def _get_agent(self) -> Agent[None, str]:
        if self._agent is None:  # Lazy creation
            from services.ai.model_factory import get_multimodal_model

            self._agent = Agent(get_multimodal_model(), output_type=str)
        return self._agent

    async def stream(
        self, files: Sequence[MenuFile], prompt: str = MENU_EXTRACTION_PROMPT
    ) -> AsyncIterator[str]:
        agent = self._get_agent()
        content = build_user_content(files, prompt)
        settings = ModelSettings(max_tokens=self._max_tokens, temperature=0.0)
        try:
            async with agent.run_stream(content, model_settings=settings) as result:
                async for delta in result.stream_text(delta=True):
                    if delta:
                        yield delta
        except (AgentRunError, httpx.HTTPError) as e:
            logger.error("Model stream failed: %s", e)
            raise ModelStreamError() from e
