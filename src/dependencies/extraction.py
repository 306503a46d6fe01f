"""FastAPI dependencies wiring the extraction engine's collaborators.

Tests replace these through `app.dependency_overrides`.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from core.config import get_settings
from dependencies.db import SessionFactory
from services.extraction.model_client import MenuModelClient, PydanticAIMenuClient
from services.extraction.persistence import MenuStore, SqlMenuStore
from services.source_fetch import SourceFetchService
from services.storage import MenuFileStore, get_menu_file_store


@lru_cache
def get_menu_model_client() -> MenuModelClient:
    return PydanticAIMenuClient(max_tokens=get_settings().MODEL_MAX_TOKENS)


def get_menu_store(session_factory: SessionFactory) -> MenuStore:
    return SqlMenuStore(session_factory, get_settings().DEFAULT_TIP_PERCENTAGE)


def get_file_store() -> MenuFileStore:
    return get_menu_file_store()


def get_source_fetcher() -> SourceFetchService:
    settings = get_settings()
    return SourceFetchService(
        timeout=settings.FETCH_TIMEOUT_SECONDS, max_bytes=settings.FETCH_MAX_BYTES
    )


ModelClientDep = Annotated[MenuModelClient, Depends(get_menu_model_client)]
MenuStoreDep = Annotated[MenuStore, Depends(get_menu_store)]
FileStoreDep = Annotated[MenuFileStore, Depends(get_file_store)]
SourceFetcherDep = Annotated[SourceFetchService, Depends(get_source_fetcher)]
