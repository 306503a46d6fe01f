"""Durable storage for the original menu files.

Originals are kept so people can "view original" next to the extracted
menu. The store returns a public URL per file; the URLs end up in
`menus.source_urls`.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from pathlib import Path
from typing import Protocol

from core.config import get_settings
from services.extraction.exceptions import PersistenceError
from services.images.normalize import MenuFile


logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class MenuFileStore(Protocol):
    """Anything that can persist a menu file and hand back its public URL."""

    async def save(self, menu_file: MenuFile) -> str:  # pragma: no cover - protocol
        ...


def safe_filename(filename: str) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", filename).strip("._")
    return cleaned or "menu"


class LocalMenuFileStore:
    """Write files under a directory served as static files by the app."""

    def __init__(self, root: str | Path, base_url: str) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _write(self, name: str, data: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / name).write_bytes(data)

    async def save(self, menu_file: MenuFile) -> str:
        name = f"{uuid.uuid4().hex}-{safe_filename(menu_file.filename)}"
        try:
            await asyncio.to_thread(self._write, name, menu_file.data)
        except OSError as e:
            logger.error("Failed to store %s: %s", menu_file.filename, e)
            raise PersistenceError("Failed to upload menu file") from e
        logger.debug("Stored %s (%d bytes) as %s", menu_file.filename, menu_file.size, name)
        return f"{self.base_url}/{name}"


async def save_all(store: MenuFileStore, files: list[MenuFile]) -> list[str]:
    """Store files in order; returns their URLs in the same order."""
    return [await store.save(f) for f in files]


def get_menu_file_store() -> MenuFileStore:
    settings = get_settings()
    base_url = settings.PUBLIC_BASE_URL.rstrip("/") + settings.STORAGE_URL_PATH
    return LocalMenuFileStore(settings.STORAGE_DIR, base_url)
