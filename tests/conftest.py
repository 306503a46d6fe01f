"""Shared test fixtures for pytest.

Environment defaults are set before any application module is imported so
settings, the database engine and the upload directory all point at
throwaway locations.
"""

import os
import tempfile
import uuid
from collections.abc import AsyncGenerator, AsyncIterator, Callable, Sequence
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool


os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STORAGE_DIR", tempfile.mkdtemp(prefix="orda-uploads-"))

from core.config import Settings
from core.exceptions import CartNotFoundError
from dependencies.db import get_db, get_session_factory
from dependencies.extraction import (
    get_file_store,
    get_menu_model_client,
    get_source_fetcher,
)
from main import app
from models import Base
from schemas.menus import MenuItem, MenuMetadata
from services.extraction.persistence import AppendTarget
from services.images.normalize import MenuFile
from services.source_fetch import SourceFetchService


MENU_JSON = (
    '{"isMenu":true,"restaurantName":"Lucky Diner",'
    '"location":{"city":"Austin","state":"TX"},'
    '"categories":['
    '{"category":"Apps","items":['
    '{"name":"Wings","price":12.99,"isEstimate":false},'
    '{"name":"Nachos","price":10.99,"isEstimate":false}]},'
    '{"category":"Entrees","items":['
    '{"name":"Burger","price":15.99,"isEstimate":false,"chips":["Halal"]}]}]}'
)


def split_text(text: str, size: int = 7) -> list[str]:
    """Cut `text` into fixed-size deltas, as a model stream would."""
    return [text[i : i + size] for i in range(0, len(text), size)]


class ScriptedModelClient:
    """Model client that replays fixed text deltas."""

    def __init__(self, deltas: Sequence[str], error: Exception | None = None):
        self.deltas = list(deltas)
        self.error = error
        self.received: list[MenuFile] = []

    async def stream(self, files: Sequence[MenuFile], prompt: str = "") -> AsyncIterator[str]:
        self.received = list(files)
        for delta in self.deltas:
            yield delta
        if self.error is not None:
            raise self.error


class MemoryFileStore:
    def __init__(self) -> None:
        self.saved: list[MenuFile] = []

    async def save(self, menu_file: MenuFile) -> str:
        self.saved.append(menu_file)
        return f"https://files.test/{len(self.saved)}-{menu_file.filename}"


class InMemoryMenuStore:
    """`MenuStore` keeping records in dicts; operations can be made to fail."""

    def __init__(self) -> None:
        self.menus: dict[uuid.UUID, dict[str, Any]] = {}
        self.carts: dict[uuid.UUID, uuid.UUID | None] = {}
        self.calls: list[str] = []
        # Item names each menu held when it was created
        self.created: list[list[str]] = []
        self.failures: dict[str, int] = {}

    def fail(self, name: str, times: int = 1000) -> None:
        """Make the next `times` calls of operation `name` raise."""
        self.failures[name] = times

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if self.failures.get(name, 0) > 0:
            self.failures[name] -= 1
            raise SQLAlchemyError(f"{name} failed")

    def add_cart(self, items: list[MenuItem] | None = None) -> uuid.UUID:
        menu_id = None
        if items is not None:
            menu_id = uuid.uuid4()
            self.menus[menu_id] = {
                "restaurant_name": "Existing",
                "items": list(items),
                "source_urls": ["https://files.test/old.pdf"],
            }
        cart_id = uuid.uuid4()
        self.carts[cart_id] = menu_id
        return cart_id

    async def load_append_target(self, cart_id: uuid.UUID) -> AppendTarget:
        self._call("load_append_target")
        if cart_id not in self.carts:
            raise CartNotFoundError(cart_id)
        menu_id = self.carts[cart_id]
        if menu_id is None:
            return AppendTarget(cart_id=cart_id, menu_id=None)
        menu = self.menus[menu_id]
        return AppendTarget(
            cart_id=cart_id,
            menu_id=menu_id,
            existing_items=list(menu["items"]),
            source_urls=list(menu["source_urls"]),
        )

    async def create_menu(
        self, metadata: MenuMetadata, items: list[MenuItem], source_urls: list[str]
    ) -> uuid.UUID:
        self._call("create_menu")
        menu_id = uuid.uuid4()
        self.created.append([item.name for item in items])
        self.menus[menu_id] = {
            "restaurant_name": metadata.restaurant_name,
            "items": list(items),
            "source_urls": list(source_urls),
        }
        return menu_id

    async def create_cart(self, menu_id: uuid.UUID) -> uuid.UUID:
        self._call("create_cart")
        cart_id = uuid.uuid4()
        self.carts[cart_id] = menu_id
        return cart_id

    async def attach_menu(self, cart_id: uuid.UUID, menu_id: uuid.UUID) -> None:
        self._call("attach_menu")
        self.carts[cart_id] = menu_id

    async def replace_items(self, menu_id: uuid.UUID, items: list[MenuItem]) -> None:
        self._call("replace_items")
        self.menus[menu_id]["items"] = list(items)


@pytest.fixture
def menu_json() -> str:
    return MENU_JSON


@pytest.fixture
def fast_settings() -> Settings:
    # A pass after every delta makes event order deterministic
    return Settings(_env_file=None, PASS_TOKEN_INTERVAL=1)  # type: ignore[call-arg]


@pytest.fixture
def menu_store() -> InMemoryMenuStore:
    return InMemoryMenuStore()


@pytest.fixture
def file_store() -> MemoryFileStore:
    return MemoryFileStore()


@pytest.fixture
def scripted_client() -> Callable[..., ScriptedModelClient]:
    return ScriptedModelClient


@pytest.fixture
def menu_pdf() -> MenuFile:
    return MenuFile(filename="menu.pdf", content_type="application/pdf", data=b"%PDF-1.4 menu")


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", future=True, poolclass=StaticPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
    file_store: MemoryFileStore,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, wired to the SQLite database.

    Tests set `app.dependency_overrides[get_menu_model_client]` themselves to
    choose what the model says.
    """

    async def _get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_file_store] = lambda: file_store
    app.dependency_overrides[get_source_fetcher] = lambda: SourceFetchService(timeout=5)
    app.dependency_overrides[get_menu_model_client] = lambda: ScriptedModelClient(
        split_text(MENU_JSON)
    )
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as client:
        yield client
    app.dependency_overrides.clear()
