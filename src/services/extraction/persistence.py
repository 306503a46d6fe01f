"""Incremental persistence of extracted menu items.

The coordinator keeps the stored menu in step with what has been streamed
to the client:

* the first item (once the restaurant name is known) creates the menu and
  either a new cart or re-points the append-target cart at it;
* every later pass overwrites the menu's whole item array;
* the final write stores the authoritative item set.

Interim writes are best effort: a failure is logged and the stream goes on,
because the final write repeats the whole array anyway. A failure of the
final write is fatal and raises `PersistenceError`.

In append mode the items already on the cart's menu are kept in front of the
newly extracted ones in every write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import crud.carts as crud_carts
import crud.menus as crud_menus
from core.exceptions import CartNotFoundError, DomainError
from schemas.menus import MenuItem, MenuMetadata
from services.extraction.exceptions import PersistenceError, ValidationError
from services.extraction.extractor import FlattenedItem
from services.tax_rates import get_tax_rate


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AppendTarget:
    """An existing cart whose menu receives the newly extracted items."""

    cart_id: UUID
    menu_id: UUID | None
    existing_items: list[MenuItem] = field(default_factory=list)
    source_urls: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class FirstItemCreated:
    """Returned when the first item created a brand-new cart."""

    cart_id: UUID
    menu_id: UUID
    restaurant_name: str
    item: FlattenedItem


class MenuStore(Protocol):
    """Storage operations the coordinator needs."""

    async def load_append_target(self, cart_id: UUID) -> AppendTarget: ...

    async def create_menu(
        self,
        metadata: MenuMetadata,
        items: list[MenuItem],
        source_urls: list[str],
    ) -> UUID: ...

    async def create_cart(self, menu_id: UUID) -> UUID: ...

    async def attach_menu(self, cart_id: UUID, menu_id: UUID) -> None: ...

    async def replace_items(self, menu_id: UUID, items: list[MenuItem]) -> None: ...


def _dump_items(items: list[MenuItem]) -> list[dict[str, Any]]:
    return [item.model_dump(mode="json") for item in items]


class SqlMenuStore:
    """`MenuStore` backed by the relational database.

    Each operation uses its own short-lived session so the store can outlive
    the HTTP request that started the extraction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tip_percentage: int = 18,
    ) -> None:
        self._session_factory = session_factory
        self._tip_percentage = tip_percentage

    async def load_append_target(self, cart_id: UUID) -> AppendTarget:
        async with self._session_factory() as db:
            cart = await crud_carts.get_cart_by_id(db, cart_id, with_menu=True)
            if cart is None:
                raise CartNotFoundError(cart_id)
            menu = cart.menu
            if menu is None:
                return AppendTarget(cart_id=cart.id, menu_id=None)
            return AppendTarget(
                cart_id=cart.id,
                menu_id=menu.id,
                existing_items=[MenuItem.model_validate(i) for i in menu.items or []],
                source_urls=list(menu.source_urls or []),
            )

    async def create_menu(
        self,
        metadata: MenuMetadata,
        items: list[MenuItem],
        source_urls: list[str],
    ) -> UUID:
        location = metadata.location
        state = location.state if location else None
        async with self._session_factory() as db:
            menu = await crud_menus.create_menu(
                db,
                restaurant_name=metadata.restaurant_name,
                items=_dump_items(items),
                tax_rate=get_tax_rate(state),
                location_city=location.city if location else None,
                location_state=state,
                source_urls=source_urls,
            )
            return menu.id

    async def create_cart(self, menu_id: UUID) -> UUID:
        async with self._session_factory() as db:
            cart = await crud_carts.create_cart(db, menu_id, self._tip_percentage)
            return cart.id

    async def attach_menu(self, cart_id: UUID, menu_id: UUID) -> None:
        async with self._session_factory() as db:
            await crud_carts.attach_menu(db, cart_id, menu_id)

    async def replace_items(self, menu_id: UUID, items: list[MenuItem]) -> None:
        async with self._session_factory() as db:
            await crud_menus.replace_menu_items(db, menu_id, _dump_items(items))


# Failures the coordinator treats as "the write did not happen"
STORE_ERRORS: tuple[type[Exception], ...] = (SQLAlchemyError, DomainError, OSError)


class PersistenceCoordinator:
    """Mirror streamed items into the menu store for one extraction."""

    def __init__(
        self,
        store: MenuStore,
        source_urls: list[str] | None = None,
        append_target: AppendTarget | None = None,
    ) -> None:
        self._store = store
        self._append_target = append_target
        self._source_urls = list(source_urls or [])
        self._items: list[MenuItem] = []
        self._first_item: FlattenedItem | None = None
        self.menu_id: UUID | None = None
        self.cart_id: UUID | None = append_target.cart_id if append_target else None

    @classmethod
    async def for_cart(
        cls,
        store: MenuStore,
        cart_id: UUID | None,
        source_urls: list[str] | None = None,
    ) -> PersistenceCoordinator:
        """Build a coordinator, resolving the append target when given.

        Raises:
            ValidationError: If `cart_id` does not name an existing cart
        """
        if cart_id is None:
            return cls(store, source_urls)
        try:
            target = await store.load_append_target(cart_id)
        except CartNotFoundError as e:
            raise ValidationError("That cart no longer exists.") from e
        return cls(store, source_urls, target)

    def add_source_urls(self, urls: list[str]) -> None:
        self._source_urls.extend(urls)

    @property
    def is_append(self) -> bool:
        return self._append_target is not None

    @property
    def existing_items(self) -> list[MenuItem]:
        return list(self._append_target.existing_items) if self._append_target else []

    def _all_items(self, new_items: list[MenuItem]) -> list[MenuItem]:
        return self.existing_items + new_items

    def _all_source_urls(self) -> list[str]:
        previous = self._append_target.source_urls if self._append_target else []
        return previous + [u for u in self._source_urls if u not in previous]

    async def _create(self, metadata: MenuMetadata, items: list[MenuItem]) -> None:
        menu_id = await self._store.create_menu(
            metadata, self._all_items(items), self._all_source_urls()
        )
        if self._append_target is not None:
            await self._store.attach_menu(self._append_target.cart_id, menu_id)
            cart_id = self._append_target.cart_id
        else:
            cart_id = await self._store.create_cart(menu_id)
        # Only a fully linked menu counts; a half-done attempt is retried
        self.menu_id, self.cart_id = menu_id, cart_id

    async def _replace_interim(self) -> None:
        if self.menu_id is None:
            return
        try:
            await self._store.replace_items(self.menu_id, self._all_items(self._items))
        except STORE_ERRORS as e:
            logger.warning(
                "Interim write of %d items failed: %s", len(self._items), e, exc_info=True
            )

    async def record(
        self, metadata: MenuMetadata | None, new_items: list[FlattenedItem]
    ) -> FirstItemCreated | None:
        """Persist the items emitted by one pass (best effort).

        The menu is created holding only the first item; anything else the
        pass produced follows as a whole-array overwrite. Returns
        `FirstItemCreated` exactly once, when the first item created a new
        cart. Never returns it in append mode.
        """
        if new_items and self._first_item is None:
            self._first_item = new_items[0]
        self._items.extend(flat.to_menu_item() for flat in new_items)
        if metadata is None or self._first_item is None:
            # Held until the restaurant name is known
            return None
        if not new_items and self.menu_id is not None:
            return None

        if self.menu_id is not None:
            await self._replace_interim()
            return None

        try:
            await self._create(metadata, [self._first_item.to_menu_item()])
        except STORE_ERRORS as e:
            logger.warning("Interim menu creation failed: %s", e, exc_info=True)
            return None
        logger.info(
            "Created menu %s for cart %s (append=%s)",
            self.menu_id,
            self.cart_id,
            self.is_append,
        )
        if len(self._items) > 1:
            await self._replace_interim()
        if self.is_append or self.cart_id is None:
            return None
        return FirstItemCreated(
            cart_id=self.cart_id,
            menu_id=self.menu_id,
            restaurant_name=metadata.restaurant_name,
            item=self._first_item,
        )

    async def finalize(
        self, metadata: MenuMetadata, items: list[MenuItem]
    ) -> tuple[UUID, UUID]:
        """Write the authoritative item set; returns (menu_id, cart_id).

        Raises:
            PersistenceError: If the write fails
        """
        self._items = list(items)
        try:
            if self.menu_id is None:
                await self._create(metadata, self._items)
            else:
                await self._store.replace_items(
                    self.menu_id, self._all_items(self._items)
                )
        except STORE_ERRORS as e:
            logger.error("Final menu write failed: %s", e, exc_info=True)
            raise PersistenceError() from e

        if self.menu_id is None or self.cart_id is None:
            raise PersistenceError()
        return self.menu_id, self.cart_id

    @property
    def stored_items(self) -> list[MenuItem]:
        """Items as the final write stores them (existing first)."""
        return self._all_items(self._items)
