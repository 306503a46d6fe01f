"""CRUD operations for menus."""

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import MenuNotFoundError
from models.menus import Menu


async def create_menu(
    db: AsyncSession,
    restaurant_name: str,
    items: list[dict[str, Any]],
    tax_rate: float,
    location_city: str | None = None,
    location_state: str | None = None,
    source_urls: list[str] | None = None,
) -> Menu:
    """Create a new menu.

    Args:
        db: Database session
        restaurant_name: Name the menu was extracted for
        items: Flattened menu items (stored shape)
        tax_rate: Sales tax rate as a decimal
        location_city: Optional city
        location_state: Optional state abbreviation
        source_urls: Public URLs of the original files

    Returns:
        Created Menu instance
    """
    menu = Menu(
        restaurant_name=restaurant_name,
        items=items,
        tax_rate=tax_rate,
        location_city=location_city,
        location_state=location_state,
        source_urls=list(source_urls or []),
    )

    db.add(menu)
    await db.commit()
    await db.refresh(menu)

    return menu


async def get_menu_by_id(db: AsyncSession, menu_id: UUID) -> Menu | None:
    result = await db.execute(select(Menu).where(Menu.id == menu_id))
    return result.scalar_one_or_none()


async def replace_menu_items(
    db: AsyncSession, menu_id: UUID, items: list[dict[str, Any]]
) -> Menu:
    """Overwrite a menu's whole item list.

    Raises:
        MenuNotFoundError: If the menu does not exist
    """
    menu = await get_menu_by_id(db, menu_id)
    if menu is None:
        raise MenuNotFoundError(menu_id)

    # A new list object so the JSON column is flagged dirty
    menu.items = list(items)
    await db.commit()
    await db.refresh(menu)
    return menu
