"""CRUD operations for carts."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.exceptions import CartNotFoundError
from models.carts import Cart


async def create_cart(
    db: AsyncSession, menu_id: UUID | None, tip_percentage: int = 18
) -> Cart:
    cart = Cart(menu_id=menu_id, tip_percentage=tip_percentage)
    db.add(cart)
    await db.commit()
    await db.refresh(cart)
    return cart


async def get_cart_by_id(
    db: AsyncSession, cart_id: UUID, with_menu: bool = False
) -> Cart | None:
    """Get a cart by ID, optionally eager-loading its menu."""
    query = select(Cart).where(Cart.id == cart_id)
    if with_menu:
        query = query.options(selectinload(Cart.menu))
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def attach_menu(db: AsyncSession, cart_id: UUID, menu_id: UUID) -> Cart:
    """Point an existing cart at a different menu.

    Raises:
        CartNotFoundError: If the cart does not exist
    """
    cart = await get_cart_by_id(db, cart_id)
    if cart is None:
        raise CartNotFoundError(cart_id)
    cart.menu_id = menu_id
    await db.commit()
    await db.refresh(cart)
    return cart
