"""Cart read endpoints."""

from uuid import UUID

from fastapi import APIRouter

from core.exceptions import CartNotFoundError
from crud.carts import get_cart_by_id
from dependencies.db import DbSession
from schemas.api import ApiResponse
from schemas.menus import CartRead, CartWithMenu, MenuRead


router = APIRouter(prefix="/carts", tags=["carts"])


@router.get("/{cart_id}", response_model=ApiResponse[CartWithMenu])
async def get_cart(cart_id: UUID, db: DbSession) -> ApiResponse[CartWithMenu]:
    """Get a cart together with the menu it points at."""
    cart = await get_cart_by_id(db, cart_id, with_menu=True)
    if cart is None:
        raise CartNotFoundError(cart_id)
    menu = MenuRead.model_validate(cart.menu) if cart.menu is not None else None
    return ApiResponse(
        success=True,
        data=CartWithMenu(cart=CartRead.model_validate(cart), menu=menu),
        message="Cart retrieved successfully",
    )
