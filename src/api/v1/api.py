from fastapi import APIRouter

from .carts import router as carts_router
from .health import router as health_router
from .menus import router as menus_router


api_router = APIRouter()

api_router.include_router(health_router)
api_router.include_router(menus_router)
api_router.include_router(carts_router)
