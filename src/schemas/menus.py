"""Menu schemas: the shape the model writes and the shape we store.

The model is asked for camelCase JSON (`restaurantName`, `isEstimate`), which
is what streams to the client in `item` events. Menu records store a flat,
snake_case item list (`is_estimate`, one `category` per item) in a single JSON
column.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


DEFAULT_CATEGORY = "Menu"


class MenuLocation(BaseModel):
    """City/state the model read or inferred from the menu."""

    city: str | None = None
    state: str | None = Field(
        default=None, description="State abbreviation, e.g. CA, NY, TX"
    )

    model_config = ConfigDict(extra="ignore")


class ExtractedMenuItem(BaseModel):
    """One menu item exactly as the model described it."""

    name: str = Field(..., min_length=1)
    description: str | None = None
    price: float | None = Field(
        default=None, description="Absent when the model could not read a price"
    )
    is_estimate: bool = Field(default=False, alias="isEstimate")
    chips: list[str] = Field(
        default_factory=list,
        description="Free-form dietary/regional tags, e.g. Vegan, Oaxacan",
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("chips", mode="before")
    @classmethod
    def _coerce_chips(cls, v: object) -> list[str]:
        if v is None:
            return []
        if isinstance(v, list):
            return [str(c).strip() for c in v if str(c).strip()]
        raise ValueError("chips must be a list of strings")

    def to_event_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class MenuItem(BaseModel):
    """Stored menu item (one element of `menus.items`)."""

    category: str
    name: str
    description: str | None = None
    price: float = 0
    is_estimate: bool = False
    chips: list[str] = Field(default_factory=list)

    @classmethod
    def from_extracted(cls, category: str, item: ExtractedMenuItem) -> MenuItem:
        # A missing price is stored as 0; the estimate flag is kept as given.
        return cls(
            category=category,
            name=item.name,
            description=item.description,
            price=item.price if item.price is not None else 0,
            is_estimate=item.is_estimate,
            chips=list(item.chips),
        )


class MenuCategory(BaseModel):
    name: str = Field(
        default=DEFAULT_CATEGORY, validation_alias=AliasChoices("category", "name")
    )
    items: list[ExtractedMenuItem] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class MenuDraft(BaseModel):
    """Whole-document view of a finished extraction, grouped by category."""

    is_menu: bool = Field(default=True, alias="isMenu")
    restaurant_name: str | None = Field(default=None, alias="restaurantName")
    location: MenuLocation | None = None
    categories: list[MenuCategory] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def metadata(self) -> MenuMetadata | None:
        if not self.restaurant_name:
            return None
        return MenuMetadata(restaurantName=self.restaurant_name, location=self.location)

    def menu_items(self) -> list[MenuItem]:
        """Flat, stored form of every item in category order."""
        return [
            MenuItem.from_extracted(category.name, item)
            for category in self.categories
            for item in category.items
        ]


class MenuMetadata(BaseModel):
    """Restaurant-level facts announced once per extraction."""

    restaurant_name: str = Field(..., alias="restaurantName")
    location: MenuLocation | None = None

    model_config = ConfigDict(populate_by_name=True)

    def to_event_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"restaurantName": self.restaurant_name}
        if self.location is not None:
            payload["location"] = self.location.model_dump(exclude_none=True)
        return payload


class MenuRead(BaseModel):
    """Menu record as returned by the API."""

    id: UUID
    created_at: datetime
    restaurant_name: str
    location_city: str | None = None
    location_state: str | None = None
    tax_rate: float
    source_urls: list[str] = Field(default_factory=list)
    items: list[MenuItem] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class CartRead(BaseModel):
    id: UUID
    created_at: datetime
    menu_id: UUID | None = None
    tip_percentage: int

    model_config = ConfigDict(from_attributes=True)


class CartWithMenu(BaseModel):
    cart: CartRead
    menu: MenuRead | None = None


class ParseMenuUrlRequest(BaseModel):
    """JSON body for extracting a menu from remote files."""

    pdf_url: str | None = Field(default=None, alias="pdfUrl", max_length=2048)
    urls: list[str] = Field(default_factory=list)
    cart_id: UUID | None = Field(default=None, alias="cartId")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    def all_urls(self) -> list[str]:
        found = [self.pdf_url] if self.pdf_url else []
        return found + [u for u in self.urls if u]


class ParseMenuResponse(BaseModel):
    cart_id: UUID = Field(..., serialization_alias="cartId")
    restaurant_name: str = Field(..., serialization_alias="restaurantName")
