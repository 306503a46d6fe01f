"""Menu model: one extracted restaurant menu."""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class Menu(Base):
    """A restaurant menu read from one or more uploaded files.

    `items` holds the flattened item list (one category per item) and is
    always replaced as a whole, never patched element by element.
    """

    __tablename__ = "menus"

    id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    source_urls: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Public URLs of the original menu files",
    )
    restaurant_name: Mapped[str] = mapped_column(String(255), nullable=False)
    location_city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    location_state: Mapped[str | None] = mapped_column(String(32), nullable=True)
    tax_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    items: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list, comment="Flattened menu items"
    )

    carts = relationship("Cart", back_populates="menu")

    def __repr__(self) -> str:
        return f"<Menu(id={self.id}, restaurant_name={self.restaurant_name!r})>"
