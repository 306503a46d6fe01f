"""Cart model: a shared ordering session pointing at a menu."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Integer
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class Cart(Base):
    __tablename__ = "carts"

    id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    menu_id: Mapped[uuid.UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("menus.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    tip_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=18)

    menu = relationship("Menu", back_populates="carts")

    def __repr__(self) -> str:
        return f"<Cart(id={self.id}, menu_id={self.menu_id})>"
