"""Incremental extraction of menu items from a repaired JSON prefix.

`extract` is a pure function of (repaired text, cursor). It flattens
`categories[].items[]` in encounter order and returns the slice starting at
`cursor`, i.e. every item not yet handed out. The caller advances its cursor
by exactly `len(new_items)` once it has accepted them; calling again with the
same text and the advanced cursor returns nothing new.

Items whose object is still open in the source text (the mender had to close
it) are held back, together with everything after them, so a half-written
item is never reported.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

from pydantic import ValidationError as PydanticValidationError

from schemas.menus import (
    DEFAULT_CATEGORY,
    ExtractedMenuItem,
    MenuCategory,
    MenuDraft,
    MenuItem,
    MenuLocation,
    MenuMetadata,
)
from services.extraction.exceptions import ExtractionFailure
from services.extraction.mender import MendResult


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FlattenedItem:
    """A (category, item) pair at a fixed position of the flattened menu."""

    index: int
    category: str
    item: ExtractedMenuItem

    def to_menu_item(self) -> MenuItem:
        return MenuItem.from_extracted(self.category, self.item)


@dataclass(frozen=True, slots=True)
class ExtractionPass:
    """Outcome of one extraction pass."""

    metadata: MenuMetadata | None = None
    new_items: list[FlattenedItem] = field(default_factory=list)
    # Items visible in the text so far, including one still being written
    seen: int = 0
    complete: bool = False

    def __iter__(self) -> Iterator[object]:
        # Allows `metadata, new_items = extract(...)`
        yield self.metadata
        yield self.new_items


def _as_mend_result(repaired: MendResult | str) -> MendResult:
    if isinstance(repaired, MendResult):
        return repaired
    return MendResult(text=repaired, complete=False)


def _check_not_menu(document: dict[str, object], mended: MendResult) -> None:
    """Raise when the model explicitly says this is not a menu."""
    error = document.get("error")
    reason = error if isinstance(error, str) and error.strip() else None
    if document.get("isMenu") is False and (reason or mended.complete):
        raise ExtractionFailure.not_a_menu(reason)
    if reason and mended.complete and not document.get("categories"):
        raise ExtractionFailure.not_a_menu(reason)


def _metadata(document: dict[str, object], mended: MendResult) -> MenuMetadata | None:
    name = document.get("restaurantName")
    if not isinstance(name, str) or not name.strip():
        return None
    location: MenuLocation | None = None
    raw_location = document.get("location")
    if isinstance(raw_location, dict):
        # A location still being written would announce a city without its state
        if mended.is_open(("location",)):
            return None
        try:
            location = MenuLocation.model_validate(raw_location)
        except PydanticValidationError:
            location = None
    elif "categories" not in document and not mended.complete:
        # The location may still follow the name
        return None
    return MenuMetadata(restaurantName=name.strip(), location=location)


def _category_name(category: dict[str, object]) -> str | None:
    name = category.get("category", category.get("name"))
    if isinstance(name, str) and name.strip():
        return name.strip()
    return None


def _flatten(
    document: dict[str, object], mended: MendResult
) -> tuple[list[FlattenedItem], int]:
    """Flatten categories into items; returns (complete items, items seen)."""
    flattened: list[FlattenedItem] = []
    categories = document.get("categories")
    if not isinstance(categories, list):
        return flattened, 0

    for ci, category in enumerate(categories):
        if not isinstance(category, dict):
            continue
        name = _category_name(category)
        category_open = mended.is_open(("categories", ci))
        if name is None and category_open:
            # Items arrived before the category name; wait for it
            return flattened, len(flattened)
        items = category.get("items")
        if not isinstance(items, list):
            continue
        for ii, raw in enumerate(items):
            if mended.is_open(("categories", ci, "items", ii)):
                return flattened, len(flattened) + 1
            if not isinstance(raw, dict):
                continue
            try:
                item = ExtractedMenuItem.model_validate(raw)
            except PydanticValidationError as e:
                logger.debug("Skipping malformed menu item %s/%s: %s", ci, ii, e)
                continue
            flattened.append(
                FlattenedItem(
                    index=len(flattened),
                    category=name or DEFAULT_CATEGORY,
                    item=item,
                )
            )
    return flattened, len(flattened)


def extract(repaired: MendResult | str | None, cursor: int) -> ExtractionPass:
    """Return metadata (if known) and the items at or after `cursor`.

    Raises:
        ExtractionFailure: the document says it is not a menu.
    """
    if repaired is None:
        return ExtractionPass()
    if cursor < 0:
        raise ValueError("cursor must be non-negative")
    mended = _as_mend_result(repaired)
    try:
        document = json.loads(mended.text)
    except ValueError:
        return ExtractionPass()
    if not isinstance(document, dict):
        return ExtractionPass()

    _check_not_menu(document, mended)
    flattened, seen = _flatten(document, mended)
    return ExtractionPass(
        metadata=_metadata(document, mended),
        new_items=flattened[cursor:],
        seen=seen,
        complete=mended.complete,
    )


def build_draft(repaired: MendResult | str) -> MenuDraft:
    """Assemble a MenuDraft from the complete parts of a document."""
    mended = _as_mend_result(repaired)
    result = extract(mended, 0)
    categories: list[MenuCategory] = []
    for flat in result.new_items:
        if not categories or categories[-1].name != flat.category:
            categories.append(MenuCategory(name=flat.category))
        categories[-1].items.append(flat.item)
    metadata = result.metadata
    return MenuDraft(
        isMenu=True,
        restaurantName=metadata.restaurant_name if metadata else None,
        location=metadata.location if metadata else None,
        categories=categories,
    )
