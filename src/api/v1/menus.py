"""Menu extraction and menu read endpoints."""

from __future__ import annotations

import logging
import mimetypes
from collections.abc import AsyncIterator
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile

from core.config import get_settings
from core.exceptions import MenuNotFoundError
from crud.menus import get_menu_by_id
from dependencies.db import DbSession
from dependencies.extraction import (
    FileStoreDep,
    MenuStoreDep,
    ModelClientDep,
    SourceFetcherDep,
)
from schemas.api import ApiResponse
from schemas.extraction import ExtractionEvent
from schemas.menus import MenuRead, ParseMenuResponse, ParseMenuUrlRequest
from services.extraction.encoder import SSE_HEADERS, encode_stream
from services.extraction.exceptions import ValidationError
from services.extraction.session import ExtractionSession, stream_detached
from services.images.normalize import MenuFile


logger = logging.getLogger(__name__)

router = APIRouter(tags=["menus"])


def _wants_event_stream(request: Request) -> bool:
    return "text/event-stream" in request.headers.get("accept", "").lower()


def _parse_cart_id(raw: object) -> UUID | None:
    if raw is None or raw == "":
        return None
    try:
        return UUID(str(raw))
    except ValueError as e:
        raise ValidationError("cartId is not a valid cart identifier.") from e


async def _upload_to_menu_file(upload: UploadFile) -> MenuFile:
    filename = upload.filename or "menu"
    content_type = (upload.content_type or "").lower()
    if not content_type or content_type == "application/octet-stream":
        content_type = mimetypes.guess_type(filename)[0] or content_type
    return MenuFile(filename=filename, content_type=content_type, data=await upload.read())


async def _read_request(request: Request) -> tuple[list[MenuFile], list[str], UUID | None]:
    """Return (uploaded files, remote URLs, append-target cart id).

    Raises:
        ValidationError: If the body is neither a multipart upload nor valid JSON
    """
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        uploads = [f for f in form.getlist("file") if isinstance(f, UploadFile)]
        if not uploads:
            raise ValidationError("No file provided.")
        max_pages = get_settings().MAX_PAGES
        if len(uploads) > max_pages:
            raise ValidationError(f"Too many files. Maximum {max_pages} pages allowed.")
        files = [await _upload_to_menu_file(u) for u in uploads]
        return files, [], _parse_cart_id(form.get("cartId"))

    try:
        body: Any = await request.json()
        payload = ParseMenuUrlRequest.model_validate(body)
    except (ValueError, PydanticValidationError) as e:
        raise ValidationError(
            "Send menu files as multipart 'file' fields or a JSON body with 'pdfUrl'."
        ) from e
    urls = payload.all_urls()
    if not urls:
        raise ValidationError("No file provided.")
    return [], urls, payload.cart_id


async def _single_error(event: ExtractionEvent) -> AsyncIterator[ExtractionEvent]:
    yield event


def _event_stream_response(events: AsyncIterator[ExtractionEvent]) -> StreamingResponse:
    return StreamingResponse(
        encode_stream(events), media_type="text/event-stream", headers=SSE_HEADERS
    )


@router.post(
    "/parse-menu",
    status_code=status.HTTP_201_CREATED,
    response_model=ParseMenuResponse,
    summary="Extract a menu from uploaded files or file URLs",
)
async def parse_menu(
    request: Request,
    model_client: ModelClientDep,
    menu_store: MenuStoreDep,
    file_store: FileStoreDep,
    fetcher: SourceFetcherDep,
) -> Any:
    """Read a menu and save it as a new cart (or onto an existing one).

    With `Accept: text/event-stream` the response is a Server-Sent Event
    stream (status, progress, metadata, item, menu_extraction_end,
    firstItem, then complete or error). Otherwise the request runs to
    completion and returns `{cartId, restaurantName}`.
    """
    streaming = _wants_event_stream(request)
    try:
        files, urls, cart_id = await _read_request(request)
    except ValidationError as e:
        if streaming:
            return _event_stream_response(
                _single_error(ExtractionEvent.error(e.message, e.error_code))
            )
        raise

    session = ExtractionSession(
        model_client=model_client,
        menu_store=menu_store,
        file_store=file_store,
        files=files,
        urls=urls,
        cart_id=cart_id,
        fetcher=fetcher,
    )
    if streaming:
        return _event_stream_response(stream_detached(session))

    result = await session.run()
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=ParseMenuResponse(
            cart_id=result.cart_id, restaurant_name=result.restaurant_name
        ).model_dump(mode="json", by_alias=True),
    )


@router.get("/menus/{menu_id}", response_model=ApiResponse[MenuRead])
async def get_menu(menu_id: UUID, db: DbSession) -> ApiResponse[MenuRead]:
    """Get a menu, including the URLs of its original files."""
    menu = await get_menu_by_id(db, menu_id)
    if menu is None:
        raise MenuNotFoundError(menu_id)
    return ApiResponse(
        success=True,
        data=MenuRead.model_validate(menu),
        message="Menu retrieved successfully",
    )
