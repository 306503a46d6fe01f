"""One streaming menu extraction, from uploaded files to a saved cart.

An `ExtractionSession` owns the accumulated model text and the emission
cursor for a single request. It walks

    Initializing -> Uploading -> Requesting -> Streaming -> Finalizing
        -> Complete | Failed

and yields `ExtractionEvent`s as it goes. While the model streams, every
`pass_token_interval` deltas the accumulated text is repaired and re-read;
items that became complete since the previous pass are emitted, persisted,
and the cursor moves past them.

A session always ends with exactly one terminal event: `complete`, or a
single `error` carrying a plain-language message.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from enum import StrEnum
from uuid import UUID

from core.config import Settings, get_settings
from core.error_handler import StructuredLogger
from schemas.extraction import ExtractionEvent
from schemas.menus import MenuItem, MenuMetadata
from services.extraction.exceptions import (
    GENERIC_ERROR_MESSAGE,
    ExtractionFailure,
    MenuExtractionError,
    ValidationError,
)
from services.extraction.extractor import build_draft, extract
from services.extraction.mender import MendResult, mend_prefix
from services.extraction.model_client import MenuModelClient
from services.extraction.persistence import MenuStore, PersistenceCoordinator
from services.images.normalize import MenuFile, prepare_for_model, validate_menu_files
from services.source_fetch import SourceFetchService, validate_source_url
from services.storage import MenuFileStore, save_all


logger = logging.getLogger(__name__)
structured_logger = StructuredLogger(__name__)


class SessionState(StrEnum):
    INITIALIZING = "initializing"
    UPLOADING = "uploading"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ExtractionResult:
    """What a completed session saved."""

    cart_id: UUID
    menu_id: UUID
    restaurant_name: str
    items: list[MenuItem]


class ExtractionSession:
    """Drive one extraction; iterate `events()` or await `run()`.

    The model client, both stores and the URL fetcher are injected so tests
    can script every collaborator.
    """

    def __init__(
        self,
        model_client: MenuModelClient,
        menu_store: MenuStore,
        file_store: MenuFileStore,
        files: Sequence[MenuFile] = (),
        urls: Sequence[str] = (),
        cart_id: UUID | None = None,
        fetcher: SourceFetchService | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._model_client = model_client
        self._menu_store = menu_store
        self._file_store = file_store
        self._files = list(files)
        self._urls = list(urls)
        self._cart_id = cart_id
        self._fetcher = fetcher or SourceFetchService(
            timeout=self._settings.FETCH_TIMEOUT_SECONDS,
            max_bytes=self._settings.FETCH_MAX_BYTES,
        )

        self.state = SessionState.INITIALIZING
        self.result: ExtractionResult | None = None
        self.error: Exception | None = None

        self._started = False
        self._text = ""
        self._cursor = 0
        self._seen = 0
        self._metadata: MenuMetadata | None = None
        self._end_sent = False
        self._coordinator: PersistenceCoordinator | None = None

    @property
    def cursor(self) -> int:
        return self._cursor

    def _transition(self, state: SessionState) -> None:
        structured_logger.info(
            "Extraction session state change",
            from_state=str(self.state),
            to_state=str(state),
            items_emitted=self._cursor,
        )
        self.state = state

    async def events(self) -> AsyncIterator[ExtractionEvent]:
        """Run the session, yielding events until exactly one terminal event."""
        if self._started:
            raise RuntimeError("An extraction session can only run once")
        self._started = True
        try:
            async for event in self._run():
                yield event
        except MenuExtractionError as e:
            self._fail(e)
            structured_logger.warning(
                "Menu extraction failed",
                error_code=e.error_code,
                state=str(self.state),
                items_emitted=self._cursor,
            )
            yield ExtractionEvent.error(e.message, e.error_code)
        except Exception as e:
            self._fail(e)
            structured_logger.exception(
                "Unexpected menu extraction failure",
                exception_type=e.__class__.__name__,
                error=str(e),
            )
            yield ExtractionEvent.error(GENERIC_ERROR_MESSAGE, "internal_error")

    async def run(self) -> ExtractionResult:
        """Run to completion without a listener.

        Raises:
            MenuExtractionError: The failure reported in the `error` event
        """
        async for _ in self.events():
            pass
        if self.error is not None:
            raise self.error
        if self.result is None:  # pragma: no cover - events() always sets one
            raise ExtractionFailure()
        return self.result

    def _fail(self, error: Exception) -> None:
        self.error = error
        self.state = SessionState.FAILED

    async def _run(self) -> AsyncIterator[ExtractionEvent]:
        settings = self._settings

        # Initializing: nothing is stored until every check passes
        yield ExtractionEvent.status("Checking files...")
        files = list(self._files)
        if self._urls:
            urls = self._checked_urls(len(files))
            yield ExtractionEvent.status("Fetching menu file...")
            files += await self._fetcher.fetch_all(urls)
        validate_menu_files(files, settings.MAX_PAGES, settings.MAX_UPLOAD_BYTES)
        coordinator = await PersistenceCoordinator.for_cart(
            self._menu_store, self._cart_id
        )
        self._coordinator = coordinator

        self._transition(SessionState.UPLOADING)
        yield ExtractionEvent.status("Uploading menu...")
        model_files = await asyncio.to_thread(
            prepare_for_model,
            files,
            settings.MODEL_MAX_FILE_BYTES,
            settings.COMPRESSION_MIN_QUALITY,
            settings.COMPRESSION_MIN_DIMENSION,
        )
        coordinator.add_source_urls(await save_all(self._file_store, files))

        self._transition(SessionState.REQUESTING)
        yield ExtractionEvent.status("Reading menu...")
        stream = self._model_client.stream(model_files)

        self._transition(SessionState.STREAMING)
        since_pass = 0
        async for delta in stream:
            self._text += delta
            since_pass += 1
            if since_pass >= settings.PASS_TOKEN_INTERVAL:
                since_pass = 0
                async for event in self._pass():
                    yield event

        self._transition(SessionState.FINALIZING)
        async for event in self._pass():
            yield event
        yield ExtractionEvent.status("Saving menu...")
        async for event in self._finalize(coordinator):
            yield event

    def _checked_urls(self, uploaded: int) -> list[str]:
        if uploaded + len(self._urls) > self._settings.MAX_PAGES:
            raise ValidationError(
                f"Too many files. Maximum {self._settings.MAX_PAGES} pages allowed."
            )
        return [validate_source_url(url) for url in self._urls]

    async def _pass(self) -> AsyncIterator[ExtractionEvent]:
        """Repair and re-read the text, emitting whatever became complete."""
        mended = mend_prefix(self._text)
        if mended is None:
            yield ExtractionEvent.progress(self._cursor, self._seen)
            return

        result = extract(mended, self._cursor)
        metadata_arrived = result.metadata is not None and self._metadata is None
        if metadata_arrived:
            self._metadata = result.metadata
            yield ExtractionEvent.metadata(result.metadata)

        new_items = result.new_items
        self._cursor += len(new_items)
        coordinator = self._coordinator
        cart_id = None
        if coordinator is not None:
            if new_items or metadata_arrived:
                # Items held back until the name was known are written now
                first = await coordinator.record(self._metadata, new_items)
                if first is not None:
                    yield ExtractionEvent.first_item(
                        first.cart_id, first.restaurant_name, first.item.item
                    )
            cart_id = coordinator.cart_id
        for flat in new_items:
            yield ExtractionEvent.item(flat.item, flat.category, cart_id)

        self._seen = max(self._seen, result.seen, self._cursor)
        yield ExtractionEvent.progress(self._cursor, self._seen)

        if mended.complete and not self._end_sent:
            self._end_sent = True
            yield ExtractionEvent.extraction_end()

    async def _finalize(
        self, coordinator: PersistenceCoordinator
    ) -> AsyncIterator[ExtractionEvent]:
        mended: MendResult | None = mend_prefix(self._text)
        if mended is None:
            raise ExtractionFailure()
        if not mended.complete:
            logger.warning(
                "Model output ended without a complete document (%d chars)",
                len(self._text),
            )

        draft = build_draft(mended)
        metadata = self._metadata or draft.metadata()
        if metadata is None:
            raise ExtractionFailure()
        items = draft.menu_items()
        if not items:
            raise ExtractionFailure()

        menu_id, cart_id = await coordinator.finalize(metadata, items)
        self.result = ExtractionResult(
            cart_id=cart_id,
            menu_id=menu_id,
            restaurant_name=metadata.restaurant_name,
            items=coordinator.stored_items,
        )
        self._transition(SessionState.COMPLETE)
        yield ExtractionEvent.complete(cart_id, metadata.restaurant_name)


# Keeps detached sessions alive until they finish
_background_tasks: set[asyncio.Task[None]] = set()


async def stream_detached(session: ExtractionSession) -> AsyncIterator[ExtractionEvent]:
    """Yield the session's events while it runs in its own task.

    The listener going away does not cancel the session: it keeps running to
    its terminal event and its writes still happen.
    """
    queue: asyncio.Queue[ExtractionEvent | None] = asyncio.Queue()

    async def pump() -> None:
        try:
            async for event in session.events():
                queue.put_nowait(event)
        finally:
            queue.put_nowait(None)

    task = asyncio.create_task(pump())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    while True:
        event = await queue.get()
        if event is None:
            return
        yield event
