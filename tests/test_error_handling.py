"""Tests for error mapping, correlation IDs and structured logging."""

import logging
import uuid

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel

from core.error_handler import (
    StructuredLogger,
    extraction_status_code,
    setup_exception_handlers,
)
from core.exceptions import MenuNotFoundError
from core.middleware import CORRELATION_HEADER, CorrelationIdMiddleware
from services.extraction.exceptions import (
    CompressionExhaustedError,
    ExtractionFailure,
    ModelStreamError,
    PersistenceError,
    UpstreamFetchError,
    ValidationError,
)


class _Payload(BaseModel):
    quantity: int


def _build_app() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)
    app.add_middleware(CorrelationIdMiddleware)

    @app.get("/boom")
    async def boom() -> None:
        raise RuntimeError("password=hunter2")

    @app.get("/missing")
    async def missing() -> None:
        raise MenuNotFoundError(1)

    @app.get("/fetch")
    async def fetch() -> None:
        raise UpstreamFetchError()

    @app.post("/payload")
    async def payload(body: _Payload) -> dict[str, int]:
        return {"quantity": body.quantity}

    return app


@pytest.mark.parametrize(
    ("error", "status_code"),
    [
        (ValidationError(), 400),
        (CompressionExhaustedError(), 400),
        (ExtractionFailure(), 400),
        (ExtractionFailure.not_a_menu(), 400),
        (UpstreamFetchError(), 502),
        (ModelStreamError(), 502),
        (PersistenceError(), 500),
    ],
)
def test_extraction_status_codes(error, status_code):
    assert extraction_status_code(error) == status_code


def test_error_codes_are_stable():
    assert ValidationError().error_code == "invalid_input"
    assert UpstreamFetchError().error_code == "fetch_failed"
    assert CompressionExhaustedError().error_code == "compression_exhausted"
    assert ExtractionFailure().error_code == "extraction_failed"
    assert ExtractionFailure.not_a_menu().error_code == "not_a_menu"
    assert ModelStreamError().error_code == "model_error"
    assert PersistenceError().error_code == "persistence_failed"


@pytest.mark.asyncio
async def test_unhandled_exception_is_generic_500():
    async with AsyncClient(
        transport=ASGITransport(app=_build_app(), raise_app_exceptions=False),
        base_url="http://testserver",
    ) as client:
        response = await client.get("/boom")

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "An internal error occurred"
    assert body["error"]["type"] == "internal_server_error"


@pytest.mark.asyncio
async def test_domain_error_is_404():
    async with AsyncClient(
        transport=ASGITransport(app=_build_app()), base_url="http://testserver"
    ) as client:
        response = await client.get("/missing")

    assert response.status_code == 404
    assert response.json()["message"] == "Menu not found"


@pytest.mark.asyncio
async def test_extraction_error_uses_error_body():
    async with AsyncClient(
        transport=ASGITransport(app=_build_app()), base_url="http://testserver"
    ) as client:
        response = await client.get("/fetch")

    assert response.status_code == 502
    assert response.json() == {
        "error": "We couldn't download the menu file from that link.",
        "error_code": "fetch_failed",
    }


@pytest.mark.asyncio
async def test_request_validation_is_422():
    async with AsyncClient(
        transport=ASGITransport(app=_build_app()), base_url="http://testserver"
    ) as client:
        response = await client.post("/payload", json={"quantity": "many"})

    assert response.status_code == 422
    assert response.json()["error"]["type"] == "validation_error"


@pytest.mark.asyncio
async def test_correlation_id_is_echoed_or_generated():
    async with AsyncClient(
        transport=ASGITransport(app=_build_app()), base_url="http://testserver"
    ) as client:
        echoed = await client.get("/missing", headers={CORRELATION_HEADER: "req-123"})
        generated = await client.get("/missing", headers={CORRELATION_HEADER: "x" * 500})

    assert echoed.headers[CORRELATION_HEADER] == "req-123"
    assert echoed.json()["error"]["correlation_id"] == "req-123"
    uuid.UUID(generated.headers[CORRELATION_HEADER])


def test_structured_logger_redacts_sensitive_keys(caplog):
    log = StructuredLogger("tests.structured")
    with caplog.at_level(logging.INFO, logger="tests.structured"):
        log.info("Stored menu", api_key="abc123", nested={"password": "pw", "menu": "m1"})

    record = caplog.records[-1]
    assert record.structured_data["api_key"] == "[REDACTED]"
    assert record.structured_data["nested"] == {"password": "[REDACTED]", "menu": "m1"}
    assert "abc123" not in record.getMessage()
