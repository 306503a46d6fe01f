"""API tests for menu extraction and the menu/cart read endpoints."""

import json
import uuid

import httpx
import pytest

from conftest import ScriptedModelClient, split_text
from dependencies.extraction import get_menu_model_client, get_source_fetcher
from main import app
from services.extraction.exceptions import ModelStreamError
from services.source_fetch import SourceFetchService


PDF_UPLOAD = {"file": ("menu.pdf", b"%PDF-1.4 menu", "application/pdf")}
SSE = {"Accept": "text/event-stream"}


def _frames(body: str) -> list[tuple[str, dict]]:
    frames = []
    for block in body.strip().split("\n\n"):
        event_line, data_line = block.split("\n")
        frames.append(
            (event_line.removeprefix("event: "), json.loads(data_line.removeprefix("data: ")))
        )
    return frames


@pytest.mark.asyncio
async def test_streaming_upload_emits_events_in_order(async_client, file_store):
    response = await async_client.post("/api/v1/parse-menu", files=PDF_UPLOAD, headers=SSE)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"

    frames = _frames(response.text)
    names = [name for name, _ in frames]
    assert names[0] == "status"
    assert names[-1] == "complete"
    assert names.count("firstItem") == 1
    assert names.count("menu_extraction_end") == 1
    assert [data["item"]["name"] for name, data in frames if name == "item"] == [
        "Wings",
        "Nachos",
        "Burger",
    ]
    assert [f.filename for f in file_store.saved] == ["menu.pdf"]

    cart_id = frames[-1][1]["cartId"]
    cart = await async_client.get(f"/api/v1/carts/{cart_id}")
    assert cart.status_code == 200
    body = cart.json()["data"]
    assert body["cart"]["tip_percentage"] == 18
    assert body["menu"]["restaurant_name"] == "Lucky Diner"
    assert body["menu"]["location_state"] == "TX"
    assert [i["name"] for i in body["menu"]["items"]] == ["Wings", "Nachos", "Burger"]
    assert body["menu"]["source_urls"] == ["https://files.test/1-menu.pdf"]


@pytest.mark.asyncio
async def test_json_mode_returns_cart(async_client):
    response = await async_client.post("/api/v1/parse-menu", files=PDF_UPLOAD)

    assert response.status_code == 201
    data = response.json()
    assert data["restaurantName"] == "Lucky Diner"
    uuid.UUID(data["cartId"])


@pytest.mark.asyncio
async def test_append_to_existing_cart(async_client):
    first = await async_client.post("/api/v1/parse-menu", files=PDF_UPLOAD)
    cart_id = first.json()["cartId"]

    app.dependency_overrides[get_menu_model_client] = lambda: ScriptedModelClient(
        split_text(
            '{"isMenu":true,"restaurantName":"Lucky Diner","categories":['
            '{"category":"Desserts","items":[{"name":"Pie","price":6}]}]}'
        )
    )
    response = await async_client.post(
        "/api/v1/parse-menu",
        files={"file": ("page2.pdf", b"%PDF-1.4 page 2", "application/pdf")},
        data={"cartId": cart_id},
        headers=SSE,
    )
    names = [name for name, _ in _frames(response.text)]
    assert "firstItem" not in names
    assert names[-1] == "complete"

    cart = (await async_client.get(f"/api/v1/carts/{cart_id}")).json()["data"]
    assert [i["name"] for i in cart["menu"]["items"]] == ["Wings", "Nachos", "Burger", "Pie"]
    assert len(cart["menu"]["source_urls"]) == 2


@pytest.mark.asyncio
async def test_url_body_is_fetched(async_client):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"%PDF-1.7", headers={"content-type": "application/pdf"})

    app.dependency_overrides[get_source_fetcher] = lambda: SourceFetchService(
        transport=httpx.MockTransport(handler)
    )
    response = await async_client.post(
        "/api/v1/parse-menu", json={"pdfUrl": "https://cdn.example.com/menu.pdf"}
    )
    assert response.status_code == 201
    assert response.json()["restaurantName"] == "Lucky Diner"


@pytest.mark.asyncio
async def test_unsupported_file_is_400(async_client):
    response = await async_client.post(
        "/api/v1/parse-menu", files={"file": ("notes.txt", b"hello", "text/plain")}
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "invalid_input"
    assert "Unsupported file type" in response.json()["error"]


@pytest.mark.asyncio
async def test_unsupported_file_streams_single_error(async_client):
    response = await async_client.post(
        "/api/v1/parse-menu",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=SSE,
    )
    names = [name for name, _ in _frames(response.text)]
    assert names == ["status", "error"]


@pytest.mark.asyncio
async def test_missing_body_streams_single_error(async_client):
    response = await async_client.post(
        "/api/v1/parse-menu", content=b"not json", headers={**SSE, "content-type": "text/plain"}
    )
    assert response.status_code == 200
    assert _frames(response.text) == [
        (
            "error",
            {"error": "Send menu files as multipart 'file' fields or a JSON body with 'pdfUrl'."},
        )
    ]


@pytest.mark.asyncio
async def test_empty_json_body_is_400(async_client):
    response = await async_client.post("/api/v1/parse-menu", json={})
    assert response.status_code == 400
    assert response.json() == {"error": "No file provided.", "error_code": "invalid_input"}


@pytest.mark.asyncio
async def test_unknown_json_field_is_400(async_client):
    response = await async_client.post(
        "/api/v1/parse-menu", json={"pdfUrl": "https://cdn.example.com/m.pdf", "admin": True}
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_bad_cart_id_is_400(async_client):
    response = await async_client.post(
        "/api/v1/parse-menu", files=PDF_UPLOAD, data={"cartId": "not-a-uuid"}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "cartId is not a valid cart identifier."


@pytest.mark.asyncio
async def test_too_many_files_is_400(async_client):
    files = [("file", (f"p{i}.pdf", b"%PDF", "application/pdf")) for i in range(7)]
    response = await async_client.post("/api/v1/parse-menu", files=files)
    assert response.status_code == 400
    assert "Maximum 6 pages" in response.json()["error"]


@pytest.mark.asyncio
async def test_model_failure_is_502(async_client):
    app.dependency_overrides[get_menu_model_client] = lambda: ScriptedModelClient(
        ['{"restaurantName":'], error=ModelStreamError()
    )
    response = await async_client.post("/api/v1/parse-menu", files=PDF_UPLOAD)
    assert response.status_code == 502
    assert response.json()["error_code"] == "model_error"


@pytest.mark.asyncio
async def test_get_menu(async_client):
    created = await async_client.post("/api/v1/parse-menu", files=PDF_UPLOAD)
    cart = await async_client.get(f"/api/v1/carts/{created.json()['cartId']}")
    menu_id = cart.json()["data"]["cart"]["menu_id"]

    response = await async_client.get(f"/api/v1/menus/{menu_id}")
    assert response.status_code == 200
    menu = response.json()["data"]
    assert menu["id"] == menu_id
    assert menu["tax_rate"] == pytest.approx(0.0825)
    assert menu["items"][2]["chips"] == ["Halal"]


@pytest.mark.asyncio
async def test_unknown_menu_and_cart_are_404(async_client):
    missing = uuid.uuid4()
    menu = await async_client.get(f"/api/v1/menus/{missing}")
    cart = await async_client.get(f"/api/v1/carts/{missing}")
    assert menu.status_code == 404
    assert cart.status_code == 404
    assert menu.json()["success"] is False
    assert cart.json()["error"]["type"] == "not_found"
