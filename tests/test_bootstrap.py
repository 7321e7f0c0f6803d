"""End-to-end wiring through install_commons."""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from service_common.bootstrap import install_commons
from service_common.config import Settings, SwaggerSettings
from service_common.db.pagination import paginate
from service_common.dependencies import DB, Pagination
from service_common.exceptions import ServiceError
from service_common.messages import MessageSource
from service_common.schemas.pagination import PaginationResponse
from service_common.tracing import HeaderTracer
from tests.factories import make_item
from tests.models import Item


@pytest_asyncio.fixture
async def wired_client(engine: AsyncEngine) -> AsyncIterator[AsyncClient]:
    app = FastAPI()

    @app.get("/items")
    async def list_items(db: DB, pagination: Pagination) -> PaginationResponse[str]:
        page = await paginate(db, select(Item), pagination.to_pageable(["name"]), Item)
        response = PaginationResponse[str].from_page(page, lambda item: item.name)
        assert response is not None
        return response

    @app.post("/items")
    async def create_item(db: DB) -> dict[str, int]:
        item = make_item(name="Kettle")
        db.add(item)
        await db.flush()
        return {"id": item.id}

    @app.get("/items/{item_id}")
    async def get_item(item_id: int) -> None:
        raise ServiceError.of_status(404, f"Item {item_id} not found")

    install_commons(
        app,
        settings=Settings(profiles_active="test", default_locale="en"),
        swagger_settings=SwaggerSettings(title="Items API"),
        messages=MessageSource(),
        session_factory=async_sessionmaker(engine, expire_on_commit=False),
        tracer=HeaderTracer(),
        configure_logs=False,
    )

    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as client:
        yield client


@pytest.mark.asyncio
async def test_session_commits_and_pages_are_serialized(wired_client: AsyncClient) -> None:
    for _ in range(3):
        assert (await wired_client.post("/items")).status_code == 200

    resp = await wired_client.get("/items", params={"size": 2, "sort_by": "name"})

    assert resp.status_code == 200
    assert resp.json() == {
        "content": ["Kettle", "Kettle"],
        "page": 0,
        "size": 2,
        "hasNext": True,
        "totalElements": 3,
        "totalPages": 2,
    }
    assert "X-Trace-Id" in resp.headers


@pytest.mark.asyncio
async def test_errors_are_enveloped_and_traced(wired_client: AsyncClient) -> None:
    resp = await wired_client.get("/items/5", headers={"traceparent": "00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01"})

    assert resp.status_code == 404
    assert resp.json()["error"]["message"] == "Item 5 not found"
    assert resp.headers["X-Trace-Id"] == "0af7651916cd43dd8448eb211c80319c"


@pytest.mark.asyncio
async def test_openapi_is_customized(wired_client: AsyncClient) -> None:
    resp = await wired_client.get("/openapi.json")

    assert resp.json()["info"]["title"] == "Items API"
    assert resp.json()["security"] == [{"Bearer": []}]
