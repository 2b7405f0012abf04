import json

import httpx
import pytest

from appwrite_agent.context import Project
from appwrite_agent.exceptions import BackendAPIError
from appwrite_agent.tools.appwrite import BackendClient

from tool_fakes import PROJECT


def _client(handler) -> BackendClient:
    return BackendClient(PROJECT, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_get_sends_project_headers_and_limit_query():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"total": 1, "databases": [{"$id": "main"}]})

    client = _client(handler)
    try:
        result = await client.get("/databases", limit=10)
    finally:
        await client.close()

    assert result["databases"][0]["$id"] == "main"
    request = seen[0]
    assert str(request.url).startswith("https://cloud.example.test/v1/databases")
    assert request.headers["X-Appwrite-Project"] == "shop-prod"
    assert request.headers["X-Appwrite-Key"] == "secret"
    assert json.loads(request.url.params["queries[]"]) == {"method": "limit", "values": [10]}


@pytest.mark.asyncio
async def test_error_response_raises_with_server_message():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            404,
            json={"message": "Database not found", "code": 404, "type": "database_not_found"},
        )

    client = _client(handler)
    try:
        with pytest.raises(BackendAPIError) as exc:
            await client.delete("/databases/missing")
    finally:
        await client.close()

    assert str(exc.value) == "Database not found"
    assert exc.value.status_code == 404
    assert exc.value.error_type == "database_not_found"


@pytest.mark.asyncio
async def test_no_content_returns_empty_dict():
    client = _client(lambda request: httpx.Response(204))
    try:
        assert await client.delete("/users/u1") == {}
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_upload_is_multipart():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"$id": "f1"})

    client = _client(handler)
    try:
        await client.upload(
            "/storage/buckets/media/files",
            file_name="a.txt",
            content=b"hello",
            mime_type="text/plain",
            fields={"fileId": "f1"},
        )
    finally:
        await client.close()

    request = seen[0]
    assert request.method == "POST"
    assert request.headers["Content-Type"].startswith("multipart/form-data")
    body = request.read()
    assert b'name="fileId"' in body
    assert b'filename="a.txt"' in body


def test_incomplete_project_is_rejected():
    project = Project(id="p", name="P", endpoint="", project_id="x", api_key="k")

    with pytest.raises(BackendAPIError, match="missing or incomplete"):
        BackendClient(project)
