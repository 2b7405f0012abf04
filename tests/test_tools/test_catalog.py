import json

import pytest

from appwrite_agent.attachments import FileAttachment
from appwrite_agent.context import Bucket, Collection, Database, bind
from appwrite_agent.exceptions import ToolExecutionError
from appwrite_agent.tools import register_default_tools
from appwrite_agent.tools.appwrite import limit_query, resolve_id
from appwrite_agent.tools.registry import ToolRegistry

from tool_fakes import PROJECT, FakeBackendClient


@pytest.fixture
def client() -> FakeBackendClient:
    return FakeBackendClient()


@pytest.fixture
def registry(client: FakeBackendClient) -> ToolRegistry:
    return register_default_tools(ToolRegistry(client_factory=lambda project: client))


def _context_with_collection():
    return bind(
        PROJECT,
        database=Database(id="main", name="Main"),
        collection=Collection(id="orders", name="Orders"),
        bucket=Bucket(id="media", name="Media"),
    )


@pytest.mark.asyncio
async def test_list_documents_defaults_to_context(registry, client):
    await registry.dispatch("listDocuments", {}, _context_with_collection())

    assert client.calls == [
        ("GET", "/databases/main/collections/orders/documents", {"limit": 100}),
    ]


@pytest.mark.asyncio
async def test_explicit_ids_override_context_and_limit_is_capped(registry, client):
    await registry.dispatch(
        "listDocuments",
        {"databaseId": "archive", "collectionId": "old", "limit": 500},
        _context_with_collection(),
    )

    assert client.calls[0][1] == "/databases/archive/collections/old/documents"
    assert client.calls[0][2]["limit"] == 100


@pytest.mark.asyncio
async def test_missing_database_id_message(registry):
    with pytest.raises(ToolExecutionError) as exc:
        await registry.dispatch("listCollections", {}, bind(PROJECT))

    assert str(exc.value) == (
        "Database ID is missing. Please provide a databaseId or select a database from the context menu."
    )


@pytest.mark.asyncio
async def test_create_document_parses_json_data(registry, client):
    await registry.dispatch(
        "createDocument",
        {"documentId": "unique()", "data": '{"title": "Post", "published": true}'},
        _context_with_collection(),
    )

    method, path, body = client.calls[0]
    assert (method, path) == ("POST", "/databases/main/collections/orders/documents")
    assert body["data"] == {"title": "Post", "published": True}
    assert body["documentId"] != "unique()"
    assert len(body["documentId"]) == 20


@pytest.mark.asyncio
async def test_create_document_rejects_bad_json(registry, client):
    with pytest.raises(ToolExecutionError, match="Invalid JSON format for data"):
        await registry.dispatch(
            "createDocument",
            {"documentId": "doc1", "data": "{not json"},
            _context_with_collection(),
        )
    assert client.calls == []


@pytest.mark.asyncio
async def test_update_document_uses_patch(registry, client):
    await registry.dispatch(
        "updateDocument",
        {"documentId": "doc1", "data": '{"published": false}'},
        _context_with_collection(),
    )

    assert client.calls == [
        ("PATCH", "/databases/main/collections/orders/documents/doc1", {"data": {"published": False}}),
    ]


@pytest.mark.asyncio
async def test_delete_collection_reports_success(registry, client):
    result = await registry.dispatch("deleteCollection", {}, _context_with_collection())

    assert result == {"success": "Successfully deleted collection orders"}
    assert client.calls == [("DELETE", "/databases/main/collections/orders", None)]


@pytest.mark.asyncio
async def test_get_file_url_uses_active_bucket(registry):
    result = await registry.dispatch("getFileUrl", {"fileId": "f1"}, _context_with_collection())

    assert result["url"].endswith("/storage/buckets/media/files/f1/view?project=shop-prod")


@pytest.mark.asyncio
async def test_write_file_uploads_named_attachment(registry, client):
    files = [
        FileAttachment(name="a.txt", data=b"aaa", mime_type="text/plain"),
        FileAttachment(name="b.png", data=b"png", mime_type="image/png"),
    ]

    result = await registry.dispatch(
        "writeFile",
        {"fileName": "b.png", "fileId": "logo", "permissions": ['read("any")']},
        _context_with_collection(),
        attachments=files,
    )

    assert result == {"$id": "logo", "name": "b.png"}
    method, path, payload = client.calls[0]
    assert (method, path) == ("UPLOAD", "/storage/buckets/media/files")
    assert payload["content"] == b"png"
    assert payload["fields"] == {"fileId": "logo", "permissions[]": ['read("any")']}


@pytest.mark.asyncio
async def test_write_file_needs_file_name_when_ambiguous(registry):
    files = [
        FileAttachment(name="a.txt", data=b"a"),
        FileAttachment(name="b.txt", data=b"b"),
    ]

    with pytest.raises(ToolExecutionError, match='"fileName" argument'):
        await registry.dispatch("writeFile", {}, _context_with_collection(), attachments=files)


@pytest.mark.asyncio
async def test_update_user_status(registry, client):
    await registry.dispatch("updateUserStatus", {"userId": "u1", "status": False}, bind(PROJECT))

    assert client.calls == [("PATCH", "/users/u1/status", {"status": False})]


@pytest.mark.asyncio
async def test_create_team_expands_unique_id(registry, client):
    await registry.dispatch("createTeam", {"teamId": "unique()", "name": "Ops"}, bind(PROJECT))

    body = client.calls[0][2]
    assert body["name"] == "Ops"
    assert body["teamId"] != "unique()"


@pytest.mark.asyncio
async def test_function_executions_default_to_selected_function(registry, client):
    from appwrite_agent.context import BackendFunction

    context = bind(PROJECT, function=BackendFunction(id="mailer", name="Mailer"))

    await registry.dispatch("listFunctionExecutions", {"limit": 5}, context)

    assert client.calls == [("GET", "/functions/mailer/executions", {"limit": 5})]


def test_resolve_id_and_limit_query():
    assert resolve_id("custom") == "custom"
    assert resolve_id("unique()") != resolve_id("unique()")
    assert json.loads(limit_query(25)) == {"method": "limit", "values": [25]}
