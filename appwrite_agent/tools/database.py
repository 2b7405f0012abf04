"""Database, collection and document tools."""

import json
from typing import Any

from appwrite_agent.exceptions import ToolExecutionError
from appwrite_agent.tools.appwrite import resolve_id
from appwrite_agent.tools.registry import Tool, ToolCategory, ToolInvocation

_DATABASE_ID = {"type": "string", "description": "Optional. The database ID. Defaults to the active context."}
_COLLECTION_ID = {"type": "string", "description": "Optional. The collection ID. Defaults to the active context."}


def _limit_param(noun: str) -> dict[str, Any]:
    return {
        "type": "integer",
        "description": f"Optional. The maximum number of {noun} to return. Default is 100. Maximum is 100.",
    }


class _DatabaseTool(Tool):
    category = ToolCategory.DATABASE

    def database_id(self, invocation: ToolInvocation, explicit: Any) -> str:
        return self.require_id(explicit, invocation.context.database, "database")

    def collection_path(self, invocation: ToolInvocation, database_id: Any, collection_id: Any) -> str:
        db = self.database_id(invocation, database_id)
        collection = self.require_id(collection_id, invocation.context.collection, "collection")
        return f"/databases/{db}/collections/{collection}"

    def parse_data(self, data: Any) -> dict[str, Any]:
        if isinstance(data, dict):
            return data
        try:
            parsed = json.loads(str(data))
        except json.JSONDecodeError as e:
            raise ToolExecutionError(self.name, f"Invalid JSON format for data: {e}")
        if not isinstance(parsed, dict):
            raise ToolExecutionError(self.name, "Invalid JSON format for data: expected an object")
        return parsed


class ListDatabasesTool(_DatabaseTool):
    name = "listDatabases"
    description = "Lists all databases in the current Appwrite project."
    parameters = {"type": "object", "properties": {"limit": _limit_param("databases")}}

    async def execute(self, invocation: ToolInvocation, limit: int | None = None, **kwargs: Any) -> Any:
        return await invocation.client.get("/databases", limit=self.clamp_limit(limit))


class CreateDatabaseTool(_DatabaseTool):
    name = "createDatabase"
    description = "Creates a new database."
    parameters = {
        "type": "object",
        "properties": {
            "databaseId": {"type": "string", "description": "Unique ID for the database. Use 'unique()' to auto-generate."},
            "name": {"type": "string", "description": "The name for the new database."},
        },
        "required": ["databaseId", "name"],
    }

    async def execute(self, invocation: ToolInvocation, databaseId: str, name: str, **kwargs: Any) -> Any:
        return await invocation.client.post(
            "/databases",
            {"databaseId": resolve_id(databaseId), "name": name},
        )


class DeleteDatabaseTool(_DatabaseTool):
    name = "deleteDatabase"
    description = "Deletes a database. Uses the active database from the context if an ID is not provided."
    parameters = {
        "type": "object",
        "properties": {
            "databaseId": {"type": "string", "description": "Optional. The ID of the database to delete. Defaults to the active context."},
        },
    }

    async def execute(self, invocation: ToolInvocation, databaseId: str | None = None, **kwargs: Any) -> Any:
        db = self.database_id(invocation, databaseId)
        await invocation.client.delete(f"/databases/{db}")
        return {"success": f"Successfully deleted database {db}"}


class ListCollectionsTool(_DatabaseTool):
    name = "listCollections"
    description = "Lists all collections within a database. Uses the active database from the context if ID is not provided."
    parameters = {
        "type": "object",
        "properties": {"databaseId": _DATABASE_ID, "limit": _limit_param("collections")},
    }

    async def execute(
        self,
        invocation: ToolInvocation,
        databaseId: str | None = None,
        limit: int | None = None,
        **kwargs: Any,
    ) -> Any:
        db = self.database_id(invocation, databaseId)
        return await invocation.client.get(f"/databases/{db}/collections", limit=self.clamp_limit(limit))


class CreateCollectionTool(_DatabaseTool):
    name = "createCollection"
    description = "Creates a new collection. Uses the active database from the context if ID is not provided."
    parameters = {
        "type": "object",
        "properties": {
            "databaseId": _DATABASE_ID,
            "collectionId": {"type": "string", "description": "Unique ID. Use 'unique()' to auto-generate."},
            "name": {"type": "string", "description": "The name for the new collection."},
            "permissions": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Optional. Array of permission strings controlling access to documents.",
            },
        },
        "required": ["collectionId", "name"],
    }

    async def execute(
        self,
        invocation: ToolInvocation,
        collectionId: str,
        name: str,
        databaseId: str | None = None,
        permissions: list[str] | None = None,
        **kwargs: Any,
    ) -> Any:
        db = self.database_id(invocation, databaseId)
        body: dict[str, Any] = {"collectionId": resolve_id(collectionId), "name": name}
        if permissions is not None:
            body["permissions"] = list(permissions)
        return await invocation.client.post(f"/databases/{db}/collections", body)


class DeleteCollectionTool(_DatabaseTool):
    name = "deleteCollection"
    description = "Deletes a collection. Uses the active database and collection from the context if IDs are not provided."
    parameters = {
        "type": "object",
        "properties": {"databaseId": _DATABASE_ID, "collectionId": _COLLECTION_ID},
    }

    async def execute(
        self,
        invocation: ToolInvocation,
        databaseId: str | None = None,
        collectionId: str | None = None,
        **kwargs: Any,
    ) -> Any:
        path = self.collection_path(invocation, databaseId, collectionId)
        await invocation.client.delete(path)
        return {"success": f"Successfully deleted collection {path.rsplit('/', 1)[-1]}"}


class ListDocumentsTool(_DatabaseTool):
    name = "listDocuments"
    description = "Lists documents in a collection. Uses the active database and collection from the context if IDs are not provided."
    parameters = {
        "type": "object",
        "properties": {
            "databaseId": _DATABASE_ID,
            "collectionId": _COLLECTION_ID,
            "limit": _limit_param("documents"),
        },
    }

    async def execute(
        self,
        invocation: ToolInvocation,
        databaseId: str | None = None,
        collectionId: str | None = None,
        limit: int | None = None,
        **kwargs: Any,
    ) -> Any:
        path = self.collection_path(invocation, databaseId, collectionId)
        return await invocation.client.get(f"{path}/documents", limit=self.clamp_limit(limit))


class GetDocumentTool(_DatabaseTool):
    name = "getDocument"
    description = "Gets a single document by its ID. Uses the active database and collection from the context if IDs are not provided."
    parameters = {
        "type": "object",
        "properties": {
            "databaseId": _DATABASE_ID,
            "collectionId": _COLLECTION_ID,
            "documentId": {"type": "string", "description": "The ID of the document to retrieve."},
        },
        "required": ["documentId"],
    }

    async def execute(
        self,
        invocation: ToolInvocation,
        documentId: str,
        databaseId: str | None = None,
        collectionId: str | None = None,
        **kwargs: Any,
    ) -> Any:
        path = self.collection_path(invocation, databaseId, collectionId)
        return await invocation.client.get(f"{path}/documents/{documentId}")


class CreateDocumentTool(_DatabaseTool):
    name = "createDocument"
    description = "Creates a new document. Uses the active database and collection from the context if IDs are not provided."
    parameters = {
        "type": "object",
        "properties": {
            "databaseId": _DATABASE_ID,
            "collectionId": _COLLECTION_ID,
            "documentId": {"type": "string", "description": "Unique ID for the document. Use 'unique()' to auto-generate."},
            "data": {
                "type": "string",
                "description": 'A JSON string representing the document data. E.g., \'{"title": "Post", "isPublished": true}\'.',
            },
        },
        "required": ["documentId", "data"],
    }

    async def execute(
        self,
        invocation: ToolInvocation,
        documentId: str,
        data: Any,
        databaseId: str | None = None,
        collectionId: str | None = None,
        **kwargs: Any,
    ) -> Any:
        path = self.collection_path(invocation, databaseId, collectionId)
        return await invocation.client.post(
            f"{path}/documents",
            {"documentId": resolve_id(documentId), "data": self.parse_data(data)},
        )


class UpdateDocumentTool(_DatabaseTool):
    name = "updateDocument"
    description = "Updates an existing document. Uses the active database and collection from the context if IDs are not provided."
    parameters = {
        "type": "object",
        "properties": {
            "databaseId": _DATABASE_ID,
            "collectionId": _COLLECTION_ID,
            "documentId": {"type": "string", "description": "The ID of the document to update."},
            "data": {"type": "string", "description": 'A JSON string of fields to update. E.g., \'{"isPublished": false}\'.'},
        },
        "required": ["documentId", "data"],
    }

    async def execute(
        self,
        invocation: ToolInvocation,
        documentId: str,
        data: Any,
        databaseId: str | None = None,
        collectionId: str | None = None,
        **kwargs: Any,
    ) -> Any:
        path = self.collection_path(invocation, databaseId, collectionId)
        return await invocation.client.patch(
            f"{path}/documents/{documentId}",
            {"data": self.parse_data(data)},
        )


class DeleteDocumentTool(_DatabaseTool):
    name = "deleteDocument"
    description = "Deletes a document. Uses the active database and collection from the context if IDs are not provided."
    parameters = {
        "type": "object",
        "properties": {
            "databaseId": _DATABASE_ID,
            "collectionId": _COLLECTION_ID,
            "documentId": {"type": "string", "description": "The ID of the document to delete."},
        },
        "required": ["documentId"],
    }

    async def execute(
        self,
        invocation: ToolInvocation,
        documentId: str,
        databaseId: str | None = None,
        collectionId: str | None = None,
        **kwargs: Any,
    ) -> Any:
        path = self.collection_path(invocation, databaseId, collectionId)
        await invocation.client.delete(f"{path}/documents/{documentId}")
        return {"success": f"Successfully deleted document {documentId}"}


DATABASE_TOOLS: list[type[Tool]] = [
    ListDatabasesTool,
    CreateDatabaseTool,
    DeleteDatabaseTool,
    ListCollectionsTool,
    CreateCollectionTool,
    DeleteCollectionTool,
    ListDocumentsTool,
    GetDocumentTool,
    CreateDocumentTool,
    UpdateDocumentTool,
    DeleteDocumentTool,
]
