"""Storage bucket and file tools."""

from typing import Any

from appwrite_agent.attachments import pick_attachment
from appwrite_agent.exceptions import ToolExecutionError
from appwrite_agent.tools.appwrite import resolve_id
from appwrite_agent.tools.registry import Tool, ToolCategory, ToolInvocation

_BUCKET_ID = {"type": "string", "description": "Optional. The bucket ID. Defaults to the active context."}
_FILE_ID = {"type": "string", "description": "The file ID."}


class _StorageTool(Tool):
    category = ToolCategory.STORAGE

    def bucket_id(self, invocation: ToolInvocation, explicit: Any) -> str:
        return self.require_id(explicit, invocation.context.bucket, "bucket")


class ListBucketsTool(_StorageTool):
    name = "listBuckets"
    description = "Lists all storage buckets in the current project."
    parameters = {
        "type": "object",
        "properties": {
            "limit": {"type": "integer", "description": "Optional. The maximum number of buckets to return. Default is 100. Maximum is 100."},
        },
    }

    async def execute(self, invocation: ToolInvocation, limit: int | None = None, **kwargs: Any) -> Any:
        return await invocation.client.get("/storage/buckets", limit=self.clamp_limit(limit))


class GetBucketTool(_StorageTool):
    name = "getBucket"
    description = "Gets a storage bucket's details. Uses the active bucket from the context if ID is not provided."
    parameters = {"type": "object", "properties": {"bucketId": _BUCKET_ID}}

    async def execute(self, invocation: ToolInvocation, bucketId: str | None = None, **kwargs: Any) -> Any:
        bucket = self.bucket_id(invocation, bucketId)
        return await invocation.client.get(f"/storage/buckets/{bucket}")


class CreateBucketTool(_StorageTool):
    name = "createBucket"
    description = "Creates a new storage bucket."
    parameters = {
        "type": "object",
        "properties": {
            "bucketId": {"type": "string", "description": "Unique ID for the bucket. Use 'unique()' to auto-generate."},
            "name": {"type": "string", "description": "The name for the new bucket."},
            "permissions": {"type": "array", "items": {"type": "string"}, "description": "Optional. Array of permission strings."},
            "fileSecurity": {"type": "boolean", "description": "Optional. Enable file-level security."},
            "enabled": {"type": "boolean", "description": "Optional. Whether the bucket is enabled."},
            "maximumFileSize": {"type": "integer", "description": "Optional. Maximum file size in bytes."},
            "allowedFileExtensions": {"type": "array", "items": {"type": "string"}, "description": "Optional. Allowed file extensions."},
            "compression": {"type": "string", "description": "Optional. One of none, gzip, zstd."},
            "encryption": {"type": "boolean", "description": "Optional. Enable encryption."},
            "antivirus": {"type": "boolean", "description": "Optional. Enable antivirus scanning."},
        },
        "required": ["bucketId", "name"],
    }

    _OPTIONAL = (
        "permissions",
        "fileSecurity",
        "enabled",
        "maximumFileSize",
        "allowedFileExtensions",
        "compression",
        "encryption",
        "antivirus",
    )

    async def execute(self, invocation: ToolInvocation, bucketId: str, name: str, **kwargs: Any) -> Any:
        body: dict[str, Any] = {"bucketId": resolve_id(bucketId), "name": name}
        for key in self._OPTIONAL:
            if kwargs.get(key) is not None:
                body[key] = kwargs[key]
        return await invocation.client.post("/storage/buckets", body)


class DeleteBucketTool(_StorageTool):
    name = "deleteBucket"
    description = "Deletes a storage bucket. Uses the active bucket from the context if ID is not provided."
    parameters = {"type": "object", "properties": {"bucketId": _BUCKET_ID}}

    async def execute(self, invocation: ToolInvocation, bucketId: str | None = None, **kwargs: Any) -> Any:
        bucket = self.bucket_id(invocation, bucketId)
        await invocation.client.delete(f"/storage/buckets/{bucket}")
        return {"success": f"Successfully deleted bucket {bucket}"}


class ListFilesTool(_StorageTool):
    name = "listFiles"
    description = "Lists files in a storage bucket. Uses the active bucket from the context if ID is not provided."
    parameters = {
        "type": "object",
        "properties": {
            "bucketId": _BUCKET_ID,
            "limit": {"type": "integer", "description": "Optional. The maximum number of files to return. Default is 100. Maximum is 100."},
        },
    }

    async def execute(
        self,
        invocation: ToolInvocation,
        bucketId: str | None = None,
        limit: int | None = None,
        **kwargs: Any,
    ) -> Any:
        bucket = self.bucket_id(invocation, bucketId)
        return await invocation.client.get(f"/storage/buckets/{bucket}/files", limit=self.clamp_limit(limit))


class GetFileTool(_StorageTool):
    name = "getFile"
    description = "Gets a file's metadata. Uses the active bucket from the context if ID is not provided."
    parameters = {
        "type": "object",
        "properties": {"bucketId": _BUCKET_ID, "fileId": _FILE_ID},
        "required": ["fileId"],
    }

    async def execute(self, invocation: ToolInvocation, fileId: str, bucketId: str | None = None, **kwargs: Any) -> Any:
        bucket = self.bucket_id(invocation, bucketId)
        return await invocation.client.get(f"/storage/buckets/{bucket}/files/{fileId}")


class DeleteFileTool(_StorageTool):
    name = "deleteFile"
    description = "Deletes a file from a bucket. Uses the active bucket from the context if ID is not provided."
    parameters = {
        "type": "object",
        "properties": {"bucketId": _BUCKET_ID, "fileId": _FILE_ID},
        "required": ["fileId"],
    }

    async def execute(self, invocation: ToolInvocation, fileId: str, bucketId: str | None = None, **kwargs: Any) -> Any:
        bucket = self.bucket_id(invocation, bucketId)
        await invocation.client.delete(f"/storage/buckets/{bucket}/files/{fileId}")
        return {"success": f"Successfully deleted file {fileId}"}


class GetFileUrlTool(_StorageTool):
    name = "getFileUrl"
    description = "Gets a URL for viewing a file in the browser. Uses the active bucket from the context if ID is not provided."
    parameters = {
        "type": "object",
        "properties": {"bucketId": _BUCKET_ID, "fileId": _FILE_ID},
        "required": ["fileId"],
    }

    async def execute(self, invocation: ToolInvocation, fileId: str, bucketId: str | None = None, **kwargs: Any) -> Any:
        bucket = self.bucket_id(invocation, bucketId)
        return {"url": invocation.client.file_view_url(bucket, fileId)}


class WriteFileTool(_StorageTool):
    name = "writeFile"
    description = (
        "Uploads a file the user attached to the chat into a storage bucket. "
        "Uses the active bucket from the context if ID is not provided."
    )
    parameters = {
        "type": "object",
        "properties": {
            "bucketId": _BUCKET_ID,
            "fileId": {"type": "string", "description": "Optional. ID for the new file. Use 'unique()' to auto-generate."},
            "fileName": {"type": "string", "description": "Name of the attached file to upload. Required when several files are attached."},
            "permissions": {"type": "array", "items": {"type": "string"}, "description": "Optional. Array of permission strings."},
        },
    }

    async def execute(
        self,
        invocation: ToolInvocation,
        bucketId: str | None = None,
        fileId: str | None = None,
        fileName: str | None = None,
        permissions: list[str] | None = None,
        **kwargs: Any,
    ) -> Any:
        bucket = self.bucket_id(invocation, bucketId)
        attachment = pick_attachment(invocation.attachments, fileName)
        if attachment is None:
            raise ToolExecutionError(
                self.name,
                "No file was provided to upload. If multiple files were attached to the message, "
                'you must specify which one to use with the "fileName" argument.',
            )
        fields: dict[str, Any] = {"fileId": resolve_id(fileId)}
        if permissions:
            fields["permissions[]"] = list(permissions)
        return await invocation.client.upload(
            f"/storage/buckets/{bucket}/files",
            file_name=attachment.name,
            content=attachment.data,
            mime_type=attachment.mime_type,
            fields=fields,
        )


STORAGE_TOOLS: list[type[Tool]] = [
    ListBucketsTool,
    GetBucketTool,
    CreateBucketTool,
    DeleteBucketTool,
    ListFilesTool,
    GetFileTool,
    DeleteFileTool,
    GetFileUrlTool,
    WriteFileTool,
]
