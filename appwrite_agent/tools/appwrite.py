"""HTTP client for the Appwrite REST API of one project."""

import json
import secrets
import time
from typing import Any

import httpx

from appwrite_agent.context import Project
from appwrite_agent.exceptions import BackendAPIError
from appwrite_agent.logging import get_logger

log = get_logger(__name__)


def unique_id() -> str:
    """Generate an id in Appwrite's ``ID.unique()`` format."""
    now = time.time()
    seconds = int(now)
    micros = int((now - seconds) * 1_000_000)
    return f"{seconds:08x}{micros:05x}{secrets.token_hex(4)[:7]}"


def resolve_id(value: str | None) -> str:
    """Expand the ``unique()`` placeholder into a generated id."""
    cleaned = str(value or "").strip()
    if not cleaned or cleaned.lower() == "unique()":
        return unique_id()
    return cleaned


def limit_query(limit: int) -> str:
    return json.dumps({"method": "limit", "values": [int(limit)]})


class BackendClient:
    """Authenticated admin client scoped to a single project."""

    def __init__(
        self,
        project: Project,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        if not project.endpoint or not project.project_id or not project.api_key:
            raise BackendAPIError("Appwrite project configuration is missing or incomplete.")
        self.project = project
        self.base_url = project.endpoint.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    @property
    def headers(self) -> dict[str, str]:
        return {
            "X-Appwrite-Project": self.project.project_id,
            "X-Appwrite-Key": self.project.api_key,
        }

    def file_view_url(self, bucket_id: str, file_id: str) -> str:
        return (
            f"{self.base_url}/storage/buckets/{bucket_id}/files/{file_id}/view"
            f"?project={self.project.project_id}"
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
    ) -> Any:
        """Perform one API call and return the decoded JSON body."""
        url = f"{self.base_url}{path}"
        log.debug("Appwrite request", method=method, path=path)
        try:
            response = await self.client.request(
                method,
                url,
                params=params,
                json=json_body,
                data=data,
                files=files,
                headers=self.headers,
            )
        except httpx.HTTPError as e:
            raise BackendAPIError(f"Request to {path} failed: {e}")

        if not response.is_success:
            message = response.text
            error_type = ""
            try:
                body = response.json()
                message = str(body.get("message") or message)
                error_type = str(body.get("type") or "")
            except (ValueError, AttributeError):
                pass
            raise BackendAPIError(
                message or f"Request failed with status {response.status_code}",
                status_code=response.status_code,
                error_type=error_type,
            )

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def get(self, path: str, limit: int | None = None, **params: Any) -> Any:
        query = dict(params)
        if limit is not None:
            query["queries[]"] = [limit_query(limit)]
        return await self.request("GET", path, params=query or None)

    async def post(self, path: str, body: dict[str, Any]) -> Any:
        return await self.request("POST", path, json_body=body)

    async def put(self, path: str, body: dict[str, Any]) -> Any:
        return await self.request("PUT", path, json_body=body)

    async def patch(self, path: str, body: dict[str, Any]) -> Any:
        return await self.request("PATCH", path, json_body=body)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def upload(
        self,
        path: str,
        file_name: str,
        content: bytes,
        mime_type: str,
        fields: dict[str, Any],
    ) -> Any:
        return await self.request(
            "POST",
            path,
            data=fields,
            files={"file": (file_name, content, mime_type)},
        )

    async def close(self) -> None:
        await self.client.aclose()
