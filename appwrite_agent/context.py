"""Active project context: selections, binding and description."""

from dataclasses import dataclass
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field

from appwrite_agent.config import ProjectConfig
from appwrite_agent.exceptions import ValidationError
from appwrite_agent.instructions import InstructionLoader


class Resource(BaseModel):
    """Common shape of a selectable backend resource."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(alias="$id")
    name: str = ""


class Project(BaseModel):
    """Backend project credentials and identity."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    endpoint: str
    project_id: str
    api_key: str = ""

    @classmethod
    def from_config(cls, entry: ProjectConfig) -> "Project":
        return cls(**entry.model_dump())


class Database(Resource):
    pass


class Collection(Resource):
    database_id: str = Field(default="", alias="databaseId")


class Bucket(Resource):
    pass


class BackendFunction(Resource):
    runtime: str = ""
    deployment: str = ""


@dataclass(frozen=True)
class AIContext:
    """Immutable snapshot of what the user has selected for one turn."""

    project: Project
    database: Database | None = None
    collection: Collection | None = None
    bucket: Bucket | None = None
    function: BackendFunction | None = None


def bind(
    project: Project,
    database: Database | None = None,
    collection: Collection | None = None,
    bucket: Bucket | None = None,
    function: BackendFunction | None = None,
) -> AIContext:
    """Assemble an AIContext from the current selections.

    A collection is only kept when a database is selected and, if the
    collection records its parent, that parent is the selected database.
    """
    if database is None:
        collection = None
    elif collection is not None and collection.database_id and collection.database_id != database.id:
        collection = None
    return AIContext(
        project=project,
        database=database,
        collection=collection,
        bucket=bucket,
        function=function,
    )


def describe(context: AIContext | None) -> str:
    """Comma-joined summary of the fine-grained selections."""
    if context is None:
        return ""
    parts = [
        f"DB: {context.database.name}" if context.database else "",
        f"Collection: {context.collection.name}" if context.collection else "",
        f"Bucket: {context.bucket.name}" if context.bucket else "",
        f"Function: {context.function.name}" if context.function else "",
    ]
    return ", ".join(part for part in parts if part)


def render_system_instruction(
    context: AIContext,
    loader: InstructionLoader | None = None,
) -> str:
    """Render the system instructions handed to the model for this context."""
    lines: list[str] = []
    if context.database:
        lines.append(
            f'- The CURRENT active database is "{context.database.name}" (ID: {context.database.id}).'
        )
    if context.collection:
        lines.append(
            f'- The CURRENT active collection is "{context.collection.name}" (ID: {context.collection.id}).'
        )
    if context.bucket:
        lines.append(
            f'- The CURRENT active storage bucket is "{context.bucket.name}" (ID: {context.bucket.id}).'
        )
    if context.function:
        lines.append(
            f'- The CURRENT active function is "{context.function.name}" (ID: {context.function.id}).'
        )
    return (loader or InstructionLoader()).render(
        "system_prompt.md",
        project_name=context.project.name,
        project_id=context.project.project_id,
        context_lines="\n".join(lines),
    )


def _ids(items: Iterable[Resource | dict[str, Any]]) -> set[str]:
    ids: set[str] = set()
    for item in items:
        if isinstance(item, Resource):
            ids.add(item.id)
        elif isinstance(item, dict):
            ids.add(str(item.get("$id") or item.get("id") or ""))
    return ids


class ContextSelection:
    """Mutable selection state the controller binds into an AIContext."""

    def __init__(self, project: Project | None = None):
        self.project = project
        self.database: Database | None = None
        self.collection: Collection | None = None
        self.bucket: Bucket | None = None
        self.function: BackendFunction | None = None

    def select_project(self, project: Project | None) -> None:
        """Switch project; every finer selection belongs to the old one."""
        self.project = project
        self.database = None
        self.collection = None
        self.bucket = None
        self.function = None

    def select_database(self, database: Database | None) -> None:
        if database is None or self.database is None or database.id != self.database.id:
            self.collection = None
        self.database = database

    def select_collection(self, collection: Collection | None) -> None:
        if collection is not None and self.database is None:
            raise ValidationError("Select a database before selecting a collection.")
        self.collection = collection

    def select_bucket(self, bucket: Bucket | None) -> None:
        self.bucket = bucket

    def select_function(self, function: BackendFunction | None) -> None:
        self.function = function

    def prune(
        self,
        databases: Iterable[Resource | dict[str, Any]] | None = None,
        collections: Iterable[Resource | dict[str, Any]] | None = None,
        buckets: Iterable[Resource | dict[str, Any]] | None = None,
        functions: Iterable[Resource | dict[str, Any]] | None = None,
    ) -> list[str]:
        """Drop selections that no longer exist after a context refresh.

        Each listing is optional; ``None`` means "not refreshed". Returns the
        names of the selections that were cleared.
        """
        cleared: list[str] = []
        if databases is not None and self.database and self.database.id not in _ids(databases):
            self.database = None
            cleared.append("database")
            if self.collection is not None:
                self.collection = None
                cleared.append("collection")
        if (
            collections is not None
            and self.collection
            and self.collection.id not in _ids(collections)
        ):
            self.collection = None
            cleared.append("collection")
        if buckets is not None and self.bucket and self.bucket.id not in _ids(buckets):
            self.bucket = None
            cleared.append("bucket")
        if functions is not None and self.function and self.function.id not in _ids(functions):
            self.function = None
            cleared.append("function")
        return cleared

    def bind(self) -> AIContext | None:
        """Bind the current selections, or None without an active project."""
        if self.project is None:
            return None
        return bind(
            self.project,
            database=self.database,
            collection=self.collection,
            bucket=self.bucket,
            function=self.function,
        )
