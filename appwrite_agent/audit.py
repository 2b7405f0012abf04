"""Persistent audit trail of tool calls, stored in SQLite."""

import asyncio
import csv
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from appwrite_agent.config import get_config
from appwrite_agent.logging import get_logger

log = get_logger(__name__)

CSV_HEADERS = ["Timestamp", "Project ID", "Tool", "Status", "Duration (ms)", "Arguments", "Result"]
CSV_RESULT_LIMIT = 5000


def _utcnow_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


def _to_json(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return json.dumps(str(value), ensure_ascii=False)


@dataclass
class AuditEntry:
    """One executed tool call."""

    project_id: str
    tool_name: str
    args: dict[str, Any] = field(default_factory=dict)
    status: str = "success"  # "success" or "error"
    result: Any = None
    duration_ms: int | None = None
    timestamp: str = field(default_factory=_utcnow_iso)
    id: int | None = None

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "AuditEntry":
        return cls(
            id=row["id"],
            timestamp=row["timestamp"],
            project_id=row["project_id"],
            tool_name=row["tool_name"],
            args=json.loads(row["args"] or "{}"),
            status=row["status"],
            result=json.loads(row["result"]) if row["result"] else None,
            duration_ms=row["duration_ms"],
        )


class AuditLog:
    """Append-only audit log of tool executions."""

    def __init__(self, db_path: Path | str | None = None):
        """Initialize the audit log.

        Args:
            db_path: Optional database path override
        """
        if db_path is None:
            self.db_path = Path(get_config().audit.path).expanduser()
        else:
            self.db_path = Path(db_path).expanduser()

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db: aiosqlite.Connection | None = None
        self._init_lock = asyncio.Lock()

    async def _ensure_db(self) -> aiosqlite.Connection:
        """Ensure database is initialized."""
        async with self._init_lock:
            if self._db is None:
                self._db = await self._connect()
        return self._db

    async def _connect(self) -> aiosqlite.Connection:
        db = await aiosqlite.connect(str(self.db_path))
        db.row_factory = aiosqlite.Row
        await db.execute("""
            CREATE TABLE IF NOT EXISTS audit_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                project_id TEXT NOT NULL,
                tool_name TEXT NOT NULL,
                args TEXT NOT NULL DEFAULT '{}',
                status TEXT NOT NULL,
                result TEXT,
                duration_ms INTEGER
            )
        """)
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_audit_project ON audit_logs(project_id)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_logs(timestamp)"
        )
        await db.commit()
        return db

    async def record(self, entry: AuditEntry) -> None:
        """Persist one entry. Storage failures are logged, not raised."""
        try:
            db = await self._ensure_db()
            cursor = await db.execute(
                """
                INSERT INTO audit_logs
                    (timestamp, project_id, tool_name, args, status, result, duration_ms)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.timestamp,
                    entry.project_id,
                    entry.tool_name,
                    _to_json(entry.args),
                    entry.status,
                    _to_json(entry.result),
                    entry.duration_ms,
                ),
            )
            await db.commit()
            entry.id = cursor.lastrowid
        except (aiosqlite.Error, OSError) as e:
            log.error("Failed to write to audit log", tool=entry.tool_name, error=str(e))

    async def list_entries(self, project_id: str | None = None) -> list[AuditEntry]:
        """Entries oldest first, optionally filtered to one project."""
        db = await self._ensure_db()
        if project_id:
            query = "SELECT * FROM audit_logs WHERE project_id = ? ORDER BY id"
            params: tuple[Any, ...] = (project_id,)
        else:
            query = "SELECT * FROM audit_logs ORDER BY id"
            params = ()
        async with db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
        return [AuditEntry.from_row(row) for row in rows]

    async def clear(self) -> None:
        db = await self._ensure_db()
        await db.execute("DELETE FROM audit_logs")
        await db.commit()

    async def export_csv(self, path: Path | str, project_id: str | None = None) -> int:
        """Write entries newest first to a CSV file.

        Returns:
            Number of exported rows
        """
        entries = await self.list_entries(project_id)
        entries.sort(key=lambda e: (e.timestamp, e.id or 0), reverse=True)

        output = Path(path).expanduser()
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f, quoting=csv.QUOTE_MINIMAL)
            writer.writerow(CSV_HEADERS)
            for entry in entries:
                writer.writerow([
                    entry.timestamp,
                    entry.project_id,
                    entry.tool_name,
                    entry.status,
                    "" if entry.duration_ms is None else entry.duration_ms,
                    _to_json(entry.args),
                    _to_json(entry.result)[:CSV_RESULT_LIMIT] if entry.result is not None else "",
                ])
        log.info("Exported audit log", path=str(output), rows=len(entries))
        return len(entries)

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None
