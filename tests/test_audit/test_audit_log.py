import csv

import pytest

from appwrite_agent.audit import AuditEntry, AuditLog


@pytest.mark.asyncio
async def test_audit_log_uses_db_path_override(tmp_path):
    db_path = tmp_path / "custom-audit.db"
    audit = AuditLog(db_path=db_path)
    try:
        await audit.record(AuditEntry(project_id="p1", tool_name="listDatabases"))
        assert db_path.exists()
    finally:
        await audit.close()


@pytest.mark.asyncio
async def test_record_and_filter_by_project(tmp_path):
    audit = AuditLog(tmp_path / "audit.db")
    try:
        await audit.record(AuditEntry(
            project_id="p1",
            tool_name="createDocument",
            args={"documentId": "d1"},
            result={"$id": "d1"},
            duration_ms=12,
        ))
        await audit.record(AuditEntry(
            project_id="p2",
            tool_name="deleteUser",
            status="error",
            result={"error": "User not found"},
        ))

        everything = await audit.list_entries()
        only_p1 = await audit.list_entries("p1")
    finally:
        await audit.close()

    assert [e.tool_name for e in everything] == ["createDocument", "deleteUser"]
    assert len(only_p1) == 1
    assert only_p1[0].args == {"documentId": "d1"}
    assert only_p1[0].result == {"$id": "d1"}
    assert only_p1[0].duration_ms == 12


@pytest.mark.asyncio
async def test_clear_removes_entries(tmp_path):
    audit = AuditLog(tmp_path / "audit.db")
    try:
        await audit.record(AuditEntry(project_id="p1", tool_name="listUsers"))
        await audit.clear()
        assert await audit.list_entries() == []
    finally:
        await audit.close()


@pytest.mark.asyncio
async def test_export_csv_newest_first_and_truncated(tmp_path):
    audit = AuditLog(tmp_path / "audit.db")
    try:
        await audit.record(AuditEntry(
            project_id="p1",
            tool_name="listDocuments",
            result={"documents": ["x" * 6000]},
            timestamp="2026-01-01T10:00:00+00:00",
        ))
        await audit.record(AuditEntry(
            project_id="p1",
            tool_name="getDocument",
            args={"note": 'say "hi"'},
            timestamp="2026-01-02T10:00:00+00:00",
        ))
        output = tmp_path / "export" / "audit.csv"
        count = await audit.export_csv(output)
    finally:
        await audit.close()

    with open(output, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))

    assert count == 2
    assert rows[0] == ["Timestamp", "Project ID", "Tool", "Status", "Duration (ms)", "Arguments", "Result"]
    assert [row[2] for row in rows[1:]] == ["getDocument", "listDocuments"]
    assert rows[1][5] == '{"note": "say \\"hi\\""}'
    assert len(rows[2][6]) == 5000
