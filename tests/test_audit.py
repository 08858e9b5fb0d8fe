"""Tests for activity log helpers and retention."""

import datetime

from sqlalchemy import func, select

from modloot import cli
from modloot.core.audit import diff_changes, new_log_id, prune_logs, record_activity
from modloot.models.database import _get_engine, session_scope
from modloot.models.enums import ActivityType, LogLevel
from modloot.models.tables import ActivityLog, utcnow


class TestDiffChanges:
    def test_only_changed_fields(self):
        before = {"name": "Ama", "source": "website", "is_active": True}
        after = {"name": "Ama M", "source": "website", "is_active": False}
        assert diff_changes(before, after) == {
            "name": {"from": "Ama", "to": "Ama M"},
            "is_active": {"from": True, "to": False},
        }

    def test_no_changes(self):
        assert diff_changes({"a": 1}, {"a": 1}) == {}

    def test_values_are_json_safe(self):
        when = datetime.datetime(2026, 1, 2, tzinfo=datetime.timezone.utc)
        changes = diff_changes({"at": None}, {"at": when})
        assert changes["at"]["to"] == "2026-01-02T00:00:00+00:00"


def test_log_ids_are_unique():
    ids = {new_log_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(i.startswith("LOG_") for i in ids)


class TestRetention:
    async def test_prune_removes_only_old_entries(self, db):
        await record_activity(ActivityType.SYSTEM, "recent")
        await record_activity(ActivityType.SYSTEM, "old", level=LogLevel.WARN)
        async with session_scope() as session:
            old = (await session.execute(select(ActivityLog).where(ActivityLog.message == "old"))).scalar_one()
            old.created_at = utcnow() - datetime.timedelta(days=45)
            await session.commit()

        deleted = await prune_logs(30)
        assert deleted == 1

        async with session_scope() as session:
            remaining = (await session.execute(select(func.count(ActivityLog.id)))).scalar_one()
        assert remaining == 1

    async def test_prune_failure_is_reported(self, db):
        engine = _get_engine()
        async with engine.begin() as conn:
            await conn.run_sync(ActivityLog.__table__.drop)

        assert await prune_logs(30) is None


class TestPruneCommand:
    def test_exit_code(self, monkeypatch, capsys):
        async def deleted(days):
            return 3

        monkeypatch.setattr(cli, "_prune", deleted)
        assert cli.main(["prune-logs", "--days", "7"]) == 0
        assert "Deleted 3 activity logs older than 7 days" in capsys.readouterr().out

    def test_failure_exit_code(self, monkeypatch, capsys):
        async def failed(days):
            return None

        monkeypatch.setattr(cli, "_prune", failed)
        assert cli.main(["prune-logs"]) == 1
        assert "failed" in capsys.readouterr().err
