"""
Audit trail.

Activity records are written in their own session after the primary write has
committed. A failed audit write is logged and dropped; it never fails the
request that triggered it.
"""

import datetime
from typing import Any, Iterable, Optional
from uuid import uuid4

import structlog
from fastapi.encoders import jsonable_encoder
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from modloot.models.database import session_scope
from modloot.models.enums import ActivityType, LogLevel
from modloot.models.tables import ActivityLog, utcnow

logger = structlog.get_logger()


def new_log_id() -> str:
    return f"LOG_{int(utcnow().timestamp() * 1000)}_{uuid4().hex[:9]}"


def snapshot(obj, fields: Iterable[str]) -> dict[str, Any]:
    return {field: getattr(obj, field) for field in fields}


def diff_changes(before: dict[str, Any], after: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Only the fields whose value changed, as {field: {"from": old, "to": new}}."""
    changes = {}
    for field, new_value in after.items():
        old_value = before.get(field)
        if old_value != new_value:
            changes[field] = {"from": old_value, "to": new_value}
    return jsonable_encoder(changes)


async def record_activity(
    activity: ActivityType,
    message: str,
    level: LogLevel = LogLevel.INFO,
    **details: Any,
) -> None:
    entry = ActivityLog(
        log_id=new_log_id(),
        level=level.value,
        type=activity.value,
        message=message,
        details=jsonable_encoder(details),
    )
    try:
        async with session_scope() as session:
            session.add(entry)
            await session.commit()
    except SQLAlchemyError as e:
        logger.error("activity_log_write_failed", activity=activity.value, error=str(e))


async def prune_logs(retention_days: int) -> Optional[int]:
    """Delete activity records older than the retention window.

    Returns rows removed, or None when the delete fails.
    """
    cutoff = utcnow() - datetime.timedelta(days=retention_days)
    try:
        async with session_scope() as session:
            result = await session.execute(delete(ActivityLog).where(ActivityLog.created_at < cutoff))
            await session.commit()
    except SQLAlchemyError as e:
        logger.error("activity_logs_prune_failed", cutoff=cutoff.isoformat(), error=str(e))
        return None
    logger.info("activity_logs_pruned", deleted=result.rowcount, cutoff=cutoff.isoformat())
    return result.rowcount
