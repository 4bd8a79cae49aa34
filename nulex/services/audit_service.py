"""
Audit Service - immutable admin action log
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from nulex.models.ledger import AdminLog
from nulex.services import repository

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def record_admin_action(
    db,
    *,
    admin_id: Optional[int],
    action: str,
    table_name: str,
    record_id: Optional[int],
    old_values: Optional[dict] = None,
    new_values: Optional[dict] = None,
) -> AdminLog:
    """Add an AdminLog row to the current unit of work (flushed with it)."""
    entry = AdminLog(
        admin_id=admin_id,
        action=action,
        table_name=table_name,
        record_id=record_id,
        old_values=_jsonable(old_values),
        new_values=_jsonable(new_values),
    )
    db.add(entry)
    logger.info(f"Admin action {action} on {table_name}#{record_id} by admin {admin_id}")
    return entry


async def list_admin_logs(
    db, *, action: Optional[str] = None, admin_id: Optional[int] = None, limit: int = 50, offset: int = 0
) -> List[dict]:
    entries = await repository.list_admin_logs(db, action=action, admin_id=admin_id, limit=limit, offset=offset)
    return [
        {
            "id": entry.id,
            "admin_id": entry.admin_id,
            "action": entry.action,
            "table_name": entry.table_name,
            "record_id": entry.record_id,
            "old_values": entry.old_values,
            "new_values": entry.new_values,
            "created_at": entry.created_at,
        }
        for entry in entries
    ]
