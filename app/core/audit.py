from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from app.core.extensions import db
from app.core.models import AuditLog


def _jsonable(value: object) -> object:
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def log_audit(
    action: str,
    entity_type: str,
    entity_id: int | None,
    diff: dict[str, object] | None,
    actor_id: int | None,
) -> AuditLog:
    """Stage an audit row in the current transaction; the caller commits."""
    entry = AuditLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        diff_json=_jsonable(diff) if diff is not None else None,
    )
    db.session.add(entry)
    return entry
