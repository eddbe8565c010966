"""
Task activity trail

Every mutation of a task (fields, charges, assignments, comments) leaves a
human readable line such as:

    "updated status: PENDING → COMPLETED and added title: Filing fee, amount: 500"
"""
import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from backoffice.models import TaskActivityLog

logger = logging.getLogger(__name__)


def format_value(value: Any) -> str:
    if value is None:
        return "None"
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, dict):
        if "name" in value:
            return str(value["name"])
        return json.dumps(value, default=str, sort_keys=True)
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value), default=str)
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


def _diff(before: Dict, after: Dict) -> List[str]:
    keys = list(dict.fromkeys([*before.keys(), *after.keys()]))
    parts = []
    for key in keys:
        a, b = before.get(key), after.get(key)
        if a != b and format_value(a) != format_value(b):
            parts.append(f"{key}: {format_value(a)} → {format_value(b)}")
    return parts


def _summarize(values: Dict) -> str:
    return ", ".join(f"{key}: {format_value(value)}" for key, value in values.items())


def build_activity_message(changes: Optional[List[Dict]]) -> str:
    """
    Turn a list of {"from": {...} | None, "to": {...} | None} changes into a sentence.

    from+to is an update (only changed keys are listed), to only is an
    addition, from only is a deletion.
    """
    if not changes:
        return "updated the task"

    sentences = []
    for change in changes:
        before = change.get("from")
        after = change.get("to")

        if before is not None and after is not None:
            diffs = _diff(before, after)
            sentences.append(f"updated {', '.join(diffs)}" if diffs else "updated")
        elif after is not None:
            sentences.append(f"added {_summarize(after)}")
        elif before is not None:
            sentences.append(f"deleted {_summarize(before)}")
        else:
            sentences.append("updated")

    if len(sentences) == 1:
        return sentences[0]
    if len(sentences) == 2:
        return f"{sentences[0]} and {sentences[1]}"
    return f"{', '.join(sentences[:-1])}, and {sentences[-1]}"


def _json_safe(value: Any) -> Any:
    return json.loads(json.dumps(value, default=format_value))


def log_activity(
    db: Session,
    task_id: str,
    actor_id: Optional[str],
    action: str,
    message: str,
    meta: Optional[Dict] = None,
) -> TaskActivityLog:
    """Queue an activity row on the session; the caller's commit persists it"""
    entry = TaskActivityLog(
        task_id=task_id,
        actor_id=actor_id,
        action=action,
        message=message,
        meta=_json_safe(meta) if meta else None,
    )
    db.add(entry)
    return entry


def log_changes(db: Session, task_id: str, actor_id: Optional[str], action: str, changes: List[Dict]) -> TaskActivityLog:
    return log_activity(
        db, task_id, actor_id, action, build_activity_message(changes), {"changes": changes}
    )


def list_activity(db: Session, task_id: str, limit: int = 100) -> List[Dict]:
    rows = (
        db.query(TaskActivityLog)
        .filter(TaskActivityLog.task_id == task_id)
        .order_by(TaskActivityLog.created_at.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": row.id,
            "action": row.action,
            "message": row.message,
            "actor_id": row.actor_id,
            "meta": row.meta,
            "created_at": row.created_at,
        }
        for row in rows
    ]
