import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from app.models import ChangeMap, FieldChange

TRACKED_FIELDS = (
    "title",
    "description",
    "status",
    "priority",
    "due_date",
    "assignee_id",
)

# Compared as order-independent sets of member ids
TRACKED_COLLECTIONS = ("tags",)

_ISO_TIMESTAMP = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2}(\.\d{1,6})?)?(Z|[+-]\d{2}:\d{2})?$"
)


def _read(entity: Any, field: str) -> Any:
    if entity is None:
        return None
    if isinstance(entity, Mapping):
        return entity.get(field)
    return getattr(entity, field, None)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_value(value: Any) -> Any:
    """Collapse a field value to a comparable form; never raises."""
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, str) and _ISO_TIMESTAMP.match(value):
        try:
            return _as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return value
    return value


def _member_id(member: Any) -> Any:
    if isinstance(member, Mapping):
        return member.get("id")
    return getattr(member, "id", member)


def normalize_collection(members: Any) -> list:
    if not members:
        return []
    ids = {_member_id(member) for member in members}
    ids.discard(None)
    return sorted(ids, key=str)


def detect_changes(old: Any, new: Any) -> ChangeMap:
    """
    Field-level diff between two versions of a task.

    Entities may be mappings or objects; missing fields read as None, so a
    field going from missing to None is not a change. Returned FieldChanges
    hold the normalized values.
    """
    changes: ChangeMap = {}

    for field in TRACKED_FIELDS:
        old_value = normalize_value(_read(old, field))
        new_value = normalize_value(_read(new, field))
        if old_value != new_value:
            changes[field] = FieldChange(old=old_value, new=new_value)

    for field in TRACKED_COLLECTIONS:
        old_ids = normalize_collection(_read(old, field))
        new_ids = normalize_collection(_read(new, field))
        if set(old_ids) != set(new_ids):
            changes[field] = FieldChange(old=old_ids, new=new_ids)

    return changes
