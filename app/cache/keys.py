"""Deterministic cache key derivation.

List keys hash the filter so that the same filter always maps to the same
key whatever order its fields were set in; item keys embed the raw id.
"""

import hashlib
import json
from typing import Any, Mapping

from pydantic import BaseModel
from pydantic_core import to_jsonable_python


def _filter_fields(filters: BaseModel | Mapping[str, Any] | None) -> dict[str, Any]:
    if filters is None:
        return {}
    if isinstance(filters, BaseModel):
        data = filters.model_dump(mode="json", exclude_none=True)
    else:
        # same JSON rendering as model_dump(mode="json") so both forms hash alike
        data = to_jsonable_python(dict(filters))
    # unset and explicit-None fields describe the same query
    return {name: value for name, value in data.items() if value is not None}


def derive_list_key(prefix: str, filters: BaseModel | Mapping[str, Any] | None) -> str:
    payload = json.dumps(
        _filter_fields(filters), sort_keys=True, separators=(",", ":"), default=str
    )
    digest = hashlib.md5(payload.encode("utf-8")).hexdigest()
    return f"{prefix}:list:{digest}"


def derive_item_key(prefix: str, entity_id: Any) -> str:
    return f"{prefix}:item:{entity_id}"


def list_pattern(prefix: str) -> str:
    return f"{prefix}:list:*"
