from __future__ import annotations

from dataclasses import fields, is_dataclass
from datetime import date, datetime
from pathlib import PurePath


def to_jsonable(obj):
    """Convert domain objects to a JSON-serializable structure.

    Handles:
    - Basic types (str, int, float, bool, None)
    - Collections (list, tuple, set, dict)
    - Objects with a to_jsonable method (issues use this to emit issue_type)
    - Dataclasses, field by field so nested hooks still apply
    - datetime/date and paths

    Dataclass fields holding None are dropped.
    """
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    elif isinstance(obj, (list, tuple)):
        return [to_jsonable(item) for item in obj]
    elif isinstance(obj, (set, frozenset)):
        return sorted(to_jsonable(item) for item in obj)
    elif isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    elif hasattr(obj, 'to_jsonable'):
        return obj.to_jsonable()
    elif is_dataclass(obj) and not isinstance(obj, type):
        out = {}
        for f in fields(obj):
            value = getattr(obj, f.name)
            if value is not None:
                out[f.name] = to_jsonable(value)
        return out
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, PurePath):
        return str(obj)
    else:
        return str(obj)
