from __future__ import annotations

from enum import Enum
from typing import Any


def _compact_json(value: Any) -> Any:
    """Recursively drop empty fields from JSON-like tree payloads.

    Rules:
    - Drop None, blank strings, empty lists/tuples/dicts
    - Enums collapse to their value
    - Tuples become lists
    - Keep 0/False (generation 0 is meaningful)
    """

    if value is None:
        return None

    if isinstance(value, Enum):
        value = value.value

    if isinstance(value, str):
        s = value.strip()
        return s if s else None

    if isinstance(value, (list, tuple)):
        items = [v for v in (_compact_json(item) for item in value) if v is not None]
        return items if items else None

    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            vv = _compact_json(v)
            if vv is None:
                continue
            out[str(k)] = vv
        return out if out else None

    return value
