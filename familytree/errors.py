"""Request-level failures surfaced to callers.

Data inconsistencies (broken inverse edges, cycles) are not represented here:
they are absorbed with fallback values and logged where they are found.
"""

from __future__ import annotations


class FamilyTreeError(Exception):
    """Base class for caller-visible failures."""


class AccessDenied(FamilyTreeError):
    def __init__(self, family_id: str) -> None:
        super().__init__(f"access denied to family: {family_id}")
        self.family_id = family_id


class NotFound(FamilyTreeError):
    def __init__(self, kind: str, ref: str) -> None:
        super().__init__(f"{kind} not found: {ref}")
        self.kind = kind
        self.ref = ref


class UnsupportedFormat(FamilyTreeError):
    def __init__(self, field: str, value: object) -> None:
        super().__init__(f"unsupported {field}: {value!r}")
        self.field = field
        self.value = value
