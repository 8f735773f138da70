"""Visibility policy.

- Public records and public families are visible to everyone.
- A requester always sees their own records.
- Family-scoped records need at least one active family shared between the
  requester and the record owner; a record pinned to a family additionally
  needs the requester to be an active member of that family.
- Sub-family records use exactly the family rule. No narrower sub-family
  semantics exist yet.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

try:
    from .errors import AccessDenied, NotFound
    from .models import FamilyGroup, Membership, Visibility
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from errors import AccessDenied, NotFound
    from models import FamilyGroup, Membership, Visibility

MembershipsOf = Callable[[str], Iterable[Membership]]


@dataclass(frozen=True)
class VisibleRecord:
    """Anything with an owner and a visibility tier (posts, member pages)."""

    owner_id: str
    visibility: Visibility
    family_id: str | None = None


def active_family_ids(memberships: Iterable[Membership]) -> set[str]:
    return {m.family_id for m in memberships if m.is_active}


def visible_families(
    requester_id: str,
    memberships_of: MembershipsOf,
    families: Sequence[FamilyGroup] = (),
) -> set[str]:
    """Families the requester may see: their active ones plus public ones."""

    out = active_family_ids(memberships_of(requester_id))
    out.update(f.id for f in families if f.visibility == Visibility.PUBLIC)
    return out


def can_view(record: VisibleRecord, requester_id: str, memberships_of: MembershipsOf) -> bool:
    if record.visibility == Visibility.PUBLIC:
        return True
    if record.owner_id == requester_id:
        return True

    mine = active_family_ids(memberships_of(requester_id))
    if record.family_id is not None and record.family_id not in mine:
        return False

    # FAMILY and SUB_FAMILY share the membership-intersection test.
    theirs = active_family_ids(memberships_of(record.owner_id))
    return bool(mine & theirs)


def require_family_access(
    family_id: str,
    requester_id: str,
    memberships_of: MembershipsOf,
    families: Sequence[FamilyGroup],
) -> FamilyGroup:
    """Return the family if the requester may see it.

    Raises :class:`NotFound` for an unknown id and :class:`AccessDenied` when
    the family exists but is not visible to the requester.
    """

    family = next((f for f in families if f.id == family_id), None)
    if family is None:
        raise NotFound("family", family_id)
    if family.id not in visible_families(requester_id, memberships_of, [family]):
        raise AccessDenied(family_id)
    return family
