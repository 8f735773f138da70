from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

try:
    from .models import Member
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from models import Member

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Adjacency:
    """Consistent, scope-restricted parent/child/spouse edges keyed by member id."""

    parents: dict[str, tuple[str, ...]]
    children: dict[str, tuple[str, ...]]
    spouses: dict[str, tuple[str, ...]]

    def parents_of(self, member_id: str) -> tuple[str, ...]:
        return self.parents.get(member_id, ())

    def children_of(self, member_id: str) -> tuple[str, ...]:
        return self.children.get(member_id, ())

    def spouses_of(self, member_id: str) -> tuple[str, ...]:
        return self.spouses.get(member_id, ())


def build_adjacency(members: Iterable[Member], scope: Iterable[str] | None = None) -> Adjacency:
    """Build adjacency among *scope* (default: all given members).

    Storage is expected to materialize both directions of every edge. An edge
    is kept only when both endpoints are in scope and, for endpoints whose
    records are loaded, the inverse edge is stored too. Self edges are dropped.
    Nothing here raises: inconsistencies are counted and logged.
    """

    by_id: dict[str, Member] = {}
    for m in members:
        by_id.setdefault(m.id, m)

    in_scope = set(by_id) if scope is None else set(scope)
    ids = sorted(i for i in in_scope if i in by_id)

    parents: dict[str, list[str]] = {mid: [] for mid in ids}
    children: dict[str, list[str]] = {mid: [] for mid in ids}
    spouses: dict[str, list[str]] = {mid: [] for mid in ids}
    dropped = 0

    for mid in ids:
        m = by_id[mid]

        for pid in set(m.parent_ids):
            if pid == mid:
                dropped += 1
                continue
            if pid not in in_scope:
                continue
            p = by_id.get(pid)
            if p is not None and mid not in p.child_ids:
                dropped += 1
                continue
            parents[mid].append(pid)
            children.setdefault(pid, []).append(mid)

        for sid in set(m.spouse_ids):
            if sid == mid:
                dropped += 1
                continue
            if sid not in in_scope:
                continue
            s = by_id.get(sid)
            if s is not None and mid not in s.spouse_ids:
                dropped += 1
                continue
            spouses[mid].append(sid)

    # Child lists stored on a parent without the matching parent entry on the
    # child are one-sided too; they were never added above, only counted here.
    for mid in ids:
        for cid in by_id[mid].child_ids:
            c = by_id.get(cid)
            if c is not None and cid in in_scope and mid not in c.parent_ids:
                dropped += 1

    if dropped:
        log.warning("ignored %d one-sided or self-referencing edges among %d members", dropped, len(ids))

    return Adjacency(
        parents={k: tuple(sorted(set(v))) for k, v in parents.items()},
        children={k: tuple(sorted(set(v))) for k, v in children.items()},
        spouses={k: tuple(sorted(set(v))) for k, v in spouses.items()},
    )
