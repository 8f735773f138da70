"""Request-level orchestration.

accessor -> access filter -> generations/colors -> tree builder -> formatter.
Every call loads what it needs and builds fresh structures; nothing is
cached between calls.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Sequence

import psycopg

try:
    from .access import VisibleRecord, can_view, require_family_access, visible_families
    from .errors import UnsupportedFormat
    from .export import ExportArtifact, ExportOptions, ExportTarget, format_export
    from .generations import compute_generations
    from .graph import build_adjacency
    from .models import FamilyGroup, Member, Membership, Visibility
    from .queries import fetch_families, fetch_family_memberships, fetch_members, fetch_members_in_family
    from .stats import compute_statistics
    from .tree import FamilyForest, Forest, build_forest
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from access import VisibleRecord, can_view, require_family_access, visible_families
    from errors import UnsupportedFormat
    from export import ExportArtifact, ExportOptions, ExportTarget, format_export
    from generations import compute_generations
    from graph import build_adjacency
    from models import FamilyGroup, Member, Membership, Visibility
    from queries import fetch_families, fetch_family_memberships, fetch_members, fetch_members_in_family
    from stats import compute_statistics
    from tree import FamilyForest, Forest, build_forest

log = logging.getLogger(__name__)

SCOPE_CURRENT = "current-family"
SCOPE_ALL = "all-families"
SCOPE_SELECTED = "selected-families"
_SCOPES = (SCOPE_CURRENT, SCOPE_ALL, SCOPE_SELECTED)


class _MembershipLoader:
    """Per-request memo of member -> memberships."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn
        self._cache: dict[str, list[Membership]] = {}

    def __call__(self, member_id: str) -> list[Membership]:
        if member_id not in self._cache:
            self._cache[member_id] = fetch_family_memberships(self._conn, member_id)
        return self._cache[member_id]


def _validate_scope(scope: str) -> str:
    if scope not in _SCOPES:
        raise UnsupportedFormat("scope", scope)
    return scope


def _resolve_families(
    conn: psycopg.Connection,
    requester_id: str,
    scope: str,
    family_ids: Sequence[str] | None,
    memberships_of: _MembershipLoader,
) -> list[FamilyGroup]:
    if scope == SCOPE_ALL:
        families = fetch_families(conn)
        visible = visible_families(requester_id, memberships_of, families)
        return [f for f in families if f.id in visible]

    if scope == SCOPE_CURRENT:
        if family_ids:
            wanted = list(family_ids[:1])
        else:
            # The requester's first active family is their current one.
            active = [m.family_id for m in memberships_of(requester_id) if m.is_active]
            wanted = active[:1]
    else:
        wanted = list(dict.fromkeys(family_ids or ()))

    if not wanted:
        return []

    known = fetch_families(conn, wanted)
    return [require_family_access(fid, requester_id, memberships_of, known) for fid in wanted]


def _load_directory(
    conn: psycopg.Connection,
    requester_id: str,
    members_by_family: Mapping[str, Sequence[Member]],
    memberships_of: _MembershipLoader,
) -> dict[str, Member]:
    directory: dict[str, Member] = {}
    for members in members_by_family.values():
        for m in members:
            directory.setdefault(m.id, m)

    relatives = sorted(
        {
            rid
            for m in list(directory.values())
            for rid in (*m.parent_ids, *m.child_ids, *m.spouse_ids)
            if rid not in directory
        }
    )
    # Relatives outside the loaded families are shown only if the requester
    # could see their member record anyway.
    allowed = [
        rid
        for rid in relatives
        if can_view(VisibleRecord(owner_id=rid, visibility=Visibility.FAMILY), requester_id, memberships_of)
    ]
    if len(allowed) < len(relatives):
        log.debug("hid %d relatives outside the requester's families", len(relatives) - len(allowed))
    directory.update(fetch_members(conn, allowed))
    return directory


def load_forest(
    conn: psycopg.Connection,
    requester_id: str,
    scope: str = SCOPE_ALL,
    family_ids: Sequence[str] | None = None,
) -> Forest:
    """Build the forest for every family in *scope* the requester may see.

    ``all-families`` with nothing visible gives an empty forest. Explicitly
    requested families that do not exist or are not visible raise
    ``NotFound`` / ``AccessDenied``.
    """

    _validate_scope(scope)
    memberships_of = _MembershipLoader(conn)
    families = _resolve_families(conn, requester_id, scope, family_ids, memberships_of)

    members_by_family = {f.id: fetch_members_in_family(conn, f.id) for f in families}
    directory = _load_directory(conn, requester_id, members_by_family, memberships_of)

    forest = build_forest(families, members_by_family, directory)
    log.info(
        "built forest for requester %s: scope=%s families=%d members=%d",
        requester_id,
        scope,
        len(forest.families),
        len(forest.members),
    )
    return forest


def family_tree(conn: psycopg.Connection, requester_id: str, family_id: str) -> FamilyForest:
    forest = load_forest(conn, requester_id, SCOPE_SELECTED, [family_id])
    return forest.families[0]


def family_statistics(conn: psycopg.Connection, requester_id: str, family_id: str) -> dict[str, Any]:
    memberships_of = _MembershipLoader(conn)
    family = require_family_access(family_id, requester_id, memberships_of, fetch_families(conn, [family_id]))

    members = fetch_members_in_family(conn, family.id)
    adjacency = build_adjacency(members)
    generations = compute_generations([m.id for m in members], adjacency)

    stats = compute_statistics(members, generations, adjacency)
    sub_families = [f for f in fetch_families(conn) if f.parent_family_id == family.id]
    stats["total_families"] = 1 + len(sub_families)
    stats["family_id"] = family.id
    stats["family_name"] = family.name
    return stats


def parse_export_request(request: Mapping[str, Any]) -> tuple[ExportTarget, ExportOptions, str, list[str] | None]:
    """Validate an export request before any data is loaded."""

    target = ExportTarget.parse(request.get("format") or request.get("target"))

    config = request.get("config")
    cfg: dict[str, Any] = dict(config) if isinstance(config, Mapping) else dict(request)
    if isinstance(request.get("includeData"), Mapping):
        cfg["includeData"] = request["includeData"]
    options = ExportOptions.from_payload(cfg)

    scope = _validate_scope(str(request.get("scope") or SCOPE_ALL))
    family_ids_raw = request.get("familyIds")
    family_ids = [str(x) for x in family_ids_raw] if isinstance(family_ids_raw, list) else None
    return target, options, scope, family_ids


def export_forest(
    conn: psycopg.Connection,
    requester_id: str,
    request: Mapping[str, Any],
    *,
    generated_at: datetime | None = None,
) -> ExportArtifact:
    target, options, scope, family_ids = parse_export_request(request)
    forest = load_forest(conn, requester_id, scope, family_ids)
    return format_export(forest, options, target, generated_at=generated_at)
