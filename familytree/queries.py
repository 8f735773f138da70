from __future__ import annotations

import json
from typing import Any

import psycopg

try:
    from .models import FamilyGroup, FamilyRole, Gender, Member, MemberStatus, Membership, PersonalInfo, Visibility
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from models import FamilyGroup, FamilyRole, Gender, Member, MemberStatus, Membership, PersonalInfo, Visibility


def _personal_info(raw: Any) -> PersonalInfo:
    # jsonb arrives decoded; text columns (older schemas) arrive as str.
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            return PersonalInfo()
    return PersonalInfo.from_json(raw)


def _fetch_edges(conn: psycopg.Connection, member_ids: list[str]) -> tuple[
    dict[str, list[str]], dict[str, list[str]], dict[str, list[str]]
]:
    parents: dict[str, list[str]] = {mid: [] for mid in member_ids}
    children: dict[str, list[str]] = {mid: [] for mid in member_ids}
    spouses: dict[str, list[str]] = {mid: [] for mid in member_ids}

    for child_id, parent_id in conn.execute(
        "SELECT child_id, parent_id FROM member_parent WHERE child_id = ANY(%s)",
        (member_ids,),
    ).fetchall():
        parents.setdefault(str(child_id), []).append(str(parent_id))

    for parent_id, child_id in conn.execute(
        "SELECT parent_id, child_id FROM member_parent WHERE parent_id = ANY(%s)",
        (member_ids,),
    ).fetchall():
        children.setdefault(str(parent_id), []).append(str(child_id))

    # Spouse rows are stored once per direction.
    for member_id, spouse_id in conn.execute(
        "SELECT member_id, spouse_id FROM member_spouse WHERE member_id = ANY(%s)",
        (member_ids,),
    ).fetchall():
        spouses.setdefault(str(member_id), []).append(str(spouse_id))

    return parents, children, spouses


def fetch_members(conn: psycopg.Connection, member_ids: list[str]) -> dict[str, Member]:
    """Fetch member records with their stored parent/child/spouse ids."""

    if not member_ids:
        return {}

    rows = conn.execute(
        """
        SELECT id, name, gender, status, personal_info
        FROM member
        WHERE id = ANY(%s)
        """.strip(),
        (member_ids,),
    ).fetchall()

    found = [str(r[0]) for r in rows]
    parents, children, spouses = _fetch_edges(conn, found)

    out: dict[str, Member] = {}
    for mid, name, gender, status, personal_info in rows:
        mid = str(mid)
        out[mid] = Member(
            id=mid,
            name=str(name or "").strip(),
            gender=Gender.parse(gender),
            status=MemberStatus.parse(status),
            personal_info=_personal_info(personal_info),
            parent_ids=tuple(sorted(set(parents.get(mid, [])))),
            child_ids=tuple(sorted(set(children.get(mid, [])))),
            spouse_ids=tuple(sorted(set(spouses.get(mid, [])))),
        )
    return out


def fetch_members_in_family(conn: psycopg.Connection, family_id: str) -> list[Member]:
    rows = conn.execute(
        """
        SELECT member_id
        FROM family_membership
        WHERE family_id = %s AND is_active = TRUE
        ORDER BY member_id
        """.strip(),
        (family_id,),
    ).fetchall()
    member_ids = [str(r[0]) for r in rows]
    by_id = fetch_members(conn, member_ids)
    return [by_id[mid] for mid in member_ids if mid in by_id]


def fetch_family_memberships(conn: psycopg.Connection, member_id: str) -> list[Membership]:
    rows = conn.execute(
        """
        SELECT family_id, member_id, role, is_active
        FROM family_membership
        WHERE member_id = %s
        ORDER BY family_id
        """.strip(),
        (member_id,),
    ).fetchall()
    return [
        Membership(family_id=str(fid), member_id=str(mid), role=FamilyRole.parse(role), is_active=bool(active))
        for fid, mid, role, active in rows
    ]


def fetch_families(conn: psycopg.Connection, family_ids: list[str] | None = None) -> list[FamilyGroup]:
    """Families ordered by name, each with all of its memberships."""

    if family_ids is None:
        rows = conn.execute(
            """
            SELECT id, name, parent_family_id, visibility
            FROM family
            ORDER BY name, id
            """.strip(),
        ).fetchall()
    else:
        if not family_ids:
            return []
        rows = conn.execute(
            """
            SELECT id, name, parent_family_id, visibility
            FROM family
            WHERE id = ANY(%s)
            ORDER BY name, id
            """.strip(),
            (family_ids,),
        ).fetchall()

    ids = [str(r[0]) for r in rows]
    memberships: dict[str, list[Membership]] = {fid: [] for fid in ids}
    if ids:
        for fid, mid, role, active in conn.execute(
            """
            SELECT family_id, member_id, role, is_active
            FROM family_membership
            WHERE family_id = ANY(%s)
            ORDER BY family_id, member_id
            """.strip(),
            (ids,),
        ).fetchall():
            memberships.setdefault(str(fid), []).append(
                Membership(family_id=str(fid), member_id=str(mid), role=FamilyRole.parse(role), is_active=bool(active))
            )

    return [
        FamilyGroup(
            id=str(fid),
            name=str(name or ""),
            parent_family_id=str(parent) if parent else None,
            visibility=Visibility.parse(visibility),
            memberships=tuple(memberships.get(str(fid), [])),
        )
        for fid, name, parent, visibility in rows
    ]
