from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable

import pytest

from familytree.models import FamilyGroup, FamilyRole, Gender, Member, Membership, PersonalInfo, Visibility

MemberFactory = Callable[..., dict[str, Member]]


def _members(
    names: dict[str, str],
    *,
    parents: Iterable[tuple[str, str]] = (),
    spouses: Iterable[tuple[str, str]] = (),
    genders: dict[str, Gender] | None = None,
    info: dict[str, PersonalInfo] | None = None,
) -> dict[str, Member]:
    # parents rows are (child_id, parent_id); both directions get stored.
    parent_ids: dict[str, set[str]] = {mid: set() for mid in names}
    child_ids: dict[str, set[str]] = {mid: set() for mid in names}
    spouse_ids: dict[str, set[str]] = {mid: set() for mid in names}
    for child, parent in parents:
        parent_ids[child].add(parent)
        child_ids[parent].add(child)
    for a, b in spouses:
        spouse_ids[a].add(b)
        spouse_ids[b].add(a)

    return {
        mid: Member(
            id=mid,
            name=name,
            gender=(genders or {}).get(mid, Gender.UNSPECIFIED),
            personal_info=(info or {}).get(mid, PersonalInfo()),
            parent_ids=tuple(sorted(parent_ids[mid])),
            child_ids=tuple(sorted(child_ids[mid])),
            spouse_ids=tuple(sorted(spouse_ids[mid])),
        )
        for mid, name in names.items()
    }


@pytest.fixture()
def make_members() -> MemberFactory:
    return _members


@pytest.fixture()
def fixed_now() -> datetime:
    # Keep tests deterministic.
    return datetime(2026, 1, 20, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture()
def family_f_members() -> dict[str, Member]:
    """A has children B and C; D is married to B."""

    return _members(
        {"A": "Anna", "B": "Bert", "C": "Carl", "D": "Dora"},
        parents=[("B", "A"), ("C", "A")],
        spouses=[("B", "D")],
        genders={"A": Gender.FEMALE, "B": Gender.MALE, "C": Gender.MALE, "D": Gender.FEMALE},
    )


@pytest.fixture()
def family_f(family_f_members: dict[str, Member]) -> FamilyGroup:
    roles = {"A": FamilyRole.HEAD}
    return FamilyGroup(
        id="F",
        name="Family F",
        visibility=Visibility.FAMILY,
        memberships=tuple(
            Membership(family_id="F", member_id=mid, role=roles.get(mid, FamilyRole.MEMBER))
            for mid in sorted(family_f_members)
        ),
    )


@dataclass
class _FakeResult:
    rows: list[tuple]

    def fetchall(self) -> list[tuple]:
        return list(self.rows)


class _FakeConn:
    """Routes the accessor's SQL to in-memory tables."""

    def __init__(
        self,
        *,
        members: dict[str, tuple] | None = None,
        member_parent: list[tuple[str, str]] | None = None,
        member_spouse: list[tuple[str, str]] | None = None,
        families: list[tuple] | None = None,
        memberships: list[tuple] | None = None,
    ) -> None:
        # members: id -> (name, gender, status, personal_info)
        self._members = dict(members or {})
        # member_parent rows are (child_id, parent_id)
        self._member_parent = list(member_parent or [])
        # member_spouse rows are (member_id, spouse_id), one per direction
        self._member_spouse = list(member_spouse or [])
        # families rows are (id, name, parent_family_id, visibility)
        self._families = list(families or [])
        # memberships rows are (family_id, member_id, role, is_active)
        self._memberships = list(memberships or [])
        self.queries: list[str] = []

    def execute(self, query: str, params: tuple = ()) -> _FakeResult:
        q = " ".join((query or "").split()).lower()
        self.queries.append(q)

        if q.startswith("select id, name, gender, status, personal_info from member"):
            ids = set(params[0] or [])
            rows = [(mid, *rest) for mid, rest in self._members.items() if mid in ids]
            return _FakeResult(rows)

        if q.startswith("select child_id, parent_id from member_parent"):
            ids = set(params[0] or [])
            return _FakeResult([(c, p) for (c, p) in self._member_parent if c in ids])

        if q.startswith("select parent_id, child_id from member_parent"):
            ids = set(params[0] or [])
            return _FakeResult([(p, c) for (c, p) in self._member_parent if p in ids])

        if q.startswith("select member_id, spouse_id from member_spouse"):
            ids = set(params[0] or [])
            return _FakeResult([(m, s) for (m, s) in self._member_spouse if m in ids])

        if q.startswith("select member_id from family_membership"):
            rows = sorted(m for (f, m, _r, active) in self._memberships if f == params[0] and active)
            return _FakeResult([(m,) for m in rows])

        if q.startswith("select family_id, member_id, role, is_active from family_membership where member_id"):
            rows = sorted(r for r in self._memberships if r[1] == params[0])
            return _FakeResult(rows)

        if q.startswith("select family_id, member_id, role, is_active from family_membership where family_id"):
            ids = set(params[0] or [])
            rows = sorted(r for r in self._memberships if r[0] in ids)
            return _FakeResult(rows)

        if q.startswith("select id, name, parent_family_id, visibility from family"):
            rows = list(self._families)
            if "where id = any" in q:
                ids = set(params[0] or [])
                rows = [r for r in rows if r[0] in ids]
            rows.sort(key=lambda r: (r[1], r[0]))
            return _FakeResult(rows)

        raise AssertionError(f"Unexpected query: {query}")


def _tree_db() -> _FakeConn:
    # Alpha: Anna (head) with children Bert and Carl; Dora married to Bert.
    # Beta: Bert and Xena. Gamma is public. Delta is private to Quinn.
    return _FakeConn(
        members={
            "A": ("Anna", "female", "active", {"birthDate": "1950-03-01"}),
            "B": ("Bert", "male", "active", {"occupation": "Baker"}),
            "C": ("Carl", "male", "deceased", {}),
            "D": ("Dora", "female", "active", '{"phone": "555-0100"}'),
            "X": ("Xena", "female", "active", None),
            "Z": ("Zed", "m", "active", {}),
            "Q": ("Quinn", "other", "active", {}),
        },
        member_parent=[("B", "A"), ("C", "A")],
        member_spouse=[("B", "D"), ("D", "B")],
        families=[
            ("F1", "Alpha", None, "family"),
            ("F2", "Beta", "F1", "sub_family"),
            ("F3", "Gamma", None, "public"),
            ("F4", "Delta", None, "family"),
        ],
        memberships=[
            ("F1", "A", "head", True),
            ("F1", "B", "member", True),
            ("F1", "C", "member", True),
            ("F1", "D", "contributor", True),
            ("F2", "B", "admin", True),
            ("F2", "X", "member", True),
            ("F3", "Z", "member", True),
            ("F4", "Q", "head", True),
        ],
    )


@pytest.fixture()
def tree_db() -> _FakeConn:
    return _tree_db()


@pytest.fixture()
def empty_db() -> _FakeConn:
    return _FakeConn()
