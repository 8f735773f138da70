"""Normalized family trees built from the flat edge sets.

One forest per family. Inside a forest every member is expanded exactly once;
any later path that reaches the same member yields a back-link node pointing
at the place it was rendered. Children and spouses are ordered by
(generation, folded name, id) so exports built from a forest are
reproducible.
"""

from __future__ import annotations

import logging
import unicodedata
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

try:
    from .colors import LineageColor, assign_colors
    from .generations import compute_generations
    from .graph import Adjacency, build_adjacency
    from .models import FamilyGroup, FamilyRole, Gender, Member, PersonalInfo
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from colors import LineageColor, assign_colors
    from generations import compute_generations
    from graph import Adjacency, build_adjacency
    from models import FamilyGroup, FamilyRole, Gender, Member, PersonalInfo

log = logging.getLogger(__name__)

# Nesting limit for one rendered tree. Deeper descendants continue as extra
# roots so renderers and JSON encoders never walk an unbounded chain.
_MAX_DEPTH = 100


def name_sort_key(name: str | None) -> str:
    """Case-insensitive, accent-folded collation key for display names."""

    s = unicodedata.normalize("NFKD", name or "")
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    return s.casefold().strip()


@dataclass(frozen=True)
class BackLink:
    anchor_id: str
    anchor_name: str
    relation: str  # root, child, spouse, continued

    def describe(self) -> str:
        if self.relation == "spouse":
            return f"shown under Spouses of {self.anchor_name}"
        if self.relation == "child":
            return f"shown under Children of {self.anchor_name}"
        if self.relation == "continued":
            return f"continued as root {self.anchor_name}"
        return f"shown as root {self.anchor_name}"


@dataclass(frozen=True)
class TreeNode:
    member_id: str
    name: str
    gender: Gender
    role: FamilyRole | None
    generation: int
    color: str | None
    parent_colors: tuple[str, ...]
    parent_ids: tuple[str, ...]
    children: tuple["TreeNode", ...] = ()
    spouses: tuple["TreeNode", ...] = ()
    back_link: BackLink | None = None

    @property
    def is_back_link(self) -> bool:
        return self.back_link is not None

    def walk(self) -> Iterable["TreeNode"]:
        """Pre-order over this node, its spouses and its children."""
        yield self
        for s in self.spouses:
            yield from s.walk()
        for c in self.children:
            yield from c.walk()


@dataclass(frozen=True)
class MemberEntry:
    """One member as listed inside one family."""

    member: Member
    family_id: str
    role: FamilyRole
    generation: int
    color: str | None
    parent_colors: tuple[str, ...]
    parents: tuple[str, ...]
    children: tuple[str, ...]
    spouses: tuple[str, ...]

    @property
    def id(self) -> str:
        return self.member.id

    @property
    def name(self) -> str:
        return self.member.name

    @property
    def personal_info(self) -> PersonalInfo:
        return self.member.personal_info


@dataclass(frozen=True)
class FamilyForest:
    family_id: str
    family_name: str
    roots: tuple[TreeNode, ...]
    entries: tuple[MemberEntry, ...]


@dataclass(frozen=True)
class Forest:
    families: tuple[FamilyForest, ...]
    members: tuple[MemberEntry, ...]

    @property
    def is_empty(self) -> bool:
        return not self.families


class _TreeBuilder:
    def __init__(
        self,
        members: Mapping[str, Member],
        adjacency: Adjacency,
        generations: Mapping[str, int],
        colors: Mapping[str, LineageColor],
        roles: Mapping[str, FamilyRole],
    ) -> None:
        self._members = members
        self._adj = adjacency
        self._generations = generations
        self._colors = colors
        self._roles = roles
        # member id -> where it was expanded
        self._anchors: dict[str, BackLink] = {}
        # members cut off at the nesting limit, waiting to be expanded as roots
        self.continued: list[str] = []

    def sort_key(self, mid: str) -> tuple[int, str, str]:
        m = self._members.get(mid)
        return (self._generations.get(mid, 0), name_sort_key(m.name if m else ""), mid)

    def _sorted(self, ids: Iterable[str]) -> list[str]:
        return sorted((i for i in set(ids) if i in self._members), key=self.sort_key)

    def is_rendered(self, mid: str) -> bool:
        return mid in self._anchors

    def _node(self, mid: str, **kwargs) -> TreeNode:
        m = self._members[mid]
        lc = self._colors.get(mid) or LineageColor()
        return TreeNode(
            member_id=mid,
            name=m.name,
            gender=m.gender,
            role=self._roles.get(mid),
            generation=self._generations.get(mid, 0),
            color=lc.color,
            parent_colors=lc.parent_colors,
            parent_ids=tuple(self._sorted(self._adj.parents_of(mid))),
            **kwargs,
        )

    def _back_link(self, mid: str) -> TreeNode:
        return self._node(mid, back_link=self._anchors[mid])

    def expand_root(self, mid: str) -> TreeNode:
        self._anchors[mid] = BackLink(mid, self._members[mid].name, "root")
        return self._expand(mid, 0)

    def expand_continued(self) -> TreeNode:
        return self._expand(self.continued.pop(0), 0)

    def _expand(self, mid: str, depth: int) -> TreeNode:
        name = self._members[mid].name

        spouse_nodes: list[TreeNode] = []
        rendered_here: list[str] = []
        for sid in self._sorted(self._adj.spouses_of(mid)):
            if sid in self._anchors:
                spouse_nodes.append(self._back_link(sid))
                continue
            self._anchors[sid] = BackLink(mid, name, "spouse")
            rendered_here.append(sid)
            spouse_nodes.append(self._node(sid))

        child_ids: set[str] = set(self._adj.children_of(mid))
        for sid in rendered_here:
            child_ids.update(self._adj.children_of(sid))

        child_nodes: list[TreeNode] = []
        for cid in self._sorted(child_ids):
            if cid in self._anchors:
                child_nodes.append(self._back_link(cid))
                continue
            if depth + 1 >= _MAX_DEPTH:
                child_name = self._members[cid].name
                self._anchors[cid] = BackLink(cid, child_name, "root")
                self.continued.append(cid)
                child_nodes.append(self._node(cid, back_link=BackLink(cid, child_name, "continued")))
                continue
            self._anchors[cid] = BackLink(mid, name, "child")
            child_nodes.append(self._expand(cid, depth + 1))

        return self._node(mid, children=tuple(child_nodes), spouses=tuple(spouse_nodes))


def select_roots(
    members: Mapping[str, Member],
    adjacency: Adjacency,
    generations: Mapping[str, int],
    preferred: Iterable[str] = (),
) -> list[str]:
    """Default root policy for one family scope.

    Roots have no parents in scope. A parentless member married to someone
    with parents in scope is left out (they render as that spouse's partner).
    Parentless partners form one root couple headed by a *preferred* member,
    then the male partner, then by name.
    """

    preferred_ids = set(preferred)

    def _key(mid: str) -> tuple[int, str, str]:
        return (generations.get(mid, 0), name_sort_key(members[mid].name), mid)

    def _primary_key(mid: str) -> tuple[bool, bool, str, str]:
        m = members[mid]
        return (mid not in preferred_ids, m.gender != Gender.MALE, name_sort_key(m.name), mid)

    parentless = [mid for mid in members if not adjacency.parents_of(mid)]
    true_roots = sorted(
        (
            mid
            for mid in parentless
            if not any(adjacency.parents_of(s) for s in adjacency.spouses_of(mid))
        ),
        key=_key,
    )
    true_root_set = set(true_roots)

    out: list[str] = []
    taken: set[str] = set()
    for mid in true_roots:
        if mid in taken:
            continue
        group = {mid} | {s for s in adjacency.spouses_of(mid) if s in true_root_set and s not in taken}
        out.append(min(group, key=_primary_key))
        taken |= group
    return out


def build_tree(
    members: Mapping[str, Member],
    adjacency: Adjacency,
    generations: Mapping[str, int],
    colors: Mapping[str, LineageColor],
    *,
    roles: Mapping[str, FamilyRole] | None = None,
    root_ids: Sequence[str] | None = None,
    preferred: Iterable[str] = (),
) -> tuple[TreeNode, ...]:
    """Build the rooted trees for one scope.

    *members* is the scope. *root_ids* overrides the default root policy
    (:func:`select_roots`). Members no root reaches, which only happens
    with closed ancestor cycles, are appended as extra roots so every member
    of the scope is expanded exactly once.
    """

    if not members:
        return ()

    builder = _TreeBuilder(members, adjacency, generations, colors, roles or {})
    if root_ids is None:
        root_ids = select_roots(members, adjacency, generations, preferred)

    roots: list[TreeNode] = []
    for rid in root_ids:
        if rid not in members or builder.is_rendered(rid):
            continue
        roots.append(builder.expand_root(rid))
        while builder.continued:
            roots.append(builder.expand_continued())

    leftovers = [mid for mid in sorted(members, key=builder.sort_key) if not builder.is_rendered(mid)]
    if leftovers:
        log.info("%d members unreachable from any root; adding them as extra roots", len(leftovers))
    for mid in leftovers:
        if builder.is_rendered(mid):
            continue
        roots.append(builder.expand_root(mid))
        while builder.continued:
            roots.append(builder.expand_continued())

    return tuple(roots)


def _names(ids: Iterable[str], directory: Mapping[str, Member]) -> tuple[str, ...]:
    found = [directory[i] for i in set(ids) if i in directory]
    found.sort(key=lambda m: (name_sort_key(m.name), m.id))
    return tuple(m.name for m in found)


def build_family_forest(
    family: FamilyGroup,
    members: Sequence[Member],
    directory: Mapping[str, Member] | None = None,
) -> FamilyForest:
    """Compute generations and colors for one family and build its forest.

    *members* are the family's own members. *directory* holds every member
    record loaded for this request; spouses found there but outside the
    family are drawn as spouse entries, and relationship names are resolved
    against it.
    """

    lookup: dict[str, Member] = dict(directory or {})
    for m in members:
        lookup.setdefault(m.id, m)

    family_ids = sorted({m.id for m in members})
    scope = set(family_ids)
    for mid in family_ids:
        scope.update(s for s in lookup[mid].spouse_ids if s in lookup)

    adjacency = build_adjacency(lookup.values(), scope)
    generations = compute_generations(scope, adjacency)
    colors = assign_colors(scope, adjacency.parents, generations)

    roles: dict[str, FamilyRole] = {}
    for mid in family_ids:
        roles[mid] = family.role_of(mid) or FamilyRole.MEMBER

    scope_members = {mid: lookup[mid] for mid in scope}
    roots = build_tree(
        scope_members,
        adjacency,
        generations,
        colors,
        roles=roles,
        preferred=family_ids,
    )

    wide = build_adjacency(lookup.values())
    entries: list[MemberEntry] = []
    for mid in sorted(family_ids, key=lambda i: (generations.get(i, 0), name_sort_key(lookup[i].name), i)):
        lc = colors.get(mid) or LineageColor()
        entries.append(
            MemberEntry(
                member=lookup[mid],
                family_id=family.id,
                role=roles[mid],
                generation=generations.get(mid, 0),
                color=lc.color,
                parent_colors=lc.parent_colors,
                parents=_names(wide.parents_of(mid), lookup),
                children=_names(wide.children_of(mid), lookup),
                spouses=_names(wide.spouses_of(mid), lookup),
            )
        )

    log.debug("family %s: %d members, %d roots", family.id, len(entries), len(roots))
    return FamilyForest(
        family_id=family.id,
        family_name=family.name,
        roots=roots,
        entries=tuple(entries),
    )


def build_forest(
    families: Sequence[FamilyGroup],
    members_by_family: Mapping[str, Sequence[Member]],
    directory: Mapping[str, Member] | None = None,
) -> Forest:
    """One forest per family plus the flat member list across all of them."""

    lookup: dict[str, Member] = dict(directory or {})
    for ms in members_by_family.values():
        for m in ms:
            lookup.setdefault(m.id, m)

    ordered = sorted(families, key=lambda f: (name_sort_key(f.name), f.id))
    forests = tuple(
        build_family_forest(f, members_by_family.get(f.id, ()), lookup)
        for f in ordered
    )

    seen: set[str] = set()
    flat: list[MemberEntry] = []
    for ff in forests:
        for entry in ff.entries:
            if entry.id in seen:
                continue
            seen.add(entry.id)
            flat.append(entry)

    return Forest(families=forests, members=tuple(flat))
