from __future__ import annotations

from typing import Any, Mapping, Sequence

try:
    from .graph import Adjacency
    from .models import Gender, Member, MemberStatus
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from graph import Adjacency
    from models import Gender, Member, MemberStatus


def compute_statistics(
    members: Sequence[Member],
    generations: Mapping[str, int],
    adjacency: Adjacency,
) -> dict[str, Any]:
    """Summary numbers for one family scope.

    ``total_generations`` counts distinct depth levels (max - min + 1), so a
    family of only roots has one generation and an empty family has zero.
    """

    total = len(members)
    gens = [generations.get(m.id, 0) for m in members]
    total_children = sum(len(adjacency.children_of(m.id)) for m in members)

    gender_distribution = {g.value: 0 for g in Gender}
    status_distribution = {s.value: 0 for s in MemberStatus}
    for m in members:
        gender_distribution[m.gender.value] += 1
        status_distribution[m.status.value] += 1

    dated = [(m.personal_info.birth_year, m) for m in members if m.personal_info.birth_year is not None]
    dated.sort(key=lambda t: (t[0], t[1].id))

    def _summary(t: tuple[int, Member] | None) -> dict[str, Any] | None:
        if t is None:
            return None
        year, m = t
        return {"id": m.id, "name": m.name, "birth_year": year}

    return {
        "total_members": total,
        "total_generations": (max(gens) - min(gens) + 1) if gens else 0,
        "average_children_per_member": (total_children / total) if total else 0.0,
        "gender_distribution": gender_distribution,
        "status_distribution": status_distribution,
        "oldest_member": _summary(dated[0] if dated else None),
        "youngest_member": _summary(dated[-1] if dated else None),
    }
