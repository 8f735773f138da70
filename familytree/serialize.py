from __future__ import annotations

from typing import Any

try:
    from .tree import FamilyForest, Forest, MemberEntry, TreeNode
    from .util import _compact_json
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from tree import FamilyForest, Forest, MemberEntry, TreeNode
    from util import _compact_json


def _tree_node_to_public(node: TreeNode) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": node.member_id,
        "name": node.name,
        "gender": node.gender.value,
        "role": node.role.value if node.role is not None else None,
        "generation": node.generation,
        "color": node.color,
        "parent_colors": list(node.parent_colors),
        "parent_ids": list(node.parent_ids),
    }
    if node.back_link is not None:
        out["back_link"] = {
            "anchor_id": node.back_link.anchor_id,
            "relation": node.back_link.relation,
            "label": node.back_link.describe(),
        }
        return out

    out["spouses"] = [_tree_node_to_public(s) for s in node.spouses]
    out["children"] = [_tree_node_to_public(c) for c in node.children]
    return out


def _member_entry_to_public(entry: MemberEntry) -> dict[str, Any]:
    info = entry.personal_info
    return {
        "id": entry.id,
        "name": entry.name,
        "gender": entry.member.gender.value,
        "status": entry.member.status.value,
        "role": entry.role.value,
        "generation": entry.generation,
        "color": entry.color,
        "parent_colors": list(entry.parent_colors),
        "parents": list(entry.parents),
        "children": list(entry.children),
        "spouses": list(entry.spouses),
        "personal_info": _compact_json(
            {
                "bio": info.bio,
                "birth_date": info.birth_date,
                "birth_place": info.birth_place,
                "occupation": info.occupation,
                "social_links": dict(info.social_links),
            }
        ),
    }


def _family_forest_to_public(ff: FamilyForest) -> dict[str, Any]:
    # Generation 0 always survives compaction: _compact_json keeps 0/False.
    return {
        "id": ff.family_id,
        "name": ff.family_name,
        "roots": [_compact_json(_tree_node_to_public(r)) for r in ff.roots],
        "members": [_compact_json(_member_entry_to_public(e)) for e in ff.entries],
    }


def _forest_to_public(forest: Forest) -> dict[str, Any]:
    return {
        "families": [_family_forest_to_public(ff) for ff in forest.families],
        "members_list": [_compact_json(_member_entry_to_public(e)) for e in forest.members],
    }
