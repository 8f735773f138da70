from __future__ import annotations

import json

from familytree.colors import assign_colors
from familytree.export import ExportOptions, TreeStructure, format_export
from familytree.generations import compute_generations
from familytree.graph import build_adjacency
from familytree.models import FamilyGroup, FamilyRole, Gender, Membership
from familytree.serialize import _forest_to_public
from familytree.tree import _MAX_DEPTH, build_family_forest, build_forest, build_tree, name_sort_key, select_roots


def _family(fid: str, name: str, member_ids) -> FamilyGroup:
    return FamilyGroup(
        id=fid,
        name=name,
        memberships=tuple(Membership(family_id=fid, member_id=mid) for mid in member_ids),
    )


def _expanded_ids(roots) -> list[str]:
    return [n.member_id for r in roots for n in r.walk() if not n.is_back_link]


def test_scenario_root_children_and_spouse(family_f, family_f_members) -> None:
    ff = build_family_forest(family_f, list(family_f_members.values()))

    assert [r.member_id for r in ff.roots] == ["A"]
    root = ff.roots[0]
    assert root.generation == 0
    assert root.role == FamilyRole.HEAD
    assert [c.member_id for c in root.children] == ["B", "C"]

    bert = root.children[0]
    assert bert.generation == 1
    assert [s.member_id for s in bert.spouses] == ["D"]
    assert bert.spouses[0].generation == 1

    by_id = {e.id: e for e in ff.entries}
    assert by_id["D"].generation == 1
    assert by_id["B"].spouses == ("Dora",)
    assert by_id["A"].children == ("Bert", "Carl")


def test_children_sorted_by_generation_then_folded_name(make_members) -> None:
    members = make_members(
        {"R": "Root", "z": "zoë", "e": "Émile", "a": "adam"},
        parents=[("z", "R"), ("e", "R"), ("a", "R")],
    )
    ff = build_family_forest(_family("F", "F", members), list(members.values()))
    assert [c.name for c in ff.roots[0].children] == ["adam", "Émile", "zoë"]


def test_name_sort_key_folds_accents_and_case() -> None:
    assert name_sort_key("Émile") == name_sort_key("emile")
    assert name_sort_key(None) == ""


def test_shared_child_of_remarried_parent_expands_once(make_members) -> None:
    # P has two spouses; K is a child of P and S1 and is reachable through
    # P's own children and S1's children.
    members = make_members(
        {"P": "Pat", "S1": "Sue", "S2": "Sal", "K": "Kim", "J": "Jo"},
        parents=[("K", "P"), ("K", "S1"), ("J", "P"), ("J", "S2")],
        spouses=[("P", "S1"), ("P", "S2")],
        genders={"P": Gender.MALE},
    )
    ff = build_family_forest(_family("F", "F", members), list(members.values()))

    expanded = _expanded_ids(ff.roots)
    assert sorted(expanded) == sorted(members)
    assert len(expanded) == len(set(expanded))
    assert [r.member_id for r in ff.roots] == ["P"]


def test_repeat_reference_becomes_back_link(make_members) -> None:
    # Two root couples whose children married: the second root reaches the
    # married child again through its own child's spouse list.
    members = make_members(
        {"A": "Al", "B": "Bo", "C": "Cy", "D": "Di"},
        parents=[("C", "A"), ("D", "B")],
        spouses=[("C", "D")],
    )
    adj = build_adjacency(members.values())
    gens = compute_generations(members, adj)
    colors = assign_colors(members, adj.parents, gens)
    roots = build_tree(members, adj, gens, colors)

    assert [r.member_id for r in roots] == ["A", "B"]
    cy = roots[0].children[0]
    assert cy.spouses[0].member_id == "D"
    assert not cy.spouses[0].is_back_link

    di_again = roots[1].children[0]
    assert di_again.member_id == "D"
    assert di_again.is_back_link
    assert di_again.back_link.describe() == "shown under Spouses of Cy"

    expanded = _expanded_ids(roots)
    assert len(expanded) == len(set(expanded)) == 4


def test_root_couple_prefers_family_member_then_male(make_members) -> None:
    members = make_members(
        {"W": "Wanda", "H": "Hank", "K": "Kid"},
        parents=[("K", "W"), ("K", "H")],
        spouses=[("W", "H")],
        genders={"W": Gender.FEMALE, "H": Gender.MALE},
    )
    adj = build_adjacency(members.values())
    gens = compute_generations(members, adj)

    assert select_roots(members, adj, gens) == ["H"]
    assert select_roots(members, adj, gens, preferred=["W"]) == ["W"]


def test_parents_outside_family_make_a_root(make_members) -> None:
    members = make_members(
        {"G": "Gran", "P": "Pia", "C": "Cas"},
        parents=[("P", "G"), ("C", "P")],
    )
    fam = _family("F", "F", ["P", "C"])
    ff = build_family_forest(fam, [members["P"], members["C"]], members)

    assert [r.member_id for r in ff.roots] == ["P"]
    assert ff.roots[0].generation == 0
    by_id = {e.id: e for e in ff.entries}
    # Relationship names still mention the out-of-family parent.
    assert by_id["P"].parents == ("Gran",)


def test_cycle_members_become_extra_roots(make_members) -> None:
    members = make_members({"A": "Ann", "B": "Ben"}, parents=[("A", "B"), ("B", "A")])
    ff = build_family_forest(_family("F", "F", members), list(members.values()))
    expanded = _expanded_ids(ff.roots)
    assert sorted(expanded) == ["A", "B"]


def test_empty_scope_gives_empty_forest() -> None:
    assert build_tree({}, build_adjacency([]), {}, {}) == ()
    forest = build_forest([], {})
    assert forest.is_empty
    assert forest.members == ()


def test_forest_members_are_deduplicated_across_families(make_members) -> None:
    members = make_members({"A": "Ann", "B": "Ben"}, parents=[("B", "A")])
    f1 = _family("F1", "Alpha", ["A", "B"])
    f2 = _family("F2", "Beta", ["B"])
    forest = build_forest(
        [f2, f1],
        {"F1": [members["A"], members["B"]], "F2": [members["B"]]},
        members,
    )

    assert [ff.family_name for ff in forest.families] == ["Alpha", "Beta"]
    assert [e.id for e in forest.members] == ["A", "B"]


def _max_nesting(root) -> int:
    deepest = 0
    stack = [(root, 0)]
    while stack:
        node, depth = stack.pop()
        deepest = max(deepest, depth)
        stack.extend((c, depth + 1) for c in node.children)
    return deepest


def test_deep_chain_continues_as_extra_roots(make_members, fixed_now) -> None:
    ids = [f"M{i:04d}" for i in range(1200)]
    members = make_members(
        {mid: f"Gen {i}" for i, mid in enumerate(ids)},
        parents=list(zip(ids[1:], ids)),
    )
    forest = build_forest([_family("F", "Chain", ids)], {"F": list(members.values())}, members)
    ff = forest.families[0]

    assert [r.member_id for r in ff.roots] == ids[:: _MAX_DEPTH]
    assert sorted(_expanded_ids(ff.roots)) == ids
    assert all(_max_nesting(r) <= _MAX_DEPTH for r in ff.roots)
    assert ff.roots[-1].generation == 1100

    # The cut-off child is left in place as a pointer to its own root.
    tail = ff.roots[0]
    for _ in range(_MAX_DEPTH):
        tail = tail.children[0]
    assert tail.member_id == ids[_MAX_DEPTH]
    assert tail.is_back_link
    assert tail.back_link.describe() == f"continued as root Gen {_MAX_DEPTH}"

    for structure in TreeStructure:
        opts = ExportOptions(structure=structure)
        text = format_export(forest, opts, "narrative", generated_at=fixed_now).body.decode("utf-8")
        assert "Gen 1199" in text
        if structure != TreeStructure.FOLDER_TREE:
            assert "(continued as root Gen 100)" in text
    assert len(json.dumps(_forest_to_public(forest))) > 0
