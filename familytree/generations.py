"""Generation numbers relative to the root members of a scope.

A member with no parents is generation 0; anyone else is one below their
deepest parent. Stored edges are not guaranteed acyclic, so the walk keeps
the current ancestor path and treats a parent already on that path as
generation 0 for that branch instead of following it. Unknown parent ids
have no parents of their own and therefore also count as 0.

Results are memoized per member id, so every member's parents are read once
per pass however many descendants share them. Because of the memo, when a
cycle is present the numbers inside the cycle depend on which member the
walk entered it from; ``member_ids`` order is what makes that deterministic.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

try:
    from .graph import Adjacency
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from graph import Adjacency

log = logging.getLogger(__name__)


def assign_generations(
    member_ids: Iterable[str],
    parents_of: Mapping[str, Iterable[str]],
    *,
    base: Mapping[str, int] | None = None,
) -> dict[str, int]:
    """Return member id -> generation for every id in *member_ids*.

    *base* overrides the generation of parentless members (default 0).
    Never raises on malformed adjacency.
    """

    order = list(member_ids)
    memo: dict[str, int] = {}
    cycles = 0

    for start in order:
        if start in memo:
            continue

        on_path: set[str] = {start}
        # Frame: [member_id, parent ids, next parent index, deepest parent generation so far]
        frames: list[list] = [[start, list(parents_of.get(start, ())), 0, -1]]

        while frames:
            frame = frames[-1]
            mid, parents, idx, deepest = frame

            if idx < len(parents):
                frame[2] = idx + 1
                pid = parents[idx]
                if pid in memo:
                    frame[3] = max(deepest, memo[pid])
                elif pid in on_path:
                    cycles += 1
                    frame[3] = max(deepest, 0)
                else:
                    on_path.add(pid)
                    frames.append([pid, list(parents_of.get(pid, ())), 0, -1])
                continue

            if parents:
                gen = deepest + 1
            else:
                gen = int(base.get(mid, 0)) if base else 0

            memo[mid] = gen
            on_path.discard(mid)
            frames.pop()
            if frames:
                frames[-1][3] = max(frames[-1][3], gen)

    if cycles:
        log.warning("ancestor cycles cut %d times while assigning generations", cycles)

    return {mid: memo[mid] for mid in order}


def align_spouse_generations(
    member_ids: Iterable[str],
    parents_of: Mapping[str, Iterable[str]],
    spouses_of: Mapping[str, Iterable[str]],
    generations: Mapping[str, int],
) -> dict[str, int]:
    """Place parentless members on the same generation as their partner.

    Only partners who have parents in scope pull a member down; two
    parentless partners both stay at 0. Descendants are recomputed so they
    stay one below their deepest parent, and a lift can move a partner
    further down the same chain, so lifting repeats until nothing changes.

    A member married to their own descendant never settles; after one round
    per member the last numbers are kept and the loop is logged.
    """

    order = list(member_ids)
    current = {mid: generations.get(mid, 0) for mid in order}
    parentless = [mid for mid in order if not parents_of.get(mid)]

    for _ in range(len(order) + 1):
        base: dict[str, int] = {}
        for mid in parentless:
            partner_gens = [
                current.get(sid, generations.get(sid, 0))
                for sid in spouses_of.get(mid, ())
                if parents_of.get(sid)
            ]
            if partner_gens:
                base[mid] = max(partner_gens)

        if all(current.get(mid) == gen for mid, gen in base.items()):
            return current
        current = assign_generations(order, parents_of, base=base)

    log.warning("spouse generations did not settle across %d members; keeping last pass", len(order))
    return current


def compute_generations(member_ids: Iterable[str], adjacency: Adjacency) -> dict[str, int]:
    order = sorted(set(member_ids))
    raw = assign_generations(order, adjacency.parents)
    out = align_spouse_generations(order, adjacency.parents, adjacency.spouses, raw)
    log.debug("assigned generations for %d members (max %d)", len(out), max(out.values(), default=0))
    return out
