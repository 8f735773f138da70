from __future__ import annotations

import colorsys
import hashlib
import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

try:
    from .generations import assign_generations
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from generations import assign_generations

log = logging.getLogger(__name__)

_GOLDEN_ANGLE_DEG = 137.50776405003785

# (lightness, saturation) bands cycled every few hues so neighbours in issue
# order differ in more than hue alone.
_BANDS = ((0.45, 0.70), (0.60, 0.80), (0.35, 0.60))

_MAX_ATTEMPTS = 32
_MAX_FALLBACK_SALTS = 256


@dataclass(frozen=True)
class LineageColor:
    color: str | None = None
    parent_colors: tuple[str, ...] = ()


def _hls_hex(hue_deg: float, lightness: float, saturation: float) -> str:
    r, g, b = colorsys.hls_to_rgb((hue_deg % 360.0) / 360.0, lightness, saturation)
    return "#{:02x}{:02x}{:02x}".format(round(r * 255), round(g * 255), round(b * 255))


def _hash_color(seed: str) -> str:
    digest = hashlib.sha256(seed.encode("utf-8")).hexdigest()
    return "#" + digest[:6]


class ColorGenerator:
    """Issues mutually distinct hex colors for one computation pass."""

    def __init__(self) -> None:
        self._issued: set[str] = set()
        self._step = 0

    @property
    def issued(self) -> frozenset[str]:
        return frozenset(self._issued)

    def _candidate(self) -> str:
        step = self._step
        self._step += 1
        lightness, saturation = _BANDS[(step // 7) % len(_BANDS)]
        return _hls_hex(step * _GOLDEN_ANGLE_DEG, lightness, saturation)

    def next_color(self, seed: str) -> str:
        for _ in range(_MAX_ATTEMPTS):
            color = self._candidate()
            if color not in self._issued:
                self._issued.add(color)
                return color

        log.warning("palette exhausted after %d attempts; using hash color for %s", _MAX_ATTEMPTS, seed)
        color = _hash_color(seed)
        for salt in range(1, _MAX_FALLBACK_SALTS + 1):
            if color not in self._issued:
                break
            color = _hash_color(f"{seed}:{salt}")
        self._issued.add(color)
        return color


def assign_colors(
    member_ids: Iterable[str],
    parents_of: Mapping[str, Iterable[str]],
    generations: Mapping[str, int] | None = None,
) -> dict[str, LineageColor]:
    """Color every root and propagate root colors down to descendants.

    Roots are members with no parents among *member_ids*. Each root gets its
    own color; every other member gets the sorted, duplicate-free union of
    the colors its parents carry (a root parent's own color, otherwise that
    parent's inherited colors). Members are visited in generation order so
    parents are resolved first.
    """

    order = sorted(set(member_ids))
    scope = set(order)
    if generations is None:
        generations = assign_generations(order, parents_of)

    def _scoped_parents(mid: str) -> list[str]:
        return [p for p in parents_of.get(mid, ()) if p in scope and p != mid]

    ordered = sorted(order, key=lambda m: (generations.get(m, 0), m))
    roots = {m for m in order if not _scoped_parents(m)}

    palette = ColorGenerator()
    out: dict[str, LineageColor] = {}
    for mid in ordered:
        if mid in roots:
            out[mid] = LineageColor(color=palette.next_color(mid))

    for mid in ordered:
        if mid in roots:
            continue
        inherited: set[str] = set()
        for pid in _scoped_parents(mid):
            parent = out.get(pid)
            if parent is None:
                # Not resolved yet: only possible inside an ancestor cycle.
                continue
            if parent.color:
                inherited.add(parent.color)
            else:
                inherited.update(parent.parent_colors)
        out[mid] = LineageColor(parent_colors=tuple(sorted(inherited)))

    log.debug("colored %d roots across %d members", len(roots), len(order))
    return out
