"""Narrative and tabular renderings of a normalized forest.

Everything below the header block is a pure function of the forest and the
options, so two exports of the same data differ only in the timestamp line.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

try:
    from .errors import UnsupportedFormat
    from .models import Gender
    from .tree import FamilyForest, Forest, MemberEntry, TreeNode
except ImportError:  # pragma: no cover
    # Support running with CWD=familytree (e.g., `python -m uvicorn main:app`).
    from errors import UnsupportedFormat
    from models import Gender
    from tree import FamilyForest, Forest, MemberEntry, TreeNode

log = logging.getLogger(__name__)


class ExportTarget(str, Enum):
    NARRATIVE = "narrative"
    TABULAR = "tabular"

    @classmethod
    def parse(cls, raw: Any) -> "ExportTarget":
        s = str(raw or "").strip().lower()
        if s in ("narrative", "document", "pdf", "text"):
            return cls.NARRATIVE
        if s in ("tabular", "csv", "excel"):
            return cls.TABULAR
        raise UnsupportedFormat("target", raw)


class TreeStructure(str, Enum):
    FOLDER_TREE = "folderTree"
    TRADITIONAL = "traditional"
    TEXT_TREE = "textTree"


class MemberDetail(str, Enum):
    PARENT = "parent"
    CHILDREN = "children"
    SPOUSES = "spouses"
    PERSONAL_INFO = "personalInfo"
    CONTACT = "contact"


_RELATIONSHIP_DETAILS = (MemberDetail.PARENT, MemberDetail.CHILDREN, MemberDetail.SPOUSES)


def _parse_enum(enum_cls: type[Enum], raw: Any, field: str) -> Any:
    for item in enum_cls:
        if item.value == raw:
            return item
    raise UnsupportedFormat(field, raw)


@dataclass(frozen=True)
class ExportOptions:
    structure: TreeStructure = TreeStructure.FOLDER_TREE
    include_members_list: bool = False
    member_details: frozenset[MemberDetail] = frozenset()

    def wants(self, detail: MemberDetail) -> bool:
        return detail in self.member_details

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "ExportOptions":
        """Parse the export configuration surface.

        Accepts ``{structure, includeMembersList, memberDetails}`` either at
        the top level or nested under ``familyTree``, plus the older
        ``includeData`` switches (relationships, personalInfo, contactInfo).
        Unknown structure or detail names raise :class:`UnsupportedFormat`.
        """

        payload = payload or {}
        tree_cfg = payload.get("familyTree")
        if not isinstance(tree_cfg, Mapping):
            tree_cfg = payload

        structure_raw = tree_cfg.get("structure") or TreeStructure.FOLDER_TREE.value
        structure = _parse_enum(TreeStructure, structure_raw, "structure")

        details_raw = tree_cfg.get("memberDetails") or []
        if not isinstance(details_raw, (list, tuple, set, frozenset)):
            raise UnsupportedFormat("memberDetails", details_raw)
        details = {_parse_enum(MemberDetail, d, "memberDetails") for d in details_raw}

        include_data = payload.get("includeData")
        if isinstance(include_data, Mapping):
            if include_data.get("relationships"):
                details.update(_RELATIONSHIP_DETAILS)
            if include_data.get("personalInfo"):
                details.add(MemberDetail.PERSONAL_INFO)
            if include_data.get("contactInfo"):
                details.add(MemberDetail.CONTACT)

        return cls(
            structure=structure,
            include_members_list=bool(tree_cfg.get("includeMembersList", False)),
            member_details=frozenset(details),
        )


@dataclass(frozen=True)
class ExportArtifact:
    filename: str
    content_type: str
    body: bytes


_CONTENT_TYPES = {
    ExportTarget.NARRATIVE: ("text/plain; charset=utf-8", "txt"),
    ExportTarget.TABULAR: ("text/csv; charset=utf-8", "csv"),
}

_RULE = "=" * 80
_THIN_RULE = "-" * 80

_STRUCTURAL_CHARS = frozenset(',;:"()[]+&\\\n\r')

_GENDER_SYMBOLS = {
    Gender.MALE: "\u2642",
    Gender.FEMALE: "\u2640",
}
_NEUTRAL_SYMBOL = "\u26b2"
_MARRIAGE_SYMBOL = "\u26ad"


def _quote(value: str) -> str:
    """Quote a narrative value that would otherwise read as structure."""

    if (
        value
        and value == value.strip()
        and not value.startswith("-")
        and not (_STRUCTURAL_CHARS & set(value))
    ):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '""').replace("\r", "\\r").replace("\n", "\\n")
    return f'"{escaped}"'


def _gender_symbol(gender: Gender) -> str:
    return _GENDER_SYMBOLS.get(gender, _NEUTRAL_SYMBOL)


def _personal_fields(entry: MemberEntry, options: ExportOptions) -> list[tuple[str, str]]:
    info = entry.personal_info
    out: list[tuple[str, str]] = []
    if options.wants(MemberDetail.PERSONAL_INFO):
        out += [
            ("Bio", info.bio or ""),
            ("Birth Date", info.birth_date or ""),
            ("Birth Place", info.birth_place or ""),
            ("Occupation", info.occupation or ""),
        ]
    if options.wants(MemberDetail.CONTACT):
        out += [("Phone", info.phone or ""), ("Email", info.email or "")]
    return out


def _relationship_fields(entry: MemberEntry, options: ExportOptions) -> list[tuple[str, tuple[str, ...]]]:
    out: list[tuple[str, tuple[str, ...]]] = []
    if options.wants(MemberDetail.PARENT):
        out.append(("Parents", entry.parents))
    if options.wants(MemberDetail.CHILDREN):
        out.append(("Children", entry.children))
    if options.wants(MemberDetail.SPOUSES):
        out.append(("Spouses", entry.spouses))
    return out


# ---------------------------------------------------------------------------
# Narrative
# ---------------------------------------------------------------------------


def _generation_groups(ff: FamilyForest, options: ExportOptions) -> list[str]:
    lines: list[str] = []
    by_generation: dict[int, list[MemberEntry]] = {}
    for entry in ff.entries:
        by_generation.setdefault(entry.generation, []).append(entry)

    for generation in sorted(by_generation):
        lines.append(f"Generation {generation}:")
        for entry in by_generation[generation]:
            lines.append(f"  - {_quote(entry.name)} ({entry.role.value})")
            for label, names in _relationship_fields(entry, options):
                if names:
                    lines.append(f"      {label}: " + ", ".join(_quote(n) for n in names))
            for label, value in _personal_fields(entry, options):
                if value:
                    lines.append(f"      {label}: {_quote(value)}")
        lines.append("")
    return lines


def _node_label(node: TreeNode, *, symbols: bool) -> str:
    label = _quote(node.name)
    if symbols:
        label += f" {_gender_symbol(node.gender)}"
    if node.back_link is not None:
        if node.back_link.relation == "continued":
            return f"{label} ({node.back_link.describe()})"
        return f"{label} (see above: {node.back_link.describe()})"

    partners = []
    for s in node.spouses:
        partner = _quote(s.name)
        if symbols:
            partner += f" {_gender_symbol(s.gender)}"
        if s.back_link is not None:
            partner += f" (see above: {s.back_link.describe()})"
        partners.append(partner)
    if partners:
        marker = _MARRIAGE_SYMBOL if symbols else "+"
        label += f" {marker} " + " & ".join(partners)
    return label


def _box_tree(node: TreeNode, prefix: str, is_last: bool, lines: list[str]) -> None:
    connector = "\u2514\u2500\u2500 " if is_last else "\u251c\u2500\u2500 "
    lines.append(f"{prefix}{connector}{_node_label(node, symbols=True)} [Generation {node.generation}]")
    child_prefix = prefix + ("    " if is_last else "\u2502   ")
    for idx, child in enumerate(node.children):
        _box_tree(child, child_prefix, idx == len(node.children) - 1, lines)


def _outline(node: TreeNode, depth: int, lines: list[str]) -> None:
    role = f" ({node.role.value})" if node.role is not None and node.back_link is None else ""
    lines.append(f"{'  ' * depth}{_node_label(node, symbols=False)}{role}")
    for child in node.children:
        _outline(child, depth + 1, lines)


def _family_section(ff: FamilyForest, options: ExportOptions) -> list[str]:
    lines = [f"Family: {_quote(ff.family_name)}", _THIN_RULE]
    if not ff.entries:
        lines += ["(no members)", ""]
        return lines

    if options.structure == TreeStructure.FOLDER_TREE:
        return lines + _generation_groups(ff, options)

    tree_lines: list[str] = []
    if options.structure == TreeStructure.TEXT_TREE:
        for idx, root in enumerate(ff.roots):
            _box_tree(root, "", idx == len(ff.roots) - 1, tree_lines)
    else:
        for root in ff.roots:
            _outline(root, 0, tree_lines)
    lines += tree_lines + [""]

    lines += ["Members by generation:"] + _generation_groups(ff, options)
    return lines


def _members_list(forest: Forest) -> list[str]:
    lines = ["Members List", _THIN_RULE]
    for entry in forest.members:
        lines.append(f"  - {_quote(entry.name)} (Generation {entry.generation})")
    lines.append("")
    return lines


def render_narrative(forest: Forest, options: ExportOptions, generated_at: datetime) -> str:
    lines = [
        "FAMILY TREE EXPORT",
        f"Generated on: {generated_at.isoformat(timespec='seconds')}",
        f"Structure: {options.structure.value}",
        _RULE,
        "",
    ]
    if forest.is_empty:
        lines += ["(no families to show)", ""]
    for ff in forest.families:
        lines += _family_section(ff, options)
    if options.include_members_list and forest.members:
        lines += _members_list(forest)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Tabular
# ---------------------------------------------------------------------------

_BASE_COLUMNS = ("Family", "Member", "Role", "Generation")
_HEADER_PREFIX = "#"


def tabular_columns(options: ExportOptions) -> list[str]:
    cols = list(_BASE_COLUMNS)
    if options.wants(MemberDetail.PARENT):
        cols.append("Parents")
    if options.wants(MemberDetail.CHILDREN):
        cols.append("Children")
    if options.wants(MemberDetail.SPOUSES):
        cols.append("Spouses")
    if options.wants(MemberDetail.PERSONAL_INFO):
        cols += ["Bio", "Birth Date", "Birth Place", "Occupation"]
    if options.wants(MemberDetail.CONTACT):
        cols += ["Phone", "Email"]
    return cols


def _tabular_row(ff: FamilyForest, entry: MemberEntry, options: ExportOptions) -> list[Any]:
    row: list[Any] = [ff.family_name, entry.name, entry.role.value, entry.generation]
    for _label, names in _relationship_fields(entry, options):
        row.append("; ".join(names))
    for _label, value in _personal_fields(entry, options):
        row.append(value)
    return row


def render_tabular(forest: Forest, options: ExportOptions, generated_at: datetime) -> str:
    buf = io.StringIO()
    buf.write(f"{_HEADER_PREFIX} Family tree export generated {generated_at.isoformat(timespec='seconds')}\n")
    writer = csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow(tabular_columns(options))
    for ff in forest.families:
        for entry in ff.entries:
            writer.writerow(_tabular_row(ff, entry, options))
    return buf.getvalue()


def parse_tabular(body: bytes | str) -> list[dict[str, Any]]:
    """Read back the data rows of a tabular export (header comment skipped)."""

    text = body.decode("utf-8") if isinstance(body, bytes) else body
    lines = text.split("\n")
    while lines and lines[0].startswith(_HEADER_PREFIX):
        lines.pop(0)

    rows: list[dict[str, Any]] = []
    for rec in csv.DictReader(io.StringIO("\n".join(lines))):
        gen = rec.get("Generation")
        if gen is not None and gen.lstrip("-").isdigit():
            rec["Generation"] = int(gen)
        rows.append(rec)
    return rows


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def format_export(
    forest: Forest,
    options: ExportOptions,
    target: ExportTarget | str,
    *,
    generated_at: datetime | None = None,
) -> ExportArtifact:
    """Render *forest* for *target*; unknown targets are rejected up front."""

    target = ExportTarget.parse(target.value if isinstance(target, ExportTarget) else target)
    stamp = generated_at or datetime.now(timezone.utc)

    if target == ExportTarget.TABULAR:
        text = render_tabular(forest, options, stamp)
    else:
        text = render_narrative(forest, options, stamp)

    content_type, ext = _CONTENT_TYPES[target]
    filename = f"family-tree-{target.value}-{stamp.date().isoformat()}.{ext}"
    log.info(
        "rendered %s export: %d families, %d bytes",
        target.value,
        len(forest.families),
        len(text.encode("utf-8")),
    )
    return ExportArtifact(filename=filename, content_type=content_type, body=text.encode("utf-8"))

