"""Decide what each local row needs on the remote side.

Matching order for a row: identity key, then binding fingerprint, then
display name.  A matched page is updated only when its fingerprint
differs.  A row that matches nothing but whose command is already filed
under another binding is a rebind.  Everything else is a create, unless
``update_only`` holds creates back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from notio_index import IdentityIndex, IdentityRecord
from notio_rows import Row, canonical_command_key, is_builtin_command

CREATE = "create"
UPDATE = "update"
REBIND = "rebind"
SKIP_SAME = "skip_same"
SKIP_BUILTIN = "skip_builtin"
SKIP_NO_MATCH = "skip_no_match"

OPERATIONS = [CREATE, UPDATE, REBIND, SKIP_SAME, SKIP_BUILTIN, SKIP_NO_MATCH]
MUTATING = frozenset({CREATE, UPDATE, REBIND})


@dataclass(frozen=True)
class PlanItem:
    operation: str
    row: Row
    matched_remote_id: Optional[str] = None
    matched_via: Optional[str] = None
    previous_identity: Optional[str] = None

    @property
    def is_skip(self) -> bool:
        return self.operation not in MUTATING


def empty_stats() -> Dict[str, int]:
    return {op: 0 for op in OPERATIONS}


def match_row(row: Row, index: IdentityIndex) -> Tuple[Optional[IdentityRecord], Optional[str]]:
    lookups = [
        ("identity", index.by_identity, row.identity_key),
        ("binding", index.by_identity, row.binding_fingerprint),
        ("name", index.by_name, row.display_name),
    ]
    for via, table, key in lookups:
        if key and key in table:
            return table[key], via
    return None, None


def classify_row(
    row: Row, index: IdentityIndex, builtin_sentinel: str, update_only: bool = False
) -> PlanItem:
    if is_builtin_command(row.command_text, builtin_sentinel):
        return PlanItem(SKIP_BUILTIN, row)

    record, via = match_row(row, index)
    if record is not None:
        if record.is_builtin:
            return PlanItem(SKIP_BUILTIN, row, record.remote_id, via)
        same = row.binding_fingerprint == record.have_fingerprint()
        return PlanItem(SKIP_SAME if same else UPDATE, row, record.remote_id, via)

    by_cmd = index.by_command.get(canonical_command_key(row.command_text))
    if by_cmd is not None and not by_cmd.is_builtin:
        same = row.binding_fingerprint == by_cmd.have_fingerprint()
        return PlanItem(
            SKIP_SAME if same else REBIND,
            row,
            by_cmd.remote_id,
            "command",
            previous_identity=by_cmd.identity_key,
        )

    if update_only:
        return PlanItem(SKIP_NO_MATCH, row)
    return PlanItem(CREATE, row)


def compute_plan(
    rows: Sequence[Row],
    index: IdentityIndex,
    builtin_sentinel: str,
    update_only: bool = False,
) -> Tuple[List[PlanItem], Dict[str, int]]:
    plan: List[PlanItem] = []
    stats = empty_stats()
    for row in rows:
        item = classify_row(row, index, builtin_sentinel, update_only)
        plan.append(item)
        stats[item.operation] += 1
    return plan, stats


def summarize(stats: Dict[str, int]) -> str:
    return " ".join(f"{op}={stats.get(op, 0)}" for op in OPERATIONS)


def render_plan(plan: Sequence[PlanItem], stats: Dict[str, int]) -> List[str]:
    lines = [
        f"# notio dry list ({len(plan)} rows: {summarize(stats)})",
        "",
        f"{'op':<14} {'mode':<10} {'scope':<8} {'type':<10} {'category':<12} name",
        "-" * 76,
    ]
    for item in plan:
        row = item.row
        lines.append(
            f"{item.operation:<14} {(row.modes[0] if row.modes else '?'):<10} "
            f"{row.scope or '?':<8} {row.type or '?':<10} {row.category or '?':<12} {row.display_name}"
        )
    return lines
