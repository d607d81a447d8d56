"""Turn collected keymap records into canonical rows.

Records sharing a ``(scope_flag, lhs)`` pair collapse into one row whose
modes are the union of the records' modes.  Every other field comes from
the first record seen for that pair.  Once all records are consumed each
row gets its identity key (``<mode class>|<lhs>|<scope>``) and binding
fingerprint (``<type>|<prefix>|<lhs>``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from notio_classify import classify, looks_builtin, normalize_lhs
from notio_config import Config, debug_log

MODE_NAMES: Dict[str, str] = {
    "n": "Normal",
    "v": "Visual",
    "x": "Visual-Select",
    "s": "Select",
    "i": "Insert",
    "c": "Command",
    "t": "Terminal",
    "o": "Operator-pending",
}
MODE_KEYS: Dict[str, str] = {name.lower(): key for key, name in MODE_NAMES.items()}

VISUAL_FAMILY = frozenset({"v", "x", "s"})
VISUAL_CLASS = "V"
MODE_CLASS_PRIORITY = [VISUAL_CLASS, "i", "c", "t", "o", "n"]

CALLBACK_MARKER = "<lua-callback>"

SCOPE_GLOBAL = "Global"
SCOPE_BUFFER = "Buffer"
SCOPE_PROJECT = "Project"

PLUGIN_COMMAND_PATTERN = re.compile(r"^plugin:\s*(.+)$")


@dataclass
class RawRecord:
    mode: str
    lhs: str
    description: str = ""
    rhs_or_callback_marker: str = ""
    origin_path: str = ""
    scope_flag: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "RawRecord":
        def text(*keys: str) -> str:
            for key in keys:
                value = data.get(key)
                if value:
                    return str(value)
            return ""

        scope = data.get("scope_flag", data.get("buffer", 0)) or 0
        return cls(
            mode=text("mode"),
            lhs=text("lhs"),
            description=text("description", "desc"),
            rhs_or_callback_marker=text("rhs_or_callback_marker", "rhs"),
            origin_path=text("origin_path", "origin"),
            scope_flag=1 if int(scope) else 0,
        )


@dataclass(frozen=True)
class Row:
    display_name: str
    lhs_normalized: str
    modes: Tuple[str, ...]
    mode_keys: Tuple[str, ...]
    scope: str
    scope_flag: int
    type: str
    prefix: str
    category: str
    plugin: Optional[str]
    command_text: str
    description: str
    action_suffix: str
    mode_class: str
    identity_key: str
    binding_fingerprint: str


@dataclass
class _RowDraft:
    display_name: str
    lhs_normalized: str
    scope: str
    scope_flag: int
    type: str
    prefix: str
    category: str
    plugin: Optional[str]
    command_text: str
    description: str
    mode_keys: List[str] = field(default_factory=list)

    def add_mode(self, mode: str) -> None:
        if mode not in self.mode_keys:
            self.mode_keys.append(mode)

    def finalize(self) -> Row:
        klass = mode_class(self.mode_keys)
        return Row(
            display_name=self.display_name,
            lhs_normalized=self.lhs_normalized,
            modes=tuple(MODE_NAMES.get(m, m) for m in self.mode_keys),
            mode_keys=tuple(self.mode_keys),
            scope=self.scope,
            scope_flag=self.scope_flag,
            type=self.type,
            prefix=self.prefix,
            category=self.category,
            plugin=self.plugin,
            command_text=self.command_text,
            description=self.description,
            action_suffix=f" {self.description}" if self.description else "",
            mode_class=klass,
            identity_key=identity_key(klass, self.lhs_normalized, self.scope),
            binding_fingerprint=binding_fingerprint(self.type, self.prefix, self.lhs_normalized),
        )


def canonical_mode(mode: str) -> str:
    return VISUAL_CLASS if mode in VISUAL_FAMILY else mode


def mode_class(modes: Iterable[str]) -> str:
    """Pick one class for a merged mode set, visual family first."""
    present = {canonical_mode(m) for m in modes}
    for klass in MODE_CLASS_PRIORITY:
        if klass in present:
            return klass
    # Unknown mode letters still need a stable answer.
    return min(present) if present else "n"


def mode_key_for_name(name: str) -> Optional[str]:
    name = (name or "").strip()
    if name in MODE_NAMES:
        return name
    return MODE_KEYS.get(name.lower())


def identity_key(klass: str, lhs: str, scope: str) -> str:
    return "|".join([klass, lhs, scope])


def binding_fingerprint(type_: str, prefix: str, lhs: str) -> str:
    return "|".join([type_ or "", prefix or "", lhs or ""])


def synthetic_identity_key(mode_names: Sequence[str], lhs: str, scope: str) -> Optional[str]:
    """Rebuild an identity key from a stored row's Mode/Action/Scope columns."""
    keys = [k for k in (mode_key_for_name(n) for n in mode_names) if k]
    if not keys or not lhs or not scope:
        return None
    return identity_key(mode_class(keys), lhs, scope)


def collapse_whitespace(text: Optional[str]) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def canonical_command_key(text: Optional[str]) -> str:
    value = collapse_whitespace(text).lower()
    match = PLUGIN_COMMAND_PATTERN.match(value)
    if match:
        slug = match.group(1)
        slug = re.sub(r"\.lua$", "", slug)
        slug = re.sub(r"\.nvim$", "", slug)
        slug = re.sub(r"\s+", "", slug)
        return f"plugin:{slug}"
    return value


def is_builtin_command(text: Optional[str], sentinel: str) -> bool:
    value = (text or "").strip().lower()
    return value == "" or value == (sentinel or "").strip().lower()


def command_text_for(rhs: str, description: str, plugin: Optional[str]) -> str:
    if rhs and rhs != CALLBACK_MARKER:
        return rhs
    if description:
        return description
    if plugin:
        return f"Plugin: {plugin}"
    return ""


def scope_for(scope_flag: int, plugin: Optional[str], project_plugins: Iterable[str]) -> str:
    if plugin and plugin in set(project_plugins):
        return SCOPE_PROJECT
    if scope_flag == 1:
        return SCOPE_BUFFER
    return SCOPE_GLOBAL


def filter_records(records: Iterable[RawRecord], config: Config) -> List[RawRecord]:
    """Drop records the sync should never see."""
    include = set(config.include_modes)
    kept: List[RawRecord] = []
    for record in records:
        if not record.lhs:
            continue
        if record.mode not in include:
            continue
        if config.skip_plug_mappings and record.lhs.startswith("<Plug>"):
            continue
        if config.skip_builtins and looks_builtin(record.description):
            continue
        lhs = normalize_lhs(record.lhs, config.leader)
        if any(prefix and lhs.startswith(prefix) for prefix in config.skip_prefixes):
            debug_log("skip prefix", lhs)
            continue
        kept.append(record)
    return kept


def build_rows(records: Iterable[RawRecord], config: Config) -> List[Row]:
    drafts: Dict[Tuple[int, str], _RowDraft] = {}

    for record in records:
        lhs = normalize_lhs(record.lhs, config.leader)
        key = (record.scope_flag, lhs)
        draft = drafts.get(key)
        if draft is None:
            result = classify(
                lhs,
                record.mode,
                desc=record.description,
                rhs=record.rhs_or_callback_marker,
                origin=record.origin_path,
                scope_flag=record.scope_flag,
            )
            name = lhs
            if result.short_name:
                name = f"{name} ({result.short_name})"
            draft = _RowDraft(
                display_name=name,
                lhs_normalized=lhs,
                scope=scope_for(record.scope_flag, result.plugin, config.project_plugins),
                scope_flag=record.scope_flag,
                type=result.type,
                prefix=result.prefix,
                category=result.category,
                plugin=result.plugin,
                command_text=command_text_for(
                    record.rhs_or_callback_marker, record.description, result.plugin
                ),
                description=record.description,
            )
            drafts[key] = draft
        draft.add_mode(record.mode)

    rows = [draft.finalize() for draft in drafts.values()]
    rows.sort(key=lambda row: (row.display_name, row.scope_flag))
    return rows
