"""Read the Notion database back into lookup tables.

Each page becomes an ``IdentityRecord``.  Records are filed under three
indices:

* ``by_identity``: stored UID (or one rebuilt from Mode/Action/Scope when
  the UID column is empty), plus the binding fingerprint as a second key
  space for rows whose UID drifted after a mode merge.
* ``by_name``: page title, last one read wins.
* ``by_command``: canonical command text, builtins excluded.

When two pages claim the same identity or command slot, the one edited
most recently keeps it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from notio_config import debug_log
from notio_remote import RemoteClient
from notio_rows import (
    binding_fingerprint,
    canonical_command_key,
    is_builtin_command,
    synthetic_identity_key,
)


@dataclass(frozen=True)
class IdentityRecord:
    remote_id: str
    display_name: str
    command_text: str
    command_key: str
    identity_key_stored: Optional[str]
    identity_key_synthetic: Optional[str]
    binding_fingerprint: Optional[str]
    is_builtin: bool
    last_modified: str
    lhs: str = ""
    modes: Tuple[str, ...] = ()
    scope: str = ""

    @property
    def identity_key(self) -> Optional[str]:
        return self.identity_key_stored or self.identity_key_synthetic

    def have_fingerprint(self) -> str:
        """What the remote side currently holds, for change detection."""
        return self.binding_fingerprint or self.identity_key or ""


@dataclass
class IdentityIndex:
    by_identity: Dict[str, IdentityRecord] = field(default_factory=dict)
    by_name: Dict[str, IdentityRecord] = field(default_factory=dict)
    by_command: Dict[str, IdentityRecord] = field(default_factory=dict)
    records: List[IdentityRecord] = field(default_factory=list)
    ok: bool = True
    err: Optional[str] = None
    status: Optional[int] = None


def plain_text(prop: Optional[Mapping[str, Any]]) -> str:
    if not prop:
        return ""
    fragments = prop.get("title")
    if fragments is None:
        fragments = prop.get("rich_text") or []
    parts = []
    for frag in fragments:
        text = frag.get("plain_text")
        if text is None:
            text = (frag.get("text") or {}).get("content", "")
        parts.append(text or "")
    return "".join(parts).strip()


def select_name(prop: Optional[Mapping[str, Any]]) -> str:
    if not prop:
        return ""
    selected = prop.get("select") or {}
    return (selected.get("name") or "").strip()


def multi_select_names(prop: Optional[Mapping[str, Any]]) -> List[str]:
    if not prop:
        return []
    return [opt.get("name", "") for opt in prop.get("multi_select") or [] if opt.get("name")]


def action_lhs(prop: Optional[Mapping[str, Any]]) -> str:
    """The lhs is the code-formatted fragment of the Action column."""
    if not prop:
        return ""
    for frag in prop.get("rich_text") or []:
        if (frag.get("annotations") or {}).get("code"):
            text = frag.get("plain_text") or (frag.get("text") or {}).get("content", "")
            if text.strip():
                return text.strip()
    text = plain_text(prop)
    return text.split()[0] if text else ""


def decode_record(
    page: Mapping[str, Any], properties: Mapping[str, str], builtin_sentinel: str
) -> IdentityRecord:
    props = page.get("properties") or {}

    def column(logical: str) -> Optional[Mapping[str, Any]]:
        label = properties.get(logical)
        return props.get(label) if label else None

    command_text = plain_text(column("Command"))
    lhs = action_lhs(column("Action"))
    modes = multi_select_names(column("Mode"))
    scope = select_name(column("Scope"))
    type_ = select_name(column("Type"))
    prefix = select_name(column("Prefix"))
    stored = plain_text(column("UID"))

    return IdentityRecord(
        remote_id=page.get("id", ""),
        display_name=plain_text(column("Name")),
        command_text=command_text,
        command_key=canonical_command_key(command_text),
        identity_key_stored=stored or None,
        identity_key_synthetic=synthetic_identity_key(modes, lhs, scope),
        binding_fingerprint=binding_fingerprint(type_, prefix, lhs) if lhs else None,
        is_builtin=is_builtin_command(command_text, builtin_sentinel),
        last_modified=page.get("last_edited_time") or "",
        lhs=lhs,
        modes=tuple(modes),
        scope=scope,
    )


def _claim(slots: Dict[str, IdentityRecord], key: str, record: IdentityRecord) -> None:
    current = slots.get(key)
    if current is None or (record.last_modified, record.remote_id) > (
        current.last_modified,
        current.remote_id,
    ):
        slots[key] = record


def index_records(records: List[IdentityRecord]) -> IdentityIndex:
    index = IdentityIndex(records=list(records))
    for record in records:
        if record.display_name:
            index.by_name[record.display_name] = record
        key = record.identity_key
        if key:
            _claim(index.by_identity, key, record)
        if record.binding_fingerprint:
            _claim(index.by_identity, record.binding_fingerprint, record)
        if not record.is_builtin and record.command_key:
            _claim(index.by_command, record.command_key, record)
    return index


def build_index(
    client: RemoteClient,
    database_id: str,
    properties: Mapping[str, str],
    builtin_sentinel: str,
) -> IdentityIndex:
    """Fetch every page and index it.  ``ok`` is False if any page failed."""
    listing = client.list_all(database_id)
    records = [decode_record(page, properties, builtin_sentinel) for page in listing.rows]
    index = index_records(records)
    if not listing.ok:
        index.ok = False
        index.err = listing.err
        index.status = listing.status
        debug_log(f"partial index: {len(records)} rows before failure:", listing.err)
    return index
