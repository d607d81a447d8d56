"""Apply a plan to the Notion database, one request at a time."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from notio_classify import humanize_command
from notio_config import Config, debug_log
from notio_index import IdentityIndex
from notio_plan import CREATE, REBIND, UPDATE, PlanItem
from notio_remote import RemoteClient, RemoteResult
from notio_rows import Row, collapse_whitespace, is_builtin_command

STATUS_CHANGED = "Changed"
DEFAULT_TIER = "A"

Notify = Callable[[str], None]


def now_iso_utc() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class CancellationToken:
    """Abort request shared by one run.  Polled between plan items only."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class ApplyResult:
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    not_run: int = 0
    created: int = 0
    updated: int = 0
    rebound: int = 0
    aborted: bool = False
    failures: List[str] = field(default_factory=list)


# ---------- payload builders ----------


def text_frag(content: Optional[str], is_code: bool = False, color: Optional[str] = None) -> List[Dict[str, Any]]:
    if not content:
        return []
    return [
        {
            "type": "text",
            "text": {"content": content},
            "annotations": {
                "bold": False,
                "italic": False,
                "strikethrough": False,
                "underline": False,
                "code": is_code,
                "color": color or ("red" if is_code else "default"),
            },
            "plain_text": content,
        }
    ]


def multi_select(names: Sequence[str]) -> List[Dict[str, str]]:
    return [{"name": name} for name in names]


def select(name: Optional[str]) -> Dict[str, Any]:
    return {"select": {"name": name} if name else None}


def description_for(row: Row, builtin_sentinel: str) -> str:
    if row.description:
        return row.description
    friendly = humanize_command(row.command_text)
    if friendly:
        return friendly
    if is_builtin_command(row.command_text, builtin_sentinel):
        return ""
    return row.command_text


def build_properties(
    row: Row,
    config: Config,
    for_update: bool,
    status: Optional[str] = None,
    date: Optional[str] = None,
) -> Dict[str, Any]:
    props: Dict[str, Any] = {}

    def put(logical: str, value: Dict[str, Any]) -> None:
        label = config.prop(logical)
        if label:
            props[label] = value

    put("Name", {"title": [{"type": "text", "text": {"content": row.display_name}}]})
    put("Action", {"rich_text": text_frag(row.lhs_normalized, True, "red") + text_frag(row.action_suffix)})
    if config.app_page_id:
        put("Application", {"relation": [{"id": config.app_page_id}]})
    put("Platform", {"multi_select": multi_select(config.platform)})
    put("Mode", {"multi_select": multi_select(row.modes)})
    put("Command", {"rich_text": text_frag(row.command_text)})
    put("Status", select(status or config.status))
    put("Type", select(row.type))
    put("Category", select(row.category))
    put("Scope", select(row.scope))
    put("Prefix", select(row.prefix))
    put("UID", {"rich_text": text_frag(row.identity_key, True, "blue")})

    if not for_update:
        # Fields people curate by hand are only seeded on create.
        put("Description", {"rich_text": text_frag(description_for(row, config.built_in_marker_value))})
        put("Docs", {"url": None})
        put("Tier", select(DEFAULT_TIER))

    plugin_page = config.plugin_pages.get(row.plugin) if row.plugin else None
    if plugin_page:
        put("Plugin", {"relation": [{"id": plugin_page}]})

    if date:
        put("Date", {"date": {"start": date}})
    return props


def page_payload(row: Row, config: Config, date: Optional[str] = None) -> Dict[str, Any]:
    return {
        "parent": {"database_id": config.database_id},
        "icon": {"type": "external", "external": {"url": config.icon_url}},
        "cover": {"type": "external", "external": {"url": config.cover_url}},
        "properties": build_properties(row, config, for_update=False, date=date),
    }


def update_payload(
    row: Row, config: Config, status: Optional[str] = None, date: Optional[str] = None
) -> Dict[str, Any]:
    return {"properties": build_properties(row, config, for_update=True, status=status, date=date)}


def create_guard_key(row: Row) -> str:
    return "|".join([row.identity_key, row.display_name, collapse_whitespace(row.command_text)])


# ---------- executor ----------


class Executor:
    def __init__(
        self,
        client: RemoteClient,
        config: Config,
        token: Optional[CancellationToken] = None,
        clock: Callable[[], str] = now_iso_utc,
    ) -> None:
        self.client = client
        self.config = config
        self.token = token or CancellationToken()
        self.clock = clock

    def _send(self, item: PlanItem) -> RemoteResult:
        row = item.row
        if item.operation == CREATE:
            date = self.clock() if self.config.touch_date_on_create else None
            return self.client.create(page_payload(row, self.config, date=date))
        if item.operation == REBIND:
            return self.client.update(
                item.matched_remote_id or "",
                update_payload(row, self.config, status=STATUS_CHANGED, date=self.clock()),
            )
        date = self.clock() if self.config.touch_date_on_update else None
        return self.client.update(item.matched_remote_id or "", update_payload(row, self.config, date=date))

    def apply(self, plan: Sequence[PlanItem], notify: Notify = print) -> ApplyResult:
        result = ApplyResult()
        created_guard: Set[str] = set()

        for position, item in enumerate(plan):
            if self.token.cancelled:
                result.aborted = True
                result.not_run = len(plan) - position
                notify("")
                notify("ABORTED by user.")
                break

            row = item.row
            if item.is_skip:
                result.skipped += 1
                notify(f"SKIP    ·  {row.display_name}  ({item.operation})")
                continue

            if item.operation == CREATE:
                guard_key = create_guard_key(row)
                if guard_key in created_guard:
                    result.skipped += 1
                    notify(f"SKIP    ·  {row.display_name}  (duplicate create in this run)")
                    continue

            res = self._send(item)
            tag = item.operation.upper()
            if res.ok:
                result.succeeded += 1
                if item.operation == CREATE:
                    created_guard.add(create_guard_key(row))
                    result.created += 1
                elif item.operation == UPDATE:
                    result.updated += 1
                else:
                    result.rebound += 1
                notify(f"{tag:<7} ✔  {row.display_name}  [{row.identity_key}]")
            else:
                result.failed += 1
                result.failures.append(f"{row.display_name}: {res.err or 'error'}")
                notify(f"{tag:<7} ✖  {row.display_name}  ({res.err or 'error'})")

        debug_log("apply finished", result)
        return result


def backfill_identity(
    client: RemoteClient,
    index: IdentityIndex,
    config: Config,
    token: Optional[CancellationToken] = None,
    notify: Notify = print,
) -> int:
    """Write the rebuilt UID into pages whose UID column is empty."""
    label = config.prop("UID")
    if not label:
        return 0
    count = 0
    for record in index.records:
        if token is not None and token.cancelled:
            notify("ABORTED by user.")
            break
        if record.identity_key_stored or not record.identity_key_synthetic or record.is_builtin:
            continue
        payload = {"properties": {label: {"rich_text": text_frag(record.identity_key_synthetic, True, "blue")}}}
        res = client.update(record.remote_id, payload)
        if res.ok:
            count += 1
        else:
            notify(f"BACKFILL ✖  {record.display_name}  ({res.err or 'error'})")
    return count
