"""Synchronize editor keymaps with a Notion database.

The collector (the editor side) dumps its keymaps as JSON; this script
turns them into rows, reads the database back, plans the minimal set of
changes and applies them:

1. Filter and normalize the collected records into rows.
2. Index every page already in the database.
3. Plan create / update / rebind / skip per row.
4. Show the plan (``--dry-run``) or confirm and apply it (``--run``).

Run ``python scripts/notio_sync.py --records keymaps.json --dry-run`` to
preview a sync.  ``Ctrl-C`` during ``--run`` stops after the request in
flight.
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from notio_apply import ApplyResult, CancellationToken, Executor, Notify, backfill_identity
from notio_config import Config, api_token, load_config
from notio_errors import AuthError, ConfigError, NotioError, PartialIndexError, RemoteError
from notio_index import IdentityIndex, build_index
from notio_plan import (
    CREATE,
    REBIND,
    SKIP_BUILTIN,
    SKIP_NO_MATCH,
    SKIP_SAME,
    UPDATE,
    PlanItem,
    compute_plan,
    render_plan,
    summarize,
)
from notio_remote import AUTH_FAILURES, RemoteClient, database_title
from notio_rows import RawRecord, Row, build_rows, filter_records


@dataclass
class SyncContext:
    """Everything one run needs; nothing here outlives the run."""

    config: Config
    client: RemoteClient
    token: CancellationToken = field(default_factory=CancellationToken)
    notify: Notify = print


def load_records(path: str) -> List[RawRecord]:
    if path == "-":
        data = json.load(sys.stdin)
    else:
        source = Path(path)
        if not source.exists():
            raise ConfigError(f"notio: records file not found: {source}")
        with source.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    if isinstance(data, dict):
        data = data.get("records", [])
    if not isinstance(data, list):
        raise ConfigError("notio: records must be a JSON list")
    return [RawRecord.from_dict(item) for item in data if isinstance(item, dict)]


def load_index(ctx: SyncContext) -> IdentityIndex:
    config = ctx.config
    index = build_index(ctx.client, config.database_id, config.properties, config.built_in_marker_value)
    if not index.ok:
        if index.status in AUTH_FAILURES:
            raise AuthError(f"notio: database read refused: {index.err}")
        raise PartialIndexError(
            f"notio: could not read the whole database ({index.err}); refusing to plan on a partial index"
        )
    return index


def prepare_rows(ctx: SyncContext, records: Sequence[RawRecord]) -> List[Row]:
    return build_rows(filter_records(records, ctx.config), ctx.config)


def plan_sync(ctx: SyncContext, rows: Sequence[Row]) -> Tuple[List[PlanItem], Dict[str, int]]:
    index = load_index(ctx)
    return compute_plan(rows, index, ctx.config.built_in_marker_value, update_only=ctx.config.update_only)


def dry_run(ctx: SyncContext, records: Sequence[RawRecord]) -> List[str]:
    rows = prepare_rows(ctx, records)
    if not rows:
        ctx.notify("[INFO] notio: nothing to sync.")
        return []
    plan, stats = plan_sync(ctx, rows)
    lines = render_plan(plan, stats)
    for line in lines:
        ctx.notify(line)
    return lines


def confirm_prompt(message: str) -> bool:
    try:
        answer = input(f"{message} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def run_sync(
    ctx: SyncContext,
    records: Sequence[RawRecord],
    confirm: Optional[Callable[[str], bool]] = confirm_prompt,
) -> Optional[ApplyResult]:
    rows = prepare_rows(ctx, records)
    if not rows:
        ctx.notify("[INFO] notio: nothing to sync.")
        return None

    plan, stats = plan_sync(ctx, rows)
    skips = stats[SKIP_SAME] + stats[SKIP_BUILTIN] + stats[SKIP_NO_MATCH]
    if confirm is not None:
        message = f"Create {stats[CREATE]}, Update {stats[UPDATE]}, Rebind {stats[REBIND]}, Skip {skips}. Proceed?"
        if not confirm(message):
            ctx.notify("[INFO] notio: aborted by user.")
            return None

    ctx.notify(f"# plan: {summarize(stats)}")
    ctx.notify("")
    result = Executor(ctx.client, ctx.config, ctx.token).apply(plan, ctx.notify)
    level = "[INFO]" if result.failed == 0 else "[WARN]"
    ctx.notify(
        f"{level} notio: created {result.created}, updated {result.updated}, rebound {result.rebound}, "
        f"skipped {result.skipped}, failed {result.failed}, not run {result.not_run}"
    )
    return result


def ping(ctx: SyncContext) -> None:
    me = ctx.client.whoami()
    if not me.ok:
        if me.status in AUTH_FAILURES:
            raise AuthError(f"notio: token check failed: {me.err}")
        raise RemoteError(f"notio: token check failed: {me.err}", me.status)
    ctx.notify(f"[INFO] notio: token OK as '{me.data['name']}' (workspace: {me.data['workspace'] or '?'})")
    db = ctx.client.describe(ctx.config.database_id)
    if not db.ok:
        raise RemoteError(f"notio: database check failed: {db.err}", db.status)
    ctx.notify(f"[INFO] notio: database reachable -> {database_title(db.data)}")


def backfill(ctx: SyncContext) -> int:
    index = load_index(ctx)
    count = backfill_identity(ctx.client, index, ctx.config, ctx.token, ctx.notify)
    ctx.notify(f"[INFO] notio: backfilled UID on {count} pages")
    return count


def install_abort_handler(ctx: SyncContext):
    def handler(signum, frame):
        ctx.token.cancel()
        ctx.notify("[WARN] notio: abort requested, will stop after current request.")

    return signal.signal(signal.SIGINT, handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Synchronize editor keymaps with a Notion database.")
    parser.add_argument("--config", help="Path to the JSON config file (default: ./notio.json or $NOTIO_CONFIG).")
    parser.add_argument("--records", help="JSON file with the collected keymaps, '-' for stdin.")
    action = parser.add_mutually_exclusive_group()
    action.add_argument("--dry-run", action="store_true", help="Show the plan without changing anything.")
    action.add_argument("--run", action="store_true", help="Plan, confirm and apply the sync.")
    action.add_argument("--ping", action="store_true", help="Check the token and the database.")
    action.add_argument("--backfill-uid", action="store_true", help="Write missing UIDs into existing pages.")
    action.add_argument("--show-config", action="store_true", help="Print the effective configuration.")
    parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt.")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not (args.dry_run or args.run or args.ping or args.backfill_uid or args.show_config):
        parser.print_help()
        return 0

    try:
        config = load_config(args.config)
        if args.show_config:
            for line in config.describe():
                print(line)
            return 0

        config.validate()
        if (args.dry_run or args.run) and not args.records:
            raise ConfigError("notio: --records is required for --dry-run and --run")
        records = load_records(args.records) if args.records else []

        client = RemoteClient.from_config(config, api_token())
        ctx = SyncContext(config=config, client=client)

        if args.ping:
            ping(ctx)
            return 0
        if args.backfill_uid:
            previous = install_abort_handler(ctx)
            try:
                backfill(ctx)
            finally:
                signal.signal(signal.SIGINT, previous)
            return 0
        if args.dry_run or config.dry_run:
            dry_run(ctx, records)
            return 0

        confirm = None if (args.yes or not config.require_confirm) else confirm_prompt
        previous = install_abort_handler(ctx)
        try:
            result = run_sync(ctx, records, confirm=confirm)
        finally:
            signal.signal(signal.SIGINT, previous)
        return 1 if result is not None and result.failed else 0
    except NotioError as exc:
        raise SystemExit(f"❌ {exc}") from exc


if __name__ == "__main__":
    sys.exit(main())
