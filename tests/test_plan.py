"""Tests for notio_plan.compute_plan: match priority, classification and stats."""

from dataclasses import replace

import pytest

from conftest import make_page
from notio_config import DEFAULT_PROPERTIES
from notio_index import decode_record, index_records
from notio_plan import (
    CREATE,
    REBIND,
    SKIP_BUILTIN,
    SKIP_NO_MATCH,
    SKIP_SAME,
    UPDATE,
    compute_plan,
    render_plan,
)
from notio_rows import RawRecord, build_rows

SENTINEL = "Built in"


def index_of(*pages):
    return index_records([decode_record(page, DEFAULT_PROPERTIES, SENTINEL) for page in pages])


@pytest.fixture
def find_files_row(config):
    (row,) = build_rows([RawRecord(mode="n", lhs="<Space>pf", description="Find Files")], config)
    return row


def plan_ops(rows, index, update_only=False):
    plan, _ = compute_plan(rows, index, SENTINEL, update_only=update_only)
    return [item.operation for item in plan]


class TestBuiltins:
    def test_builtin_command_never_created(self, find_files_row):
        row = replace(find_files_row, command_text="built IN")
        assert plan_ops([row], index_of()) == [SKIP_BUILTIN]

    def test_empty_command_is_builtin(self, find_files_row):
        row = replace(find_files_row, command_text="")
        assert plan_ops([row], index_of()) == [SKIP_BUILTIN]

    def test_match_on_builtin_page_skips(self, find_files_row):
        index = index_of(make_page("p1", command="Built in", uid=find_files_row.identity_key))
        assert plan_ops([find_files_row], index) == [SKIP_BUILTIN]


class TestMatching:
    def test_identity_match_same_fingerprint(self, find_files_row):
        index = index_of(
            make_page(
                "p1",
                command="Find Files",
                uid="n|<leader>pf|Global",
                lhs="<leader>pf",
                type_="leader",
                prefix="<leader>",
            )
        )
        plan, stats = compute_plan([find_files_row], index, SENTINEL)
        assert plan[0].operation == SKIP_SAME
        assert plan[0].matched_remote_id == "p1"
        assert plan[0].matched_via == "identity"
        assert stats[SKIP_SAME] == 1

    def test_type_change_triggers_update(self, find_files_row):
        index = index_of(
            make_page("p1", command="Find Files", uid="n|<leader>pf|Global", lhs="<leader>pf", type_="leader")
        )
        assert index.by_identity["n|<leader>pf|Global"].binding_fingerprint == "leader||<leader>pf"
        unchanged = replace(find_files_row, type="leader", prefix="", binding_fingerprint="leader||<leader>pf")
        changed = replace(unchanged, type="chord", binding_fingerprint="chord||<leader>pf")
        assert plan_ops([unchanged], index) == [SKIP_SAME]
        assert plan_ops([changed], index) == [UPDATE]

    def test_mode_merge_alone_stays_skip_same(self, config):
        index = index_of(
            make_page(
                "p1",
                command="Find Files",
                uid="n|<leader>pf|Global",
                lhs="<leader>pf",
                modes=["Normal"],
                type_="leader",
                prefix="<leader>",
            )
        )
        rows = build_rows(
            [RawRecord("n", "<Space>pf", "Find Files"), RawRecord("v", "<Space>pf", "Find Files")], config
        )
        assert rows[0].identity_key == "V|<leader>pf|Global"
        plan, _ = compute_plan(rows, index, SENTINEL)
        assert plan[0].operation == SKIP_SAME
        assert plan[0].matched_via == "binding"

    def test_name_fallback(self, find_files_row):
        index = index_of(make_page("p7", name=find_files_row.display_name, command="Find Files"))
        plan, _ = compute_plan([find_files_row], index, SENTINEL)
        assert plan[0].matched_via == "name"
        assert plan[0].operation == UPDATE

    def test_identity_beats_name(self, find_files_row):
        index = index_of(
            make_page("by-name", name=find_files_row.display_name, command="Find Files"),
            make_page("by-uid", name="other", command="Find Files", uid=find_files_row.identity_key),
        )
        plan, _ = compute_plan([find_files_row], index, SENTINEL)
        assert plan[0].matched_remote_id == "by-uid"


class TestRebindAndCreate:
    def test_command_under_other_key_is_rebind(self, find_files_row):
        index = index_of(
            make_page("p3", name="<leader>ff (Telescope)", command="find files", uid="n|<leader>ff|Global",
                      lhs="<leader>ff", type_="leader", prefix="<leader>")
        )
        plan, stats = compute_plan([find_files_row], index, SENTINEL)
        assert plan[0].operation == REBIND
        assert plan[0].matched_remote_id == "p3"
        assert plan[0].matched_via == "command"
        assert plan[0].previous_identity == "n|<leader>ff|Global"
        assert stats[REBIND] == 1

    def test_no_match_creates(self, find_files_row):
        assert plan_ops([find_files_row], index_of()) == [CREATE]

    def test_update_only_holds_back_creates(self, find_files_row):
        plan, stats = compute_plan([find_files_row], index_of(), SENTINEL, update_only=True)
        assert plan[0].operation == SKIP_NO_MATCH
        assert stats[SKIP_NO_MATCH] == 1
        assert stats[CREATE] == 0


class TestDeterminism:
    def test_repeated_calls_agree(self, config):
        rows = build_rows(
            [
                RawRecord("n", "<Space>pf", "Find Files"),
                RawRecord("n", "<C-w>", "Window"),
                RawRecord("n", "Q", "", "Built in"),
            ],
            config,
        )
        index = index_of(make_page("p1", command="Window", uid="n|<C-w>|Global"))
        first = compute_plan(rows, index, SENTINEL)
        second = compute_plan(rows, index, SENTINEL)
        assert first == second

    def test_render_plan(self, find_files_row):
        plan, stats = compute_plan([find_files_row], index_of(), SENTINEL)
        lines = render_plan(plan, stats)
        assert "create=1" in lines[0]
        assert lines[-1].startswith("create")
        assert lines[-1].endswith("<leader>pf (Telescope)")
