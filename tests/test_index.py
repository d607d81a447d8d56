"""Tests for notio_index: decoding pages and building the lookup tables."""

from conftest import make_page
from notio_config import DEFAULT_PROPERTIES
from notio_index import action_lhs, build_index, decode_record, index_records
from notio_remote import ListResult

SENTINEL = "Built in"


def decode(page, properties=DEFAULT_PROPERTIES):
    return decode_record(page, properties, SENTINEL)


class TestDecodeRecord:
    def test_full_page(self):
        record = decode(
            make_page(
                "p1",
                name="<leader>pf (Telescope)",
                command="Find  Files",
                uid="V|<leader>pf|Global",
                lhs="<leader>pf",
                modes=["Normal", "Visual"],
                type_="leader",
                prefix="<leader>",
            )
        )
        assert record.remote_id == "p1"
        assert record.display_name == "<leader>pf (Telescope)"
        assert record.command_key == "find files"
        assert record.identity_key_stored == "V|<leader>pf|Global"
        assert record.identity_key_synthetic == "V|<leader>pf|Global"
        assert record.binding_fingerprint == "leader|<leader>|<leader>pf"
        assert not record.is_builtin

    def test_empty_uid_is_none_and_synthetic_used(self):
        record = decode(make_page("p1", command="x", lhs="jk", modes=["Insert"], scope="Buffer"))
        assert record.identity_key_stored is None
        assert record.identity_key == "i|jk|Buffer"

    def test_builtin_and_empty_command(self):
        assert decode(make_page("p1", command="Built in")).is_builtin
        assert decode(make_page("p2", command="")).is_builtin

    def test_missing_action_has_no_fingerprint(self):
        record = decode(make_page("p1", command="x", uid="n|Q|Global"))
        assert record.binding_fingerprint is None
        assert record.have_fingerprint() == "n|Q|Global"

    def test_column_labels_come_from_the_map(self):
        page = make_page("p1", name="renamed")
        page["properties"]["Titel"] = page["properties"].pop("Name")
        properties = dict(DEFAULT_PROPERTIES, Name="Titel")
        assert decode(page, properties).display_name == "renamed"

    def test_action_lhs_prefers_code_fragment(self):
        prop = {
            "rich_text": [
                {"plain_text": "<C-w>", "annotations": {"code": True}},
                {"plain_text": " Window", "annotations": {"code": False}},
            ]
        }
        assert action_lhs(prop) == "<C-w>"
        assert action_lhs({"rich_text": [{"plain_text": "gd Go to def"}]}) == "gd"
        assert action_lhs(None) == ""


class TestIndexRecords:
    def test_newer_page_wins_identity_slot(self):
        old = decode(make_page("old", command="a", uid="n|Q|Global", edited="2025-01-01T00:00:00.000Z"))
        new = decode(make_page("new", command="b", uid="n|Q|Global", edited="2025-03-01T00:00:00.000Z"))
        for order in ([old, new], [new, old]):
            index = index_records(order)
            assert index.by_identity["n|Q|Global"].remote_id == "new"

    def test_builtins_stay_out_of_command_index(self):
        index = index_records(
            [
                decode(make_page("p1", name="a", command="Built in", uid="n|a|Global")),
                decode(make_page("p2", name="b", command=":w<CR>", uid="n|b|Global")),
            ]
        )
        assert set(index.by_command) == {":w<cr>"}
        assert set(index.by_name) == {"a", "b"}
        assert "n|a|Global" in index.by_identity

    def test_fingerprint_is_a_second_identity_keyspace(self):
        record = decode(
            make_page("p1", command="x", uid="n|<leader>pf|Global", lhs="<leader>pf", type_="leader", prefix="<leader>")
        )
        index = index_records([record])
        assert index.by_identity["leader|<leader>|<leader>pf"] is record

    def test_name_collision_last_read_wins(self):
        index = index_records(
            [
                decode(make_page("p1", name="dup", command="a", edited="2025-09-01T00:00:00.000Z")),
                decode(make_page("p2", name="dup", command="b", edited="2025-01-01T00:00:00.000Z")),
            ]
        )
        assert index.by_name["dup"].remote_id == "p2"


class _Listing:
    def __init__(self, result):
        self.result = result

    def list_all(self, database_id):
        return self.result


class TestBuildIndex:
    def test_ok(self):
        client = _Listing(ListResult(ok=True, rows=[make_page("p1", name="a", command="x", uid="n|a|Global")]))
        index = build_index(client, "db", DEFAULT_PROPERTIES, SENTINEL)
        assert index.ok
        assert "n|a|Global" in index.by_identity

    def test_partial_listing_is_flagged(self):
        client = _Listing(ListResult(ok=False, rows=[make_page("p1", name="a", command="x")], err="HTTP 502"))
        index = build_index(client, "db", DEFAULT_PROPERTIES, SENTINEL)
        assert not index.ok
        assert index.err == "HTTP 502"
        assert len(index.records) == 1

    def test_listing_status_is_kept(self):
        client = _Listing(ListResult(ok=False, rows=[], err="API token is invalid.", status=401))
        index = build_index(client, "db", DEFAULT_PROPERTIES, SENTINEL)
        assert not index.ok
        assert index.status == 401
