import json

from listing_sweep.core import state
from listing_sweep.core.dedup import DedupStore


def test_missing_file_is_empty_state(tmp_path):
    path = str(tmp_path / "state.json")
    assert state.load_entity_ids(path) == []
    assert state.load_query_credentials(path) is None


def test_save_and_restore_round_trip(tmp_path):
    path = str(tmp_path / "nested" / "state.json")
    store = DedupStore(["10", "2", "33"])

    state.save_state(path, store, {"queryId": "q", "clientVersion": "v"})

    assert state.load_entity_ids(path) == ["2", "10", "33"]
    assert state.load_query_credentials(path) == {"queryId": "q", "clientVersion": "v"}


def test_bare_list_state_is_accepted(tmp_path):
    path = tmp_path / "state.json"
    path.write_text(json.dumps([1, "2"]), encoding="utf-8")

    assert state.load_entity_ids(str(path)) == ["1", "2"]
