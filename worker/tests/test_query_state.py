import json

import pytest

from listing_sweep.core.errors import MissingPageDataError
from listing_sweep.core.query_state import (
    extract_query_states,
    load_page_store,
    merge_results,
    sum_total_count,
)

QUERY_STATE = {
    "mapBounds": {"north": 41.0, "south": 40.0, "east": -73.0, "west": -74.0},
    "mapZoom": 10,
    "filterState": {"sort": {"value": "globalrelevanceex"}},
    "isMapVisible": True,
}


def make_store(cat1=None, cat2=None):
    store = {"queryState": QUERY_STATE}
    if cat1 is not None:
        store["cat1"] = cat1
    if cat2 is not None:
        store["cat2"] = cat2
    return store


def category(map_ids=(), list_ids=(), total=0):
    return {
        "searchResults": {
            "mapResults": [{"zpid": z, "address": f"{z} Main St", "detailUrl": f"/homedetails/{z}_zpid/"} for z in map_ids],
            "listResults": [{"zpid": z, "address": f"{z} Oak Ave"} for z in list_ids],
        },
        "searchList": {"totalResultCount": total},
    }


def wrap_html(store):
    return (
        "<html><body>"
        '<script type="application/json" data-zrr-shared-data-key="mobileSearchPageStore"><!--'
        + json.dumps(store)
        + "--></script></body></html>"
    )


def test_load_page_store_strips_comment_wrapper():
    store = make_store(category(["1"], total=1))
    assert load_page_store(wrap_html(store)) == store


def test_load_page_store_missing_script():
    with pytest.raises(MissingPageDataError):
        load_page_store("<html><body>captcha</body></html>")


def test_load_page_store_invalid_json():
    html = '<script data-zrr-shared-data-key="mobileSearchPageStore"><!--{not json--></script>'
    with pytest.raises(MissingPageDataError):
        load_page_store(html)


def test_merge_order_is_map_then_list_per_category(context):
    store = make_store(category(["1", "2"], ["3"], total=3), category(["4"], ["5"], total=2))
    extracts = extract_query_states(store, 1, 0, context)

    ids = [r.entity_id for r in merge_results(extracts)]
    assert ids == ["1", "2", "3", "4", "5"]
    assert sum_total_count(extracts) == 5


def test_category_without_results_is_discarded(context):
    store = make_store(category(["1"], total=1), {"searchList": {"totalResultCount": 99}})
    extracts = extract_query_states(store, 1, 0, context)

    assert list(extracts) == ["cat1"]
    assert sum_total_count(extracts) == 1


def test_first_unsplit_page_updates_max_observed(context):
    extract_query_states(make_store(category(["1"], total=600)), 1, 0, context)
    assert context.max_observed.value == 600

    extract_query_states(make_store(category(["1"], total=900)), 2, 0, context)
    extract_query_states(make_store(category(["1"], total=900)), 1, 1, context)
    assert context.max_observed.value == 600


def test_extract_accepts_html_and_keeps_viewport(context):
    extracts = extract_query_states(wrap_html(make_store(category(["9"], total=1))), 3, 2, context)

    state = extracts["cat1"].state
    assert state.viewport.north == 41.0
    assert state.viewport.zoom_level == 10
    assert state.pagination_page == 3
    assert state.extra == {"isMapVisible": True}


def test_missing_query_state_raises(context):
    with pytest.raises(MissingPageDataError):
        extract_query_states({"cat1": category(["1"], total=1)}, 1, 0, context)


def test_result_records_normalize_ids(context):
    store = make_store(
        {"searchResults": {"mapResults": [{"zpid": 123, "address": "1 A St"}, {"address": "no id"}]}}
    )
    records = merge_results(extract_query_states(store, 1, 0, context))

    assert records[0].entity_id == "123"
    assert records[1].entity_id is None
