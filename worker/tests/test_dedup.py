import threading

from listing_sweep.core.config import Settings
from listing_sweep.core.dedup import DedupStore, MaxObservedCount, RunContext, is_valid_entity_id


def test_is_valid_entity_id():
    assert is_valid_entity_id("12345")
    assert is_valid_entity_id(12345)
    assert not is_valid_entity_id(None)
    assert not is_valid_entity_id("")
    assert not is_valid_entity_id("12a45")
    assert not is_valid_entity_id(True)


def test_check_and_insert_only_once():
    store = DedupStore()
    assert store.check_and_insert("1") is True
    assert store.check_and_insert("1") is False
    assert "1" in store
    assert store.size == 1


def test_invalid_ids_never_enter_store():
    store = DedupStore(["7", "abc", None])
    assert store.check_and_insert("x1") is False
    store.release("not-a-number")
    assert store.snapshot() == ["7"]


def test_cap_blocks_insertion():
    store = DedupStore(max_items=2)
    assert store.check_and_insert("1")
    assert store.check_and_insert("2")
    assert store.is_full()
    assert store.check_and_insert("3") is False
    assert store.size == 2


def test_zero_cap_means_unlimited():
    store = DedupStore(max_items=0)
    for i in range(50):
        assert store.check_and_insert(str(i))
    assert not store.is_full()


def test_concurrent_claims_are_exclusive():
    store = DedupStore()
    winners = []
    lock = threading.Lock()
    barrier = threading.Barrier(8)

    def claim():
        barrier.wait()
        for i in range(200):
            if store.check_and_insert(str(i)):
                with lock:
                    winners.append(i)

    threads = [threading.Thread(target=claim) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(winners) == list(range(200))


def test_max_observed_is_monotone():
    counter = MaxObservedCount()
    assert counter.observe(120) == 120
    assert counter.observe(80) == 120
    assert counter.value == 120


def test_run_context_from_settings_and_coverage():
    settings = Settings(max_items=10, max_level=2, split_threshold=300, listing_base_url="https://x.test")
    ctx = RunContext.from_settings(settings, ["1", "2"])

    assert ctx.dedup.max_items == 10
    assert ctx.max_level == 2
    assert ctx.split_threshold == 300
    assert not ctx.is_covered()

    ctx.max_observed.observe(2)
    assert ctx.is_covered()
