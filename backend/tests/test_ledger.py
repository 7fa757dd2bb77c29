import threading
from datetime import timedelta

from backend.app.services.ledger import (
    CACHE_PREFIX,
    QUOTA_DATE_KEY,
    QUOTA_USAGE_KEY,
    JsonFileStore,
    MemoryStore,
    QuotaLedger,
    ResponseCache,
)


class BrokenStore(MemoryStore):
    def get(self, key):
        raise RuntimeError("store offline")

    def set(self, key, value):
        raise RuntimeError("store offline")


def test_charge_accumulates_and_notifies(ledger):
    seen = []
    ledger.subscribe(seen.append)

    assert ledger.charge(100) == 100
    assert ledger.charge(1) == 101
    assert ledger.current_usage() == 101
    assert seen[-2:] == [100, 101]

    ledger.unsubscribe(seen.append)
    ledger.charge(1)
    assert seen[-1] == 101


def test_usage_resets_when_date_changes(store, clock):
    ledger = QuotaLedger(store, clock=clock)
    ledger.charge(500)
    assert store.get(QUOTA_USAGE_KEY) == 500

    seen = []
    ledger.subscribe(seen.append)
    clock.state["now"] = clock.state["now"] + timedelta(days=1)

    assert ledger.current_usage() == 0
    assert seen == [0]
    assert store.get(QUOTA_DATE_KEY) == clock.state["now"].date().isoformat()
    assert ledger.charge(1) == 1


def test_status_reports_advisory_limit_without_blocking(store, clock):
    ledger = QuotaLedger(store, daily_limit=150, clock=clock)
    ledger.charge(100)
    ledger.charge(100)

    status = ledger.status()
    assert status["used"] == 200
    assert status["limit"] == 150
    assert status["remaining"] == 0
    assert status["exceeded"] is True


def test_concurrent_charges_are_not_lost(ledger):
    def worker():
        for _ in range(100):
            ledger.charge(1)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert ledger.current_usage() == 800


def test_cache_entry_expires_after_ttl(store):
    now = {"t": 1_000.0}
    cache = ResponseCache(store, ttl_seconds=3600, time_fn=lambda: now["t"])
    cache.put("analysis_music_50", {"videos": []})

    now["t"] += 3599
    assert cache.get("analysis_music_50") == {"videos": []}

    now["t"] += 2
    assert cache.get("analysis_music_50") is None
    assert CACHE_PREFIX + "analysis_music_50" not in store.keys()


def test_cache_failures_are_misses():
    cache = ResponseCache(BrokenStore())
    cache.put("k", {"a": 1})
    assert cache.get("k") is None


def test_cache_clear_leaves_quota_keys(store, ledger):
    cache = ResponseCache(store)
    cache.put("a", 1)
    cache.put("b", 2)
    ledger.charge(3)

    cache.clear()

    assert not [key for key in store.keys() if key.startswith(CACHE_PREFIX)]
    assert ledger.current_usage() == 3


def test_json_file_store_persists_between_instances(tmp_path, clock):
    path = tmp_path / "state" / "ledger.json"
    QuotaLedger(JsonFileStore(path), clock=clock).charge(101)

    reopened = QuotaLedger(JsonFileStore(path), clock=clock)
    assert reopened.current_usage() == 101


def test_json_file_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "ledger.json"
    path.write_text("{not json", encoding="utf-8")

    store = JsonFileStore(path)
    assert store.keys() == []
    store.set("a", 1)
    assert JsonFileStore(path).get("a") == 1
