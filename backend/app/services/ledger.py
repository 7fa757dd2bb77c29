"""Daily quota ledger and TTL response cache.

Both sit on top of a string-keyed key/value store. The ledger and cache are
constructed once by the application and injected into the fetcher; tests pass
a ``MemoryStore`` and fixed clocks instead.
"""
import json
import logging
import os
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)

QUOTA_USAGE_KEY = "yt_quota_usage_v1"
QUOTA_DATE_KEY = "yt_quota_date_v1"
CACHE_PREFIX = "yt_cache_"

QuotaObserver = Callable[[int], None]


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryStore:
    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)


class JsonFileStore:
    """Key/value store persisted as a single JSON document."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._data: dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        with self._lock:
            self._data.clear()
            try:
                if not self.path.exists():
                    return
                raw = json.loads(self.path.read_text(encoding="utf-8"))
                if isinstance(raw, dict):
                    self._data.update(raw)
            except (OSError, json.JSONDecodeError):
                logger.warning("Ignoring unreadable store file %s", self.path)
                self._data.clear()

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._data, ensure_ascii=True), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._persist()

    def remove(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._persist()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)


class QuotaLedger:
    """Tracks quota units spent today.

    Usage is advisory: exceeding ``daily_limit`` is logged and reported by
    ``status()`` but never blocks a call.
    """

    def __init__(
        self,
        store: KeyValueStore,
        daily_limit: int = 10000,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.daily_limit = daily_limit
        self.clock = clock
        self._lock = threading.RLock()
        self._observers: list[QuotaObserver] = []

    def subscribe(self, observer: QuotaObserver) -> None:
        self._observers.append(observer)

    def unsubscribe(self, observer: QuotaObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify(self, usage: int) -> None:
        for observer in list(self._observers):
            observer(usage)

    def _today(self) -> str:
        return self.clock().date().isoformat()

    def current_usage(self) -> int:
        reset = False
        with self._lock:
            today = self._today()
            if self.store.get(QUOTA_DATE_KEY) != today:
                self.store.set(QUOTA_DATE_KEY, today)
                self.store.set(QUOTA_USAGE_KEY, 0)
                reset = True
                usage = 0
            else:
                try:
                    usage = int(self.store.get(QUOTA_USAGE_KEY) or 0)
                except (TypeError, ValueError):
                    usage = 0
        if reset:
            logger.info("Quota counter reset for %s", today)
            self._notify(0)
        return usage

    def charge(self, cost: int) -> int:
        with self._lock:
            usage = self.current_usage() + int(cost)
            self.store.set(QUOTA_USAGE_KEY, usage)
        logger.debug("Charged %d quota units (today=%d)", cost, usage)
        if usage > self.daily_limit >= usage - cost:
            logger.warning("Daily quota advisory limit %d passed (used=%d)", self.daily_limit, usage)
        self._notify(usage)
        return usage

    def status(self) -> dict[str, Any]:
        used = self.current_usage()
        return {
            "date": self._today(),
            "used": used,
            "limit": self.daily_limit,
            "remaining": max(0, self.daily_limit - used),
            "exceeded": used > self.daily_limit,
        }


class ResponseCache:
    """Memoizes whole-query results for ``ttl_seconds``.

    Store failures are logged and treated as a miss so the cache can never
    block a fetch.
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl_seconds: int = 60 * 60,
        time_fn: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.time_fn = time_fn

    def get(self, key: str) -> Any | None:
        full_key = CACHE_PREFIX + key
        try:
            entry = self.store.get(full_key)
            if not isinstance(entry, dict) or "stored_at" not in entry:
                return None
            if self.time_fn() - float(entry["stored_at"]) < self.ttl_seconds:
                logger.debug("Cache hit for %s", key)
                return entry.get("value")
            self.store.remove(full_key)
            logger.debug("Cache entry expired for %s", key)
        except Exception:
            logger.warning("Cache read failed for %s", key, exc_info=True)
        return None

    def put(self, key: str, value: Any) -> None:
        try:
            self.store.set(CACHE_PREFIX + key, {"value": value, "stored_at": self.time_fn()})
        except Exception:
            logger.warning("Cache write failed for %s", key, exc_info=True)

    def clear(self) -> None:
        for key in self.store.keys():
            if key.startswith(CACHE_PREFIX):
                self.store.remove(key)
