from __future__ import annotations

from collections import OrderedDict
from typing import Any, Hashable

EVICTION_LOG_EVERY = 1000


class InMemoryStateStore:
    """
    Namespaced key/value store for the moderation runtime state.

    Everything the pipeline remembers between messages (strikes, callout
    cooldowns, channel ring buffers, behavior records, shadowbans) goes through
    get/set/delete here, so a durable backend can replace this class without
    touching policy code.

    Namespaces listed in ``capacities`` are bounded: once full, the least
    recently written key is evicted and counted in ``evictions``, which is
    logged on the first eviction and every EVICTION_LOG_EVERY after. Other
    namespaces are unbounded.
    """

    def __init__(self, *, capacities: dict[str, int] | None = None) -> None:
        self._data: dict[str, OrderedDict] = {}
        self._capacities = {str(ns): max(1, int(cap)) for ns, cap in (capacities or {}).items()}
        self.evictions: dict[str, int] = {}

    def _bucket(self, namespace: str) -> OrderedDict:
        bucket = self._data.get(namespace)
        if bucket is None:
            bucket = OrderedDict()
            self._data[namespace] = bucket
        return bucket

    def get(self, namespace: str, key: Hashable, default: Any = None) -> Any:
        bucket = self._data.get(namespace)
        if bucket is None:
            return default
        return bucket.get(key, default)

    def set(self, namespace: str, key: Hashable, value: Any) -> None:
        bucket = self._bucket(namespace)
        if key in bucket:
            bucket.move_to_end(key)
        bucket[key] = value

        cap = self._capacities.get(namespace)
        if cap is None:
            return
        while len(bucket) > cap:
            bucket.popitem(last=False)
            evicted = self.evictions.get(namespace, 0) + 1
            self.evictions[namespace] = evicted
            if evicted == 1 or evicted % EVICTION_LOG_EVERY == 0:
                print(f"[State] namespace={namespace} at capacity={cap}; evicted={evicted}")

    def delete(self, namespace: str, key: Hashable) -> bool:
        bucket = self._data.get(namespace)
        if bucket is None or key not in bucket:
            return False
        del bucket[key]
        return True

    def contains(self, namespace: str, key: Hashable) -> bool:
        bucket = self._data.get(namespace)
        return bucket is not None and key in bucket
