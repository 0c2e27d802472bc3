"""
Shared Document Store
=====================

The only channel between the two parties. They never talk directly:
each one reads, merge-writes and subscribes to the same document.

    DocumentStore          the interface the core consumes
    InMemoryDocumentStore  a complete in-process implementation

Why an in-memory store is enough here:
1. The protocol only needs get / create / merge_write / subscribe
2. The same contract maps onto any realtime document database
3. Tests can inject failures and interleavings deterministically

Contract details:
- merge_write paths are dotted ("answers.<uid>"); the value at the
  path is replaced wholesale, sibling fields are untouched
- SERVER_TIMESTAMP is resolved by the store, DELETE_FIELD removes a field
- an optional precondition is checked atomically with the write
- subscribers receive the full document (never deltas), immediately on
  subscribe and after every successful write
"""

import asyncio
import copy
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Type

from ..errors import PreconditionFailed, StoreError, StoreUnavailable, WriteFailed


logger = logging.getLogger(__name__)

Snapshot = Optional[Dict[str, Any]]
SnapshotCallback = Callable[[Snapshot], None]


# =============================================================================
# Sentinels
# =============================================================================

class _Sentinel:
    def __init__(self, name: str):
        self._name = name

    def __repr__(self) -> str:
        return self._name

    def __deepcopy__(self, memo):
        return self


SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")
DELETE_FIELD = _Sentinel("DELETE_FIELD")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Subscription handle
# =============================================================================

@dataclass
class SubscriptionHandle:
    """Returned by subscribe; pass it back to unsubscribe."""
    subscription_id: str
    key: str
    active: bool = True


# =============================================================================
# Interface
# =============================================================================

class DocumentStore(ABC):
    """Document store API consumed by the setup core."""

    @abstractmethod
    async def get(self, key: str) -> Snapshot:
        """Current document, or None if it does not exist."""

    @abstractmethod
    async def create(self, key: str, initial: Dict[str, Any]) -> bool:
        """Create the document if absent. Returns False if it already existed."""

    @abstractmethod
    async def merge_write(
        self,
        key: str,
        fields: Dict[str, Any],
        precondition: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Merge dotted-path fields into the document. Returns the new document."""

    @abstractmethod
    def subscribe(self, key: str, callback: SnapshotCallback) -> SubscriptionHandle:
        """Deliver full snapshots of `key` to `callback` until unsubscribed."""

    @abstractmethod
    def unsubscribe(self, handle: Optional[SubscriptionHandle]) -> None:
        """Release a subscription. Safe to call twice or with None."""


# =============================================================================
# Merge helpers
# =============================================================================

def _resolve(value: Any, now: datetime) -> Any:
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, dict):
        return {k: _resolve(v, now) for k, v in value.items() if v is not DELETE_FIELD}
    if isinstance(value, list):
        return [_resolve(v, now) for v in value]
    return copy.deepcopy(value)


def apply_merge(document: Dict[str, Any], fields: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    """
    Apply a merge write to a copy of `document`.

    Example:
        apply_merge({"answers": {"A": {...}}}, {"answers.B": {...}}, now)
        # {"answers": {"A": {...}, "B": {...}}}
    """
    result = copy.deepcopy(document)
    for path, value in fields.items():
        parts = path.split(".")
        target = result
        for part in parts[:-1]:
            child = target.get(part)
            if not isinstance(child, dict):
                if value is DELETE_FIELD:
                    target = None
                    break
                child = {}
                target[part] = child
            target = child
        if target is None:
            continue
        if value is DELETE_FIELD:
            target.pop(parts[-1], None)
        else:
            target[parts[-1]] = _resolve(value, now)
    return result


# =============================================================================
# In-memory implementation
# =============================================================================

class InMemoryDocumentStore(DocumentStore):
    """
    In-process document store with realtime subscriptions.

    Test hooks:
        store.available = False         every call raises StoreUnavailable
        store.fail_next(2)              next two writes raise WriteFailed
        store.latency = 0.01            every call yields to the loop first
    """

    def __init__(self, latency: float = 0.0, clock: Callable[[], datetime] = utcnow):
        self.latency = latency
        self.available = True
        self._clock = clock
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._subscribers: Dict[str, Dict[str, SnapshotCallback]] = {}
        self._pending_failures: List[Type[StoreError]] = []
        self._ids = itertools.count(1)
        self._lock = Lock()
        self.write_count = 0

    # -- test hooks ----------------------------------------------------------

    def fail_next(self, count: int = 1, error: Type[StoreError] = WriteFailed) -> None:
        """Make the next `count` writes fail with `error`."""
        with self._lock:
            self._pending_failures.extend([error] * count)

    def subscriber_count(self, key: str) -> int:
        with self._lock:
            return len(self._subscribers.get(key, {}))

    def peek(self, key: str) -> Snapshot:
        """Synchronous read, for tests and the demo runner."""
        with self._lock:
            doc = self._documents.get(key)
            return copy.deepcopy(doc) if doc is not None else None

    # -- internals -----------------------------------------------------------

    async def _suspend(self) -> None:
        await asyncio.sleep(self.latency)
        if not self.available:
            raise StoreUnavailable()

    def _take_failure(self) -> Optional[Type[StoreError]]:
        if self._pending_failures:
            return self._pending_failures.pop(0)
        return None

    def _notify(self, key: str, snapshot: Snapshot) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(key, {}).items())
        for subscription_id, callback in callbacks:
            try:
                callback(copy.deepcopy(snapshot))
            except Exception:
                logger.exception("Subscriber %s for %s raised", subscription_id, key)

    # -- DocumentStore -------------------------------------------------------

    async def get(self, key: str) -> Snapshot:
        await self._suspend()
        return self.peek(key)

    async def create(self, key: str, initial: Dict[str, Any]) -> bool:
        await self._suspend()
        with self._lock:
            failure = self._take_failure()
            if failure is not None:
                raise failure()
            if key in self._documents:
                return False
            now = self._clock()
            document = apply_merge({}, initial, now)
            document.setdefault("updatedAt", now)
            self._documents[key] = document
            self.write_count += 1
            snapshot = copy.deepcopy(document)
        logger.debug("Created %s", key)
        self._notify(key, snapshot)
        return True

    async def merge_write(
        self,
        key: str,
        fields: Dict[str, Any],
        precondition: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        await self._suspend()
        with self._lock:
            failure = self._take_failure()
            if failure is not None:
                raise failure()
            current = self._documents.get(key)
            if current is None:
                raise WriteFailed(f"Document {key} does not exist")
            for name, expected in (precondition or {}).items():
                if current.get(name) != expected:
                    raise PreconditionFailed(
                        f"{name} is {current.get(name)!r}, expected {expected!r}"
                    )
            document = apply_merge(current, fields, self._clock())
            self._documents[key] = document
            self.write_count += 1
            snapshot = copy.deepcopy(document)
        logger.debug("Merged %s into %s", sorted(fields), key)
        self._notify(key, snapshot)
        return copy.deepcopy(snapshot)

    def subscribe(self, key: str, callback: SnapshotCallback) -> SubscriptionHandle:
        handle = SubscriptionHandle(subscription_id=f"sub_{next(self._ids)}", key=key)
        with self._lock:
            self._subscribers.setdefault(key, {})[handle.subscription_id] = callback
            current = copy.deepcopy(self._documents.get(key))
        logger.debug("Subscribed %s to %s", handle.subscription_id, key)
        try:
            callback(current)
        except Exception:
            logger.exception("Subscriber %s for %s raised", handle.subscription_id, key)
        return handle

    def unsubscribe(self, handle: Optional[SubscriptionHandle]) -> None:
        if handle is None or not handle.active:
            return
        with self._lock:
            self._subscribers.get(handle.key, {}).pop(handle.subscription_id, None)
            if not self._subscribers.get(handle.key):
                self._subscribers.pop(handle.key, None)
        handle.active = False
        logger.debug("Unsubscribed %s from %s", handle.subscription_id, handle.key)


# =============================================================================
# Snapshot stream
# =============================================================================

class SnapshotStream:
    """
    Async iterator over the snapshots of one document.

    A restartable, non-terminating stream: it ends only when closed.
    When the consumer falls behind, older pending snapshots are dropped,
    so the consumer always sees the latest state.

    Usage:
        async with SnapshotStream(store, key) as stream:
            async for snapshot in stream:
                ...
    """

    _CLOSED = object()

    def __init__(self, store: DocumentStore, key: str, max_pending: int = 1):
        self._store = store
        self._key = key
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue(maxsize=max(1, max_pending))
        self._handle: Optional[SubscriptionHandle] = None

    def open(self) -> "SnapshotStream":
        if self._handle is None:
            self._handle = self._store.subscribe(self._key, self._push)
        return self

    def close(self) -> None:
        if self._handle is None:
            return
        self._store.unsubscribe(self._handle)
        self._handle = None
        self._put(self._CLOSED)

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def _put(self, item: Any) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(item)

    def _push(self, snapshot: Snapshot) -> None:
        self._put(snapshot)

    def __aiter__(self) -> "SnapshotStream":
        return self

    async def __anext__(self) -> Snapshot:
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "SnapshotStream":
        return self.open()

    async def __aexit__(self, *exc_info) -> None:
        self.close()
