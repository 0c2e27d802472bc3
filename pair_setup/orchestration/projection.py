"""
Realtime Projection
===================

Keeps one party's screen in sync with the shared document.

    store ──snapshot──► RealtimeProjection ──► SetupDocument ──► SetupView
                               │                                    │
                               └── phase changed? ──► observers ◄───┘

Rules:
- One subscription per projection; attach twice, still one subscription
- The document is ensured (create-if-absent) before subscribing
- Every snapshot is the full document and is treated as authoritative
- A snapshot equal to the previous one publishes nothing
- Skipped intermediate phases are fine: the observer is told
  (previous, new) as seen, never a reconstructed path
- After detach, late snapshots are ignored
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, List, Optional

from ..fsm import Role, SetupFSM, SetupPhase
from ..protocol.document import SetupDocument
from ..transport import SubscriptionHandle
from .view import SetupView, derive_view


logger = logging.getLogger(__name__)

ViewCallback = Callable[[SetupView], None]
PhaseCallback = Callable[[SetupPhase, SetupPhase, SetupView], None]

_UNSET = object()
_CLOSED = object()


class RealtimeProjection:
    """
    Subscription plus decode plus derived view, for one party and one document.

    Usage:
        projection = RealtimeProjection(engine, on_view=render)
        await projection.attach()
        ...
        projection.detach()
    """

    def __init__(
        self,
        engine,
        on_view: Optional[ViewCallback] = None,
        on_phase_changed: Optional[PhaseCallback] = None,
    ):
        self.engine = engine
        self._view_observers: List[ViewCallback] = []
        self._phase_observers: List[PhaseCallback] = []
        if on_view is not None:
            self._view_observers.append(on_view)
        if on_phase_changed is not None:
            self._phase_observers.append(on_phase_changed)

        self._handle: Optional[SubscriptionHandle] = None
        self._active = False
        self._fsm: Optional[SetupFSM] = None
        self._step: Optional[str] = None
        self._last_snapshot = _UNSET
        self._queues: List[asyncio.Queue] = []

        self.latest_document: Optional[SetupDocument] = None
        self.latest_view: Optional[SetupView] = None
        self.snapshot_count = 0
        self.publish_count = 0

    # -- observers -------------------------------------------------------------

    def add_view_observer(self, callback: ViewCallback) -> None:
        self._view_observers.append(callback)

    def add_phase_observer(self, callback: PhaseCallback) -> None:
        self._phase_observers.append(callback)

    # -- lifecycle -------------------------------------------------------------

    @property
    def is_attached(self) -> bool:
        return self._active

    async def attach(self) -> SubscriptionHandle:
        """Ensure the document exists, then subscribe (once)."""
        if self._handle is not None:
            return self._handle

        await self.engine.ensure_document()

        # another attach() may have finished while we were awaiting
        if self._handle is not None:
            return self._handle

        self._active = True
        self._handle = self.engine.store.subscribe(self.engine.document_key, self._on_snapshot)
        logger.debug("Projection attached to %s", self.engine.document_key)
        return self._handle

    def detach(self) -> None:
        """Release the subscription. Safe to call when not attached."""
        if self._handle is None:
            return
        self._active = False
        self.engine.store.unsubscribe(self._handle)
        self._handle = None
        self._last_snapshot = _UNSET
        for queue in list(self._queues):
            _offer(queue, _CLOSED)
        logger.debug("Projection detached from %s", self.engine.document_key)

    # -- snapshot handling -----------------------------------------------------

    def _identity(self):
        identity = self.engine.identity
        uid = identity.current_user_id()
        if not uid:
            return None, Role.NONE
        return uid, identity.role_for_pairing(self.engine.pairing_id)

    def _on_snapshot(self, snapshot) -> None:
        if not self._active:
            return
        self.snapshot_count += 1
        if snapshot == self._last_snapshot:
            return
        self._last_snapshot = snapshot

        document = self.engine.decode(snapshot)
        uid, role = self._identity()
        view = derive_view(document, uid, role, self.engine.catalog)

        previous = self._fsm.phase if self._fsm is not None else None
        if self._fsm is None:
            self._fsm = SetupFSM(document.phase)
            changed = False
        else:
            changed = self._fsm.observe(document.phase) or document.step != self._step
        self._step = document.step

        self.latest_document = document
        self.latest_view = view
        self.publish_count += 1
        self._publish(view)

        if changed:
            logger.debug(
                "%s phase %s -> %s (%s)",
                self.engine.document_key, previous.value, document.phase.value, document.step,
            )
            for callback in list(self._phase_observers):
                try:
                    callback(previous, document.phase, view)
                except Exception:
                    logger.exception("Phase observer failed for %s", self.engine.document_key)

    def _publish(self, view: SetupView) -> None:
        for callback in list(self._view_observers):
            try:
                callback(view)
            except Exception:
                logger.exception("View observer failed for %s", self.engine.document_key)
        for queue in list(self._queues):
            _offer(queue, view)

    # -- stream ----------------------------------------------------------------

    async def views(self) -> AsyncIterator[SetupView]:
        """
        Async stream of views, latest first, until detach().

        A slow consumer only ever sees the newest view.
        """
        if not self._active:
            return
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._queues.append(queue)
        try:
            if self.latest_view is not None:
                _offer(queue, self.latest_view)
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            if queue in self._queues:
                self._queues.remove(queue)


def _offer(queue: asyncio.Queue, item) -> None:
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(item)
