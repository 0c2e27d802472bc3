"""
Party Client
============

What one party can do from its setup screen.

This is the presentation boundary: intents go in, ActionResult values
come out. Every SetupError is turned into a failed result here and
nowhere else, so a screen never has to catch anything.

    client = PartyClient(engine)
    await client.open()
    result = await client.submit(BlockSchedule(1260, 420))
    if not result.ok:
        show(result.message)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from ..errors import OutOfTurn, SetupError
from ..orchestration import RealtimeProjection, SetupView, WriteIntent


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionResult:
    """Outcome of one intent."""
    ok: bool
    error: Optional[str] = None
    message: str = ""
    intent: Optional[WriteIntent] = None
    recoverable: bool = False

    @classmethod
    def success(cls, intent: Optional[WriteIntent] = None, message: str = "") -> "ActionResult":
        return cls(ok=True, intent=intent, message=message)

    @classmethod
    def failure(cls, error: SetupError) -> "ActionResult":
        return cls(
            ok=False,
            error=error.code,
            message=error.message,
            recoverable=error.recoverable,
        )


class PartyClient:
    """
    One party's session on one pairing's setup document.

    Holds the local draft and a `saving` flag. Writes are issued one at
    a time: a second intent while one is in flight is refused.

    With auto_advance, a complete non-final step is moved on to the
    next step as soon as this client sees it. Both clients may try;
    the store lets exactly one through and the other counts as done.
    """

    def __init__(
        self,
        engine,
        projection: Optional[RealtimeProjection] = None,
        auto_advance: bool = False,
    ):
        self.engine = engine
        self.projection = projection or RealtimeProjection(engine)
        self.auto_advance = auto_advance
        self.saving = False
        self._idle = asyncio.Event()
        self._idle.set()
        self.last_result: Optional[ActionResult] = None
        self._drafts: Dict[str, Any] = {}
        self._advanced_from: Set[int] = set()
        self._tasks: Set[asyncio.Task] = set()
        self.projection.add_view_observer(self._on_view)

    # -- lifecycle -------------------------------------------------------------

    async def open(self) -> Optional[SetupView]:
        """Ensure the document, subscribe, return the first view."""
        await self.projection.attach()
        return self.view

    def close(self) -> None:
        """
        Tear down the subscription.

        An in-flight write still completes in the store; its echo is no
        longer applied to this client.
        """
        self.projection.detach()

    async def settle(self) -> None:
        """Wait for background step advances started by this client."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # -- state -----------------------------------------------------------------

    @property
    def view(self) -> Optional[SetupView]:
        return self.projection.latest_view

    @property
    def draft(self) -> Any:
        """
        The proposal this party would submit right now.

        Local edits win, then this party's stored answer, then the
        step's default draft.
        """
        view = self.view
        step = view.step if view is not None else self.engine.catalog.first
        if step in self._drafts:
            return self._drafts[step]
        if view is not None and view.my_answer is not None:
            return view.my_answer
        return self.engine.catalog.get(step).default_draft()

    @draft.setter
    def draft(self, payload: Any) -> None:
        view = self.view
        step = view.step if view is not None else self.engine.catalog.first
        self._drafts[step] = payload

    # -- intents ---------------------------------------------------------------

    async def submit(self, payload: Any = None) -> ActionResult:
        """Submit `payload`, or the current draft when None."""
        if payload is None:
            payload = self.draft
        else:
            self.draft = payload
        return await self._run("submit", lambda: self.engine.submit(payload))

    async def approve(self) -> ActionResult:
        return await self._run("approve", self.engine.approve)

    async def advance_step(self) -> ActionResult:
        return await self._run("advance_step", self.engine.advance_step)

    async def _run(self, name: str, action: Callable[[], Awaitable[WriteIntent]]) -> ActionResult:
        if self.saving:
            result = ActionResult.failure(OutOfTurn("An action is already in progress."))
            self.last_result = result
            return result

        self.saving = True
        self._idle.clear()
        try:
            intent = await action()
        except SetupError as exc:
            logger.debug("%s failed for %s: %s", name, self.engine.document_key, exc.code)
            result = ActionResult.failure(exc)
        else:
            result = ActionResult.success(intent)
        finally:
            self.saving = False
            self._idle.set()

        self.last_result = result
        return result

    # -- auto advance ----------------------------------------------------------

    def _on_view(self, view: SetupView) -> None:
        if not self.auto_advance or not view.is_step_complete or view.is_flow_complete:
            return
        if view.step_index in self._advanced_from:
            return
        self._advanced_from.add(view.step_index)
        task = asyncio.get_running_loop().create_task(self._auto_advance(view.step_index))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _auto_advance(self, step_index: int) -> ActionResult:
        while self.saving:
            await self._idle.wait()
        result = await self.advance_step()
        if not result.ok and result.error == OutOfTurn.code:
            try:
                document = await self.engine.read()
            except SetupError as exc:
                result = ActionResult.failure(exc)
            else:
                if document.step_index > step_index:
                    logger.debug("Step %d already advanced by partner", step_index)
                    result = ActionResult.success(message="Already advanced.")
        if not result.ok:
            # allow a later snapshot to retry
            self._advanced_from.discard(step_index)
            logger.warning(
                "Auto-advance of %s from step %d failed: %s",
                self.engine.document_key, step_index, result.message,
            )
        return result
