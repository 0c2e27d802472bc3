"""
Setup Protocol Engine
=====================

Turns a party's intent ("submit my proposal", "approve my partner's")
into exactly one conditional merge-write on the shared document.

The flow of every action:

    identity ──► role
        │
        ▼
    store.get ──► SetupDocument          (re-read: never act on a stale phase)
        │
        ▼
    policy.validate_* ──► OutOfTurn / NoProposalYet / TooManyParticipants
        │
        ▼
    build_*_intent ──► WriteIntent       (pure: fields + precondition)
        │
        ▼
    store.merge_write(fields, precondition={"phase": <read phase>, ...})

The precondition makes the write conditional on the phase read
immediately before it. If the other party (or this party's own earlier
call) moved the phase in between, the write is refused and reported as
OutOfTurn. Nothing is applied twice.

Local state is never advanced here. The caller learns about the new
phase from the store's subscription echo (see projection.py).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from ..coordination import SetupPolicy
from ..errors import IdentityUnavailable, OutOfTurn, PreconditionFailed, SetupError
from ..evaluation import NegotiationTracer
from ..fsm import INITIAL_PHASE, Action, Role, SetupPhase, is_terminal, next_phase
from ..protocol import document as doc_fields
from ..protocol.document import SetupDocument, field_path, initial_fields, missing_fields
from ..protocol.steps import StepCatalog
from ..protocol.values import copy_plain
from ..transport import DELETE_FIELD, SERVER_TIMESTAMP, DocumentStore


logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT_PATH = "pairSpaces/{pairing_id}/setup/current"

ADVANCE_STEP = "advance_step"


# ============================================================================
# Write intents
# ============================================================================

@dataclass(frozen=True)
class WriteIntent:
    """
    The exact merge-write one valid action produces.

    `fields` uses dotted paths; `precondition` lists the top-level values
    the document must still hold for the write to apply.
    """
    action: str
    step: str
    from_phase: SetupPhase
    to_phase: SetupPhase
    fields: Dict[str, Any] = field(default_factory=dict)
    precondition: Dict[str, Any] = field(default_factory=dict)


def _guard(document: SetupDocument) -> Dict[str, Any]:
    return {
        doc_fields.PHASE: document.phase.value,
        doc_fields.STEP: document.step,
        doc_fields.STEP_INDEX: document.step_index,
    }


def build_submit_intent(
    document: SetupDocument,
    my_uid: str,
    role: Role,
    payload_fields: Dict[str, Any],
    policy: Optional[SetupPolicy] = None,
) -> WriteIntent:
    """
    Merge-write for `role` submitting `payload_fields` (already encoded).

    Raises:
        OutOfTurn: (role, phase) is not a submission turn
        TooManyParticipants: the caller would be a third answering party
    """
    policy = policy or SetupPolicy()
    result = policy.validate_submission(document, my_uid, role)
    if not result.allowed:
        raise result.to_error()

    target = next_phase(document.phase, role, Action.SUBMIT)
    return WriteIntent(
        action=Action.SUBMIT.value,
        step=document.step,
        from_phase=document.phase,
        to_phase=target,
        fields={
            field_path(doc_fields.ANSWERS, my_uid): copy_plain(payload_fields),
            field_path(doc_fields.SUBMITTED, my_uid): True,
            doc_fields.PHASE: target.value,
            doc_fields.UPDATED_AT: SERVER_TIMESTAMP,
        },
        precondition=_guard(document),
    )


def build_approve_intent(
    document: SetupDocument,
    my_uid: str,
    role: Role,
    policy: Optional[SetupPolicy] = None,
) -> WriteIntent:
    """
    Merge-write for `role` approving the partner's current proposal.

    The partner's payload is snapshotted (deep copy) into
    approvedAnswers.<partner>, so later edits to answers never
    rewrite what was approved.

    Raises:
        OutOfTurn: (role, phase) is not an approval turn
        NoProposalYet: the partner has not submitted
        TooManyParticipants: answers hold more than one other party
    """
    policy = policy or SetupPolicy()
    result = policy.validate_approval(document, my_uid, role)
    if not result.allowed:
        raise result.to_error()

    partner_uid, partner_payload = document.partner_answer(my_uid)
    target = next_phase(document.phase, role, Action.APPROVE)

    fields = {
        field_path(doc_fields.APPROVALS, my_uid): True,
        field_path(doc_fields.APPROVED_ANSWERS, partner_uid): copy_plain(partner_payload),
        doc_fields.PHASE: target.value,
        doc_fields.UPDATED_AT: SERVER_TIMESTAMP,
    }
    if is_terminal(target):
        fields[doc_fields.COMPLETED_AT] = SERVER_TIMESTAMP

    return WriteIntent(
        action=Action.APPROVE.value,
        step=document.step,
        from_phase=document.phase,
        to_phase=target,
        fields=fields,
        precondition=_guard(document),
    )


def build_advance_intent(
    document: SetupDocument,
    role: Role,
    catalog: StepCatalog,
    policy: Optional[SetupPolicy] = None,
) -> WriteIntent:
    """
    Merge-write moving a complete step on to the next one.

    The finished step's approval snapshots are archived under
    history.<step>; per-step fields are reset and the phase cycle
    starts again at awaitingASubmission.
    """
    policy = policy or SetupPolicy()
    upcoming = catalog.next_step(document.step)
    result = policy.validate_advance(document, role, upcoming)
    if not result.allowed:
        raise result.to_error()

    archived = {
        doc_fields.APPROVED_ANSWERS: copy_plain(document.approved_answers),
        doc_fields.COMPLETED_AT: document.completed_at or SERVER_TIMESTAMP,
    }
    return WriteIntent(
        action=ADVANCE_STEP,
        step=upcoming,
        from_phase=document.phase,
        to_phase=INITIAL_PHASE,
        fields={
            field_path(doc_fields.HISTORY, document.step): archived,
            doc_fields.STEP: upcoming,
            doc_fields.STEP_INDEX: catalog.index_of(upcoming),
            doc_fields.PHASE: INITIAL_PHASE.value,
            doc_fields.ANSWERS: {},
            doc_fields.SUBMITTED: {},
            doc_fields.APPROVALS: {},
            doc_fields.APPROVED_ANSWERS: {},
            doc_fields.COMPLETED_AT: DELETE_FIELD,
            doc_fields.UPDATED_AT: SERVER_TIMESTAMP,
        },
        precondition=_guard(document),
    )


# ============================================================================
# Engine
# ============================================================================

class SetupProtocolEngine:
    """
    Protocol engine for one party in one pairing.

    Dependencies are injected so tests can pass an in-memory store and
    a fixed identity:

        engine = SetupProtocolEngine(store, identity, pairing_id)
        await engine.ensure_document()
        await engine.submit(BlockSchedule(start_minutes=1260, end_minutes=420))
    """

    def __init__(
        self,
        store: DocumentStore,
        identity,
        pairing_id: str,
        catalog: Optional[StepCatalog] = None,
        policy: Optional[SetupPolicy] = None,
        tracer: Optional[NegotiationTracer] = None,
        document_path: str = DEFAULT_DOCUMENT_PATH,
    ):
        self.store = store
        self.identity = identity
        self.pairing_id = pairing_id
        self.catalog = catalog or StepCatalog()
        self.policy = policy or SetupPolicy()
        self.tracer = tracer
        self.document_key = document_path.format(pairing_id=pairing_id)

    # -- identity --------------------------------------------------------------

    def whoami(self) -> Tuple[str, Role]:
        """(uid, role) of the current user. Raises IdentityUnavailable when signed out."""
        uid = self.identity.current_user_id()
        if not uid:
            raise IdentityUnavailable()
        return uid, self.identity.role_for_pairing(self.pairing_id)

    # -- reads -----------------------------------------------------------------

    def decode(self, snapshot: Optional[Dict[str, Any]]) -> SetupDocument:
        """Snapshot -> SetupDocument. A missing document reads as a fresh one."""
        if snapshot is None:
            return SetupDocument(step=self.catalog.first)
        return SetupDocument.from_dict(snapshot, default_step=self.catalog.first)

    async def ensure_document(self) -> bool:
        """
        Create the document if absent. Returns True if this call created it.

        Two clients racing here is fine: the loser's create is a no-op.
        An existing document gets any missing top-level fields backfilled.
        """
        initial = initial_fields(self.catalog.first)
        initial[doc_fields.UPDATED_AT] = SERVER_TIMESTAMP
        created = await self.store.create(self.document_key, initial)
        if created:
            logger.info("Initialized setup document %s", self.document_key)
            return True

        snapshot = await self.store.get(self.document_key) or {}
        backfill = missing_fields(snapshot, self.catalog.first)
        if backfill:
            logger.info("Backfilling %s on %s", sorted(backfill), self.document_key)
            await self.store.merge_write(self.document_key, backfill)
        return False

    async def read(self) -> SetupDocument:
        snapshot = await self.store.get(self.document_key)
        return self.decode(snapshot)

    # -- actions ---------------------------------------------------------------

    async def submit(self, payload: Any) -> WriteIntent:
        """
        Submit a proposal for the active step.

        `payload` is the step's payload type (e.g. BlockSchedule) or a
        complete plain mapping of its document fields.
        """
        uid, role = self.whoami()
        try:
            document = await self.read()
            encoded = self.catalog.get(document.step).encode(payload)
            intent = build_submit_intent(document, uid, role, encoded, self.policy)
        except SetupError as exc:
            self._rejected(Action.SUBMIT.value, uid, exc)
            raise
        return await self._commit(intent, uid, role)

    async def approve(self) -> WriteIntent:
        """Approve the partner's current proposal."""
        uid, role = self.whoami()
        try:
            document = await self.read()
            intent = build_approve_intent(document, uid, role, self.policy)
        except SetupError as exc:
            self._rejected(Action.APPROVE.value, uid, exc)
            raise
        return await self._commit(intent, uid, role)

    async def advance_step(self) -> WriteIntent:
        """Move a complete step on to the next configured step (exactly once)."""
        uid, role = self.whoami()
        try:
            document = await self.read()
            intent = build_advance_intent(document, role, self.catalog, self.policy)
        except SetupError as exc:
            self._rejected(ADVANCE_STEP, uid, exc)
            raise
        return await self._commit(intent, uid, role)

    # -- internals -------------------------------------------------------------

    async def _commit(self, intent: WriteIntent, uid: str, role: Role) -> WriteIntent:
        try:
            await self.store.merge_write(
                self.document_key,
                intent.fields,
                precondition=intent.precondition,
            )
        except PreconditionFailed as exc:
            error = OutOfTurn("Phase changed. Try again.")
            self._rejected(intent.action, uid, error)
            raise error from exc
        except SetupError as exc:
            logger.warning(
                "%s by %s on %s failed: %s",
                intent.action, uid, self.document_key, exc.message,
            )
            self._rejected(intent.action, uid, exc)
            raise

        logger.info(
            "%s %s by %s (%s): %s -> %s",
            intent.step, intent.action, uid, role.value,
            intent.from_phase.value, intent.to_phase.value,
        )
        if self.tracer is not None:
            self.tracer.log_transition(
                self.document_key,
                action=intent.action,
                uid=uid,
                role=role.value,
                step=intent.step,
                from_phase=intent.from_phase.value,
                to_phase=intent.to_phase.value,
            )
        return intent

    def _rejected(self, action: str, uid: Optional[str], error: SetupError) -> None:
        logger.info("Rejected %s by %s on %s: %s", action, uid, self.document_key, error.code)
        if self.tracer is not None:
            self.tracer.log_rejection(self.document_key, action, uid, error.code, error.message)
