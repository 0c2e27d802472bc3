"""
Derived Setup View
==================

Pure functions of (document, my_uid, role). Nothing here reads or
writes the store.

`derive_view` is total: every (phase, role) pair, including the
terminal phase and a caller with no role, maps to a defined view and
waiting message.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from ..errors import UnknownStep
from ..fsm import Role, SetupPhase, can_approve, can_submit, is_terminal
from ..protocol import document as doc_fields
from ..protocol.document import SetupDocument
from ..protocol.steps import AppSelection, BlockSchedule, StepCatalog, StepDefinition


# ============================================================
# WAITING MESSAGES
# ============================================================

_YOUR_SUBMIT = "Pick your proposal and submit to share it with your partner."
_YOUR_APPROVAL = "Review your partner's proposal and approve it."
_PARTNER_SUBMITS = "Waiting for your partner to submit…"
_PARTNER_APPROVES = "Waiting for your partner to approve…"
_COMPLETE = "Setup complete."
_NOT_A_MEMBER = "You are not part of this pairing."

WAITING_MESSAGES: Dict[Tuple[SetupPhase, Role], str] = {
    (SetupPhase.AWAITING_A_SUBMISSION, Role.A): _YOUR_SUBMIT,
    (SetupPhase.AWAITING_A_SUBMISSION, Role.B): _PARTNER_SUBMITS,
    (SetupPhase.AWAITING_B_APPROVAL, Role.A): _PARTNER_APPROVES,
    (SetupPhase.AWAITING_B_APPROVAL, Role.B): _YOUR_APPROVAL,
    (SetupPhase.AWAITING_B_SUBMISSION, Role.A): _PARTNER_SUBMITS,
    (SetupPhase.AWAITING_B_SUBMISSION, Role.B): _YOUR_SUBMIT,
    (SetupPhase.AWAITING_A_APPROVAL, Role.A): _YOUR_APPROVAL,
    (SetupPhase.AWAITING_A_APPROVAL, Role.B): _PARTNER_APPROVES,
    (SetupPhase.COMPLETE, Role.A): _COMPLETE,
    (SetupPhase.COMPLETE, Role.B): _COMPLETE,
}

_LONG_PARTNER_CHOOSING = "Your partner is choosing. Please look at their phone."
_LONG_PARTNER_CONFIRMING = "Waiting for your partner to confirm your proposal."

WAITING_MESSAGES_LONG: Dict[Tuple[SetupPhase, Role], str] = {
    (SetupPhase.AWAITING_A_SUBMISSION, Role.B): _LONG_PARTNER_CHOOSING,
    (SetupPhase.AWAITING_B_APPROVAL, Role.A): _LONG_PARTNER_CONFIRMING,
    (SetupPhase.AWAITING_B_SUBMISSION, Role.A): _LONG_PARTNER_CHOOSING,
    (SetupPhase.AWAITING_A_APPROVAL, Role.B): _LONG_PARTNER_CONFIRMING,
}


def waiting_message(phase: SetupPhase, role: Role) -> str:
    if role is Role.NONE:
        return _COMPLETE if is_terminal(phase) else _NOT_A_MEMBER
    return WAITING_MESSAGES[(phase, role)]


def waiting_message_long(phase: SetupPhase, role: Role) -> str:
    """Full-screen copy shown to the party who has to wait."""
    if (phase, role) in WAITING_MESSAGES_LONG:
        return WAITING_MESSAGES_LONG[(phase, role)]
    return waiting_message(phase, role)


# ============================================================
# VIEW
# ============================================================

@dataclass(frozen=True)
class SetupView:
    """Read-only view state handed to the presentation layer per render."""
    step: str
    step_index: int
    total_steps: int
    phase: SetupPhase
    role: Role
    my_uid: Optional[str]
    my_answer: Any = None
    partner_answer: Any = None
    my_submitted: bool = False
    partner_submitted: bool = False
    my_approved: bool = False
    partner_approved: bool = False
    my_approved_answer: Any = None
    partner_approved_answer: Any = None
    can_submit: bool = False
    can_approve: bool = False
    waiting_message: str = ""
    waiting_message_long: str = ""
    defaulted_fields: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def progress(self) -> float:
        index = min(max(self.step_index, 0), self.total_steps - 1)
        return (index + 1) / self.total_steps

    @property
    def is_waiting(self) -> bool:
        return not (self.can_submit or self.can_approve) and not is_terminal(self.phase)

    @property
    def is_step_complete(self) -> bool:
        return is_terminal(self.phase)

    @property
    def is_flow_complete(self) -> bool:
        return is_terminal(self.phase) and self.step_index >= self.total_steps - 1

    @property
    def defaulted(self) -> bool:
        return bool(self.defaulted_fields)


def _definition(catalog: StepCatalog, step: str) -> Optional[StepDefinition]:
    try:
        return catalog.get(step)
    except UnknownStep:
        return None


def _decode(definition: Optional[StepDefinition], raw: Optional[Dict[str, Any]], label: str, defaulted: list) -> Any:
    if raw is None:
        return None
    if definition is None:
        return dict(raw)
    result = definition.decode(raw)
    defaulted.extend(f"{label}.{name}" for name in result.defaulted_fields)
    return result.payload


def derive_view(
    document: SetupDocument,
    my_uid: Optional[str],
    role: Role,
    catalog: Optional[StepCatalog] = None,
) -> SetupView:
    """
    Compute the view for one party.

    Payloads are decoded with the step's definition; a step the catalog
    does not know leaves them as plain mappings.
    """
    catalog = catalog or StepCatalog()
    definition = _definition(catalog, document.step)
    phase = document.phase
    defaulted: list = []

    partner = document.partner_answer(my_uid) if my_uid else None
    my_raw = document.answers.get(my_uid) if my_uid else None

    if my_uid:
        partner_submitted = document.partner_flag(document.submitted, my_uid)
        partner_approved = document.partner_flag(document.approvals, my_uid)
        partner_approved_raw = document.partner_approved_answer(my_uid)
    else:
        partner_submitted = partner_approved = False
        partner_approved_raw = None

    return SetupView(
        step=document.step,
        step_index=document.step_index,
        total_steps=len(catalog),
        phase=phase,
        role=role,
        my_uid=my_uid,
        my_answer=_decode(definition, my_raw, "my_answer", defaulted),
        partner_answer=_decode(definition, partner[1] if partner else None, "partner_answer", defaulted),
        my_submitted=bool(my_uid) and document.submitted.get(my_uid, False),
        partner_submitted=partner_submitted,
        my_approved=bool(my_uid) and document.approvals.get(my_uid, False),
        partner_approved=partner_approved,
        my_approved_answer=_decode(
            definition,
            document.approved_answers.get(my_uid) if my_uid else None,
            "my_approved_answer",
            defaulted,
        ),
        partner_approved_answer=_decode(definition, partner_approved_raw, "partner_approved_answer", defaulted),
        can_submit=can_submit(role, phase),
        can_approve=can_approve(role, phase),
        waiting_message=waiting_message(phase, role),
        waiting_message_long=waiting_message_long(phase, role),
        defaulted_fields=tuple(defaulted),
    )


# ============================================================
# APPROVED CONFIGURATION
# ============================================================

@dataclass(frozen=True)
class ApprovedConfiguration:
    """What both parties agreed on, ready for the enforcement layer."""
    schedule: Optional[BlockSchedule] = None
    selection: AppSelection = AppSelection()


def _approved_snapshots(document: SetupDocument):
    for step, archived in document.history.items():
        snapshots = archived.get(doc_fields.APPROVED_ANSWERS)
        if isinstance(snapshots, dict):
            for uid in sorted(snapshots):
                yield step, snapshots[uid]
    for uid in sorted(document.approved_answers):
        yield document.step, document.approved_answers[uid]


def approved_configuration(document: SetupDocument, catalog: Optional[StepCatalog] = None) -> ApprovedConfiguration:
    """
    Fold every approval snapshot (archived steps first, then the
    current step) into one configuration.

    The schedule is the last complete BlockSchedule snapshot in that
    order (ids sorted within a step). App selections are unioned.
    Snapshots with missing schedule bounds are ignored.
    """
    catalog = catalog or StepCatalog()
    schedule = None
    selection = AppSelection()

    for step, raw in _approved_snapshots(document):
        definition = _definition(catalog, step)
        if definition is None or not isinstance(raw, dict):
            continue
        result = definition.decode(raw)
        if isinstance(result.payload, BlockSchedule):
            if not result.defaulted:
                schedule = result.payload
        elif isinstance(result.payload, AppSelection):
            selection = selection.union(result.payload)

    return ApprovedConfiguration(schedule=schedule, selection=selection)
