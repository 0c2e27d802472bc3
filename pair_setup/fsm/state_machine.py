"""
Setup Phase State Machine
=========================

The single source of truth for "whose turn is it".

State Diagram:

    ┌─────────────────────┐
    │ awaitingASubmission │ ─── A submits ───┐
    └─────────────────────┘                  ▼
                                  ┌───────────────────┐
                                  │ awaitingBApproval │
                                  └───────────────────┘
                                             │ B approves
                                             ▼
    ┌───────────────────┐        ┌─────────────────────┐
    │ awaitingAApproval │ ◄───── │ awaitingBSubmission │
    └───────────────────┘  B     └─────────────────────┘
              │         submits
              │ A approves
              ▼
         ┌──────────┐
         │ complete │   TERMINAL (no outgoing transitions)
         └──────────┘

ALTERNATION GUARANTEE:
- Every non-terminal phase names exactly one role and exactly one action
- No phase grants both submit and approve to the same role
- Therefore two correct clients can never write the same fields at once
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple


class SetupPhase(str, Enum):
    """
    Phases of one negotiation step.

    The raw values are the persisted strings. Both parties share this
    one enum so their builds can never disagree on the raw value set.
    """
    AWAITING_A_SUBMISSION = "awaitingASubmission"
    AWAITING_B_APPROVAL = "awaitingBApproval"
    AWAITING_B_SUBMISSION = "awaitingBSubmission"
    AWAITING_A_APPROVAL = "awaitingAApproval"
    COMPLETE = "complete"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "SetupPhase":
        """Lenient read of a stored phase. Unknown or missing -> initial phase."""
        try:
            return cls(raw)
        except ValueError:
            return INITIAL_PHASE


class Role(str, Enum):
    """A party's fixed role within a pairing."""
    A = "A"
    B = "B"
    NONE = "none"

    @property
    def partner(self) -> "Role":
        if self is Role.A:
            return Role.B
        if self is Role.B:
            return Role.A
        return Role.NONE


class Action(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"


INITIAL_PHASE = SetupPhase.AWAITING_A_SUBMISSION

TERMINAL_PHASES: FrozenSet[SetupPhase] = frozenset({SetupPhase.COMPLETE})

# (phase) -> (role allowed to act, action, next phase)
TRANSITIONS: Dict[SetupPhase, Tuple[Role, Action, SetupPhase]] = {
    SetupPhase.AWAITING_A_SUBMISSION: (Role.A, Action.SUBMIT, SetupPhase.AWAITING_B_APPROVAL),
    SetupPhase.AWAITING_B_APPROVAL: (Role.B, Action.APPROVE, SetupPhase.AWAITING_B_SUBMISSION),
    SetupPhase.AWAITING_B_SUBMISSION: (Role.B, Action.SUBMIT, SetupPhase.AWAITING_A_APPROVAL),
    SetupPhase.AWAITING_A_APPROVAL: (Role.A, Action.APPROVE, SetupPhase.COMPLETE),
}


def is_terminal(phase: SetupPhase) -> bool:
    return phase in TERMINAL_PHASES


def expected_actor(phase: SetupPhase) -> Role:
    """The only role that may act in this phase (NONE when terminal)."""
    if phase in TRANSITIONS:
        return TRANSITIONS[phase][0]
    return Role.NONE


def allowed_action(role: Role, phase: SetupPhase) -> Optional[Action]:
    """The one action `role` may take in `phase`, or None."""
    entry = TRANSITIONS.get(phase)
    if entry is None or entry[0] is not role:
        return None
    return entry[1]


def can_submit(role: Role, phase: SetupPhase) -> bool:
    return allowed_action(role, phase) is Action.SUBMIT


def can_approve(role: Role, phase: SetupPhase) -> bool:
    return allowed_action(role, phase) is Action.APPROVE


def next_phase(phase: SetupPhase, role: Role, action: Action) -> Optional[SetupPhase]:
    """
    Phase reached when `role` performs `action` in `phase`.

    Returns None for every illegal (phase, role, action) combination.
    """
    entry = TRANSITIONS.get(phase)
    if entry is None:
        return None
    actor, expected, target = entry
    if actor is not role or expected is not action:
        return None
    return target


class SetupFSM:
    """
    Local mirror of one document's phase.

    The document store stays authoritative. The FSM only answers
    questions about the phase it was last told about and is
    re-synchronised from every snapshot with `observe`.
    """

    def __init__(self, phase: SetupPhase = INITIAL_PHASE):
        self.phase = phase
        self.history = [phase]

    def observe(self, phase: SetupPhase) -> bool:
        """Adopt a phase read from the store. Returns True if it changed."""
        if phase == self.phase:
            return False
        self.phase = phase
        self.history.append(phase)
        return True

    def is_terminal(self) -> bool:
        return is_terminal(self.phase)

    def can_submit(self, role: Role) -> bool:
        return can_submit(role, self.phase)

    def can_approve(self, role: Role) -> bool:
        return can_approve(role, self.phase)

    def apply(self, role: Role, action: Action) -> bool:
        """Advance locally. Returns False (and stays put) on an illegal action."""
        target = next_phase(self.phase, role, action)
        if target is None:
            return False
        self.observe(target)
        return True

    def check_invariants(self) -> bool:
        """
        Check that the transition table invariants hold.

        These should NEVER be violated.
        """
        for phase in SetupPhase:
            for role in Role:
                assert not (can_submit(role, phase) and can_approve(role, phase))
        for phase in TERMINAL_PHASES:
            assert phase not in TRANSITIONS
        return True
