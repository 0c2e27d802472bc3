"""
Setup Coordination Policy
=========================

Explicit rules deciding whether a party may act on the document.

This is NOT the FSM (which phase follows which).
This is NOT the engine (which fields get written).

This IS:
- Turn-taking checks against the phase read from the store
- The two-party invariant
- "Is there anything to approve?"
- Step advancement preconditions
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from ..errors import NoProposalYet, OutOfTurn, SetupError, TooManyParticipants
from ..fsm import Action, Role, SetupPhase, allowed_action, expected_actor, is_terminal
from ..protocol.document import SetupDocument


class PolicyViolation(Enum):
    """Types of policy violations."""
    WRONG_TURN = auto()             # Not this role's turn
    WRONG_ACTION = auto()           # This role's turn, but a different action
    NOT_A_MEMBER = auto()           # Caller has no role in the pairing
    NEGOTIATION_ENDED = auto()      # Acting after complete
    NO_PROPOSAL_YET = auto()        # Approving before the partner submitted
    TOO_MANY_PARTICIPANTS = auto()  # A third party in the document
    STEP_NOT_COMPLETE = auto()      # Advancing before complete
    NO_NEXT_STEP = auto()           # Advancing past the last step


_OUT_OF_TURN = {
    PolicyViolation.WRONG_TURN,
    PolicyViolation.WRONG_ACTION,
    PolicyViolation.NOT_A_MEMBER,
    PolicyViolation.NEGOTIATION_ENDED,
    PolicyViolation.STEP_NOT_COMPLETE,
    PolicyViolation.NO_NEXT_STEP,
}


@dataclass
class PolicyResult:
    """Result of a policy check."""
    allowed: bool
    violation: Optional[PolicyViolation] = None
    reason: str = ""

    def to_error(self) -> Optional[SetupError]:
        """The error a rejected check is reported as (None when allowed)."""
        if self.allowed:
            return None
        if self.violation is PolicyViolation.NO_PROPOSAL_YET:
            return NoProposalYet(self.reason or None)
        if self.violation is PolicyViolation.TOO_MANY_PARTICIPANTS:
            return TooManyParticipants(self.reason or None)
        return OutOfTurn(self.reason or None)


_DENIED_MESSAGES = {
    Action.SUBMIT: "You can't submit at this time.",
    Action.APPROVE: "You can't approve at this time.",
}


class SetupPolicy:
    """
    Coordination policy for the bilateral setup protocol.

    Rules:
    ------
    1. Membership: only A or B may act
    2. Turn-taking: only the role named by the phase may act
    3. Action: the phase names one action (submit or approve)
    4. Two parties: a document never holds answers from three ids
    5. Approval needs a partner proposal
    """

    def validate_turn(self, role: Role, phase: SetupPhase, action: Action) -> PolicyResult:
        """Rules 1-3."""
        if role is Role.NONE:
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.NOT_A_MEMBER,
                reason="You are not a member of this pairing.",
            )

        if is_terminal(phase):
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.NEGOTIATION_ENDED,
                reason="This step is already complete.",
            )

        actor = expected_actor(phase)
        if role is not actor:
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.WRONG_TURN,
                reason=_DENIED_MESSAGES[action],
            )

        if allowed_action(role, phase) is not action:
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.WRONG_ACTION,
                reason=_DENIED_MESSAGES[action],
            )

        return PolicyResult(allowed=True)

    def validate_participants(self, document: SetupDocument, my_uid: str) -> PolicyResult:
        """Rule 4: at most one answering party besides the caller."""
        partners = document.partner_ids(my_uid)
        if len(partners) > 1:
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.TOO_MANY_PARTICIPANTS,
                reason=f"Setup has answers from {len(partners) + 1} parties; expected two.",
            )
        return PolicyResult(allowed=True)

    def validate_submission(self, document: SetupDocument, my_uid: str, role: Role) -> PolicyResult:
        result = self.validate_turn(role, document.phase, Action.SUBMIT)
        if not result.allowed:
            return result
        return self.validate_participants(document, my_uid)

    def validate_approval(self, document: SetupDocument, my_uid: str, role: Role) -> PolicyResult:
        """Rules 1-5 for approve."""
        result = self.validate_turn(role, document.phase, Action.APPROVE)
        if not result.allowed:
            return result

        result = self.validate_participants(document, my_uid)
        if not result.allowed:
            return result

        if document.partner_answer(my_uid) is None:
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.NO_PROPOSAL_YET,
                reason="No partner proposal to approve yet.",
            )

        return PolicyResult(allowed=True)

    def validate_advance(self, document: SetupDocument, role: Role, next_step: Optional[str]) -> PolicyResult:
        """Either member may advance a complete step, once."""
        if role is Role.NONE:
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.NOT_A_MEMBER,
                reason="You are not a member of this pairing.",
            )
        if not is_terminal(document.phase):
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.STEP_NOT_COMPLETE,
                reason="The current step is not complete yet.",
            )
        if next_step is None:
            return PolicyResult(
                allowed=False,
                violation=PolicyViolation.NO_NEXT_STEP,
                reason="Setup is already finished.",
            )
        return PolicyResult(allowed=True)
