"""
Setup Document
==============

The persisted state of one pairing's setup negotiation.

    pairSpaces/{pairing_id}/setup/current
    {
        "step": "blockSchedule",
        "stepIndex": 0,
        "phase": "awaitingASubmission",
        "answers":         {uid: payload},      # current proposals
        "submitted":       {uid: bool},
        "approvals":       {uid: bool},         # uid approved the OTHER party
        "approvedAnswers": {uid: payload},      # snapshot taken at approval
        "history":         {step: {...}},       # archived finished steps
        "updatedAt": <server timestamp>,
        "completedAt": <server timestamp, once>
    }

This is the only persisted-state contract. Field names live here and
nowhere else.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..errors import InvalidFieldPath
from ..fsm import INITIAL_PHASE, SetupPhase


# ============================================================
# FIELD NAMES
# ============================================================

STEP = "step"
STEP_INDEX = "stepIndex"
PHASE = "phase"
ANSWERS = "answers"
SUBMITTED = "submitted"
APPROVALS = "approvals"
APPROVED_ANSWERS = "approvedAnswers"
HISTORY = "history"
UPDATED_AT = "updatedAt"
COMPLETED_AT = "completedAt"

PER_PARTY_FIELDS = (ANSWERS, SUBMITTED, APPROVALS, APPROVED_ANSWERS)


def field_path(*parts: str) -> str:
    """Dotted merge path, e.g. field_path(ANSWERS, uid) -> 'answers.<uid>'."""
    for part in parts:
        if not part or "." in part:
            raise InvalidFieldPath(f"Invalid field path segment: {part!r}")
    return ".".join(parts)


def initial_fields(step: str) -> Dict[str, Any]:
    """Fields of a freshly created document positioned at `step`."""
    return {
        STEP: step,
        STEP_INDEX: 0,
        PHASE: INITIAL_PHASE.value,
        ANSWERS: {},
        SUBMITTED: {},
        APPROVALS: {},
        APPROVED_ANSWERS: {},
        HISTORY: {},
    }


def missing_fields(raw: Dict[str, Any], step: str) -> Dict[str, Any]:
    """Initial values for every top-level field absent from `raw`."""
    defaults = initial_fields(step)
    return {name: value for name, value in defaults.items() if name not in raw}


# ============================================================
# DOCUMENT MODEL
# ============================================================

def _mapping(raw: Any) -> Dict[str, Any]:
    return raw if isinstance(raw, dict) else {}


def _flags(raw: Any) -> Dict[str, bool]:
    return {k: v for k, v in _mapping(raw).items() if isinstance(v, bool)}


def _payloads(raw: Any) -> Dict[str, Dict[str, Any]]:
    return {k: v for k, v in _mapping(raw).items() if isinstance(v, dict)}


@dataclass
class SetupDocument:
    """
    Canonical in-memory form of the setup document.

    `from_dict` is lenient: a partially written document decodes with
    per-field defaults instead of failing, and decoding the same
    snapshot twice always gives an equal document.
    """
    step: str
    step_index: int = 0
    phase: SetupPhase = INITIAL_PHASE
    answers: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    submitted: Dict[str, bool] = field(default_factory=dict)
    approvals: Dict[str, bool] = field(default_factory=dict)
    approved_answers: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    history: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_step: str) -> "SetupDocument":
        data = _mapping(data)
        step = data.get(STEP)
        step_index = data.get(STEP_INDEX)
        updated_at = data.get(UPDATED_AT)
        completed_at = data.get(COMPLETED_AT)
        return cls(
            step=step if isinstance(step, str) and step else default_step,
            step_index=step_index if isinstance(step_index, int) and not isinstance(step_index, bool) else 0,
            phase=SetupPhase.parse(data.get(PHASE)),
            answers=copy.deepcopy(_payloads(data.get(ANSWERS))),
            submitted=_flags(data.get(SUBMITTED)),
            approvals=_flags(data.get(APPROVALS)),
            approved_answers=copy.deepcopy(_payloads(data.get(APPROVED_ANSWERS))),
            history=copy.deepcopy(_payloads(data.get(HISTORY))),
            updated_at=updated_at if isinstance(updated_at, datetime) else None,
            completed_at=completed_at if isinstance(completed_at, datetime) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            STEP: self.step,
            STEP_INDEX: self.step_index,
            PHASE: self.phase.value,
            ANSWERS: copy.deepcopy(self.answers),
            SUBMITTED: dict(self.submitted),
            APPROVALS: dict(self.approvals),
            APPROVED_ANSWERS: copy.deepcopy(self.approved_answers),
            HISTORY: copy.deepcopy(self.history),
        }
        if self.updated_at is not None:
            d[UPDATED_AT] = self.updated_at
        if self.completed_at is not None:
            d[COMPLETED_AT] = self.completed_at
        return d

    # --------------------------------------------------------
    # Two-party lookups
    # --------------------------------------------------------

    def participants(self) -> List[str]:
        """Every party id referenced by any per-party field, sorted."""
        ids = set()
        ids.update(self.answers, self.submitted, self.approvals, self.approved_answers)
        return sorted(ids)

    def partner_ids(self, my_uid: str) -> List[str]:
        """Ids of answering parties other than `my_uid`, sorted."""
        return sorted(uid for uid in self.answers if uid != my_uid)

    def partner_answer(self, my_uid: str) -> Optional[Tuple[str, Dict[str, Any]]]:
        """
        The partner's proposal: the answers entry whose key is not my_uid.

        With more than one candidate the smallest id wins, so every
        reader picks the same entry. The engine refuses to act on such
        a document (TooManyParticipants).
        """
        partners = self.partner_ids(my_uid)
        if not partners:
            return None
        uid = partners[0]
        return uid, self.answers[uid]

    def partner_flag(self, flags: Dict[str, bool], my_uid: str) -> bool:
        others = sorted(uid for uid in flags if uid != my_uid)
        return flags[others[0]] if others else False

    def partner_approved_answer(self, my_uid: str) -> Optional[Dict[str, Any]]:
        others = sorted(uid for uid in self.approved_answers if uid != my_uid)
        return self.approved_answers[others[0]] if others else None
