"""
Tests for FSM Layer
==================
"""

import itertools

import pytest

from pair_setup.fsm import (
    INITIAL_PHASE,
    TERMINAL_PHASES,
    TRANSITIONS,
    Action,
    Role,
    SetupFSM,
    SetupPhase,
    allowed_action,
    can_approve,
    can_submit,
    expected_actor,
    is_terminal,
    next_phase,
)


class TestTransitionTable:
    """The four-phase cycle and its single terminal phase."""

    def test_starts_awaiting_a_submission(self):
        assert INITIAL_PHASE == SetupPhase.AWAITING_A_SUBMISSION
        assert SetupFSM().phase == SetupPhase.AWAITING_A_SUBMISSION

    def test_cycle(self):
        """A submits, B approves, B submits, A approves."""
        phase = INITIAL_PHASE
        phase = next_phase(phase, Role.A, Action.SUBMIT)
        assert phase == SetupPhase.AWAITING_B_APPROVAL
        phase = next_phase(phase, Role.B, Action.APPROVE)
        assert phase == SetupPhase.AWAITING_B_SUBMISSION
        phase = next_phase(phase, Role.B, Action.SUBMIT)
        assert phase == SetupPhase.AWAITING_A_APPROVAL
        phase = next_phase(phase, Role.A, Action.APPROVE)
        assert phase == SetupPhase.COMPLETE

    def test_complete_is_only_terminal_phase(self):
        assert TERMINAL_PHASES == frozenset({SetupPhase.COMPLETE})
        assert SetupPhase.COMPLETE not in TRANSITIONS
        assert is_terminal(SetupPhase.COMPLETE)

    def test_no_action_from_complete(self):
        for role, action in itertools.product(Role, Action):
            assert next_phase(SetupPhase.COMPLETE, role, action) is None

    def test_expected_actor(self):
        assert expected_actor(SetupPhase.AWAITING_A_SUBMISSION) is Role.A
        assert expected_actor(SetupPhase.AWAITING_B_APPROVAL) is Role.B
        assert expected_actor(SetupPhase.AWAITING_B_SUBMISSION) is Role.B
        assert expected_actor(SetupPhase.AWAITING_A_APPROVAL) is Role.A
        assert expected_actor(SetupPhase.COMPLETE) is Role.NONE

    def test_role_none_never_acts(self):
        for phase in SetupPhase:
            assert allowed_action(Role.NONE, phase) is None

    def test_parse_is_lenient(self):
        assert SetupPhase.parse("awaitingAApproval") == SetupPhase.AWAITING_A_APPROVAL
        assert SetupPhase.parse("bogus") == INITIAL_PHASE
        assert SetupPhase.parse(None) == INITIAL_PHASE

    def test_raw_values_are_persisted_strings(self):
        assert [p.value for p in SetupPhase] == [
            "awaitingASubmission",
            "awaitingBApproval",
            "awaitingBSubmission",
            "awaitingAApproval",
            "complete",
        ]


class TestAlternation:
    """No phase ever grants two things at once."""

    @pytest.mark.parametrize("phase", list(SetupPhase))
    @pytest.mark.parametrize("role", list(Role))
    def test_submit_xor_approve(self, role, phase):
        assert not (can_submit(role, phase) and can_approve(role, phase))

    @pytest.mark.parametrize("phase", [p for p in SetupPhase if p not in TERMINAL_PHASES])
    def test_exactly_one_role_may_act(self, phase):
        actors = [r for r in Role if allowed_action(r, phase) is not None]
        assert len(actors) == 1

    def test_only_one_four_action_sequence_completes(self):
        moves = list(itertools.product([Role.A, Role.B], list(Action)))
        completing = []
        for sequence in itertools.product(moves, repeat=4):
            fsm = SetupFSM()
            for role, action in sequence:
                fsm.apply(role, action)
            if fsm.is_terminal():
                completing.append(sequence)

        assert completing == [(
            (Role.A, Action.SUBMIT),
            (Role.B, Action.APPROVE),
            (Role.B, Action.SUBMIT),
            (Role.A, Action.APPROVE),
        )]


class TestSetupFSM:
    """Local phase mirror."""

    def test_illegal_apply_stays_put(self):
        fsm = SetupFSM()
        assert fsm.apply(Role.B, Action.SUBMIT) is False
        assert fsm.phase == INITIAL_PHASE
        assert fsm.history == [INITIAL_PHASE]

    def test_observe_accepts_skipped_phases(self):
        """A snapshot may jump straight to complete."""
        fsm = SetupFSM()
        assert fsm.observe(SetupPhase.COMPLETE) is True
        assert fsm.is_terminal()
        assert fsm.history == [INITIAL_PHASE, SetupPhase.COMPLETE]

    def test_observe_same_phase_is_noop(self):
        fsm = SetupFSM()
        assert fsm.observe(INITIAL_PHASE) is False
        assert fsm.history == [INITIAL_PHASE]

    def test_invariants(self):
        assert SetupFSM().check_invariants()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
