"""
fsm - Turn-Taking State Machine
===============================

Question this layer answers:
"Whose turn is it, and what comes next?"

```python
if can_submit(role, phase):
    phase = next_phase(phase, role, Action.SUBMIT)
```

The FSM:
- Names the one role allowed to act per phase
- Has exactly one terminal phase (complete)
- Is a pure transition table, shared by both parties

The FSM does NOT:
- Read or write the document (that's orchestration)
- Know who the current user is (that's context)
- Check payloads (that's protocol)
"""

from .state_machine import (
    Action,
    INITIAL_PHASE,
    Role,
    SetupFSM,
    SetupPhase,
    TERMINAL_PHASES,
    TRANSITIONS,
    allowed_action,
    can_approve,
    can_submit,
    expected_actor,
    is_terminal,
    next_phase,
)

__all__ = [
    "Action",
    "INITIAL_PHASE",
    "Role",
    "SetupFSM",
    "SetupPhase",
    "TERMINAL_PHASES",
    "TRANSITIONS",
    "allowed_action",
    "can_approve",
    "can_submit",
    "expected_actor",
    "is_terminal",
    "next_phase",
]
