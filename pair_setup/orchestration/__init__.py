"""
orchestration - Protocol Engine Layer
=====================================

Question this layer answers:
"Which write does this action produce, and what does the screen show?"

Three pieces:
- engine.py      re-read, validate, build one conditional merge-write
- view.py        pure derived view of (document, me, my role)
- projection.py  subscription -> decode -> view -> observers

```
submit / approve ──► engine ──► store ──► projection ──► view
```

The engine replaces the dangerous:
```python
self.phase = next_phase   # before the store confirmed anything
```

Orchestration does NOT:
- Decide whose turn it is (that's fsm)
- Decide whether an action is allowed (that's coordination)
- Deliver snapshots (that's transport)
"""

from .engine import (
    ADVANCE_STEP,
    DEFAULT_DOCUMENT_PATH,
    SetupProtocolEngine,
    WriteIntent,
    build_advance_intent,
    build_approve_intent,
    build_submit_intent,
)
from .projection import RealtimeProjection
from .view import (
    ApprovedConfiguration,
    SetupView,
    approved_configuration,
    derive_view,
    waiting_message,
    waiting_message_long,
)

__all__ = [
    "ADVANCE_STEP",
    "ApprovedConfiguration",
    "DEFAULT_DOCUMENT_PATH",
    "RealtimeProjection",
    "SetupProtocolEngine",
    "SetupView",
    "WriteIntent",
    "approved_configuration",
    "build_advance_intent",
    "build_approve_intent",
    "build_submit_intent",
    "derive_view",
    "waiting_message",
    "waiting_message_long",
]
