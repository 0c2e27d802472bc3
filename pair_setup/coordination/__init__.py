"""
coordination - Governance Layer
===============================

Question this layer answers:
"Is this party allowed to act on the document right now?"

```python
result = policy.validate_approval(document, my_uid, role)
if not result.allowed:
    raise result.to_error()
```

What this layer enforces:
- Turn-taking by (role, phase)
- Membership in the pairing
- The two-party invariant
- Something to approve before approving

This layer does NOT:
- Decide the next phase (that's fsm)
- Write the document (that's orchestration)
- Deliver changes (that's transport)
"""

from .policy import PolicyResult, PolicyViolation, SetupPolicy

__all__ = ["PolicyResult", "PolicyViolation", "SetupPolicy"]
