"""
context - Identity Layer
========================

Question this layer answers:
"Who am I in this pairing?"

```python
uid = identity.current_user_id()
role = identity.role_for_pairing(pairing_id)
```

Context:
- Is query-based, never conversational
- Has a fixed answer for the pairing's lifetime

Context does NOT:
- Control flow
- Move documents
- Authenticate anyone (an upstream concern)
"""

from .identity import DirectoryIdentity, IdentityProvider, PairingDirectory

__all__ = ["DirectoryIdentity", "IdentityProvider", "PairingDirectory"]
