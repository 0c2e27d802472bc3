"""
transport - Shared Document Store
=================================

Question this layer answers:
"How do writes and change notifications move between the two parties?"

The parties never message each other. Everything goes through one
realtime document:

```python
await store.merge_write(key, {"answers.A": payload, "phase": "awaitingBApproval"},
                        precondition={"phase": "awaitingASubmission"})
handle = store.subscribe(key, on_snapshot)
```

The store does NOT:
- Know about phases or roles (that's fsm / coordination)
- Decide what to write (that's orchestration)
- Decode payloads (that's protocol)
"""

from .store import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    DocumentStore,
    InMemoryDocumentStore,
    SnapshotStream,
    SubscriptionHandle,
    apply_merge,
)

__all__ = [
    "DELETE_FIELD",
    "SERVER_TIMESTAMP",
    "DocumentStore",
    "InMemoryDocumentStore",
    "SnapshotStream",
    "SubscriptionHandle",
    "apply_merge",
]
