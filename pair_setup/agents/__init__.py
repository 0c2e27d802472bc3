"""
agents - Party Layer
====================

Question this layer answers:
"What can one party do from its screen?"

```python
client = PartyClient(engine, auto_advance=True)
await client.open()
result = await client.approve()
```

A party client:
- Holds the local draft
- Issues one intent at a time
- Reports every failure as an ActionResult

Parties do NOT:
- Talk to each other (everything goes through the document)
- Advance the phase locally (the store echo does)
- Know about configuration files (that's runtime)
"""

from .party import ActionResult, PartyClient

__all__ = ["ActionResult", "PartyClient"]
