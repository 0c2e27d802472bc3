"""
evaluation - Observability Layer
================================

Question this layer answers:
"What actually happened during a negotiation?"

```python
tracer = NegotiationTracer()
engine = SetupProtocolEngine(..., tracer=tracer)
tracer.get_trace(engine.document_key).events("approve")
```
"""

from .tracer import NegotiationTrace, NegotiationTracer, TraceRecord, trace_negotiation

__all__ = ["NegotiationTrace", "NegotiationTracer", "TraceRecord", "trace_negotiation"]
