"""
Negotiation Tracer
==================

Records every confirmed transition and every rejected action of a
setup negotiation, for debugging and for the CLI summary.

Only confirmed writes are recorded as transitions: a write the store
rejected never shows up as having happened.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TraceRecord:
    """A single trace record."""
    timestamp: datetime
    event_type: str
    data: Dict[str, Any]


@dataclass
class NegotiationTrace:
    """Complete trace of one setup document."""
    document_key: str
    started_at: datetime = field(default_factory=_now)
    ended_at: Optional[datetime] = None
    records: List[TraceRecord] = field(default_factory=list)

    def add_event(self, event_type: str, **data) -> None:
        self.records.append(TraceRecord(
            timestamp=_now(),
            event_type=event_type,
            data=data,
        ))

    def events(self, event_type: Optional[str] = None) -> List[TraceRecord]:
        if event_type is None:
            return list(self.records)
        return [r for r in self.records if r.event_type == event_type]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for export."""
        return {
            "document_key": self.document_key,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "records": [
                {
                    "timestamp": r.timestamp.isoformat(),
                    "event_type": r.event_type,
                    "data": r.data,
                }
                for r in self.records
            ],
        }


class NegotiationTracer:
    """Keeps one trace per setup document."""

    def __init__(self):
        self.traces: Dict[str, NegotiationTrace] = {}

    def start_trace(self, document_key: str) -> NegotiationTrace:
        trace = self.traces.get(document_key)
        if trace is None:
            trace = NegotiationTrace(document_key=document_key)
            trace.add_event("session_start")
            self.traces[document_key] = trace
        return trace

    def end_trace(self, document_key: str) -> Optional[NegotiationTrace]:
        trace = self.traces.get(document_key)
        if trace:
            trace.ended_at = _now()
            trace.add_event("session_end")
        return trace

    def log_transition(
        self,
        document_key: str,
        action: str,
        uid: str,
        role: str,
        step: str,
        from_phase: str,
        to_phase: str,
    ) -> None:
        self.start_trace(document_key).add_event(
            action,
            uid=uid,
            role=role,
            step=step,
            from_phase=from_phase,
            to_phase=to_phase,
        )

    def log_rejection(self, document_key: str, action: str, uid: Optional[str], code: str, reason: str) -> None:
        self.start_trace(document_key).add_event(
            "rejected",
            action=action,
            uid=uid,
            code=code,
            reason=reason,
        )

    def get_trace(self, document_key: str) -> Optional[NegotiationTrace]:
        return self.traces.get(document_key)


@contextmanager
def trace_negotiation(tracer: NegotiationTracer, document_key: str) -> Iterator[NegotiationTrace]:
    """
    Context manager for tracing a negotiation.

    Usage:
        with trace_negotiation(tracer, key) as trace:
            await run_setup()
    """
    trace = tracer.start_trace(document_key)
    try:
        yield trace
    finally:
        tracer.end_trace(document_key)
