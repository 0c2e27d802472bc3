"""
Runtime - The Demo Shell
========================

The entrypoint that wires every layer together against an in-memory
document store and runs both parties through the whole setup flow.

Run methods:
    pair-setup demo                       # two-party demo, default config
    pair-setup demo --config setup.yaml --verbose
    pair-setup phases                     # print the transition table
    python -m pair_setup.runtime demo
"""

import argparse
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..agents import ActionResult, PartyClient
from ..context import PairingDirectory
from ..evaluation import NegotiationTracer, trace_negotiation
from ..fsm import TRANSITIONS, Role, SetupPhase
from ..orchestration import SetupProtocolEngine, SetupView, approved_configuration
from ..protocol.steps import AppSelection, BlockSchedule, StepID
from ..transport import InMemoryDocumentStore
from .config import Config, load_config


logger = logging.getLogger(__name__)


# ============================================================================
# Demo proposals
# ============================================================================

# What each role proposes per step; the block schedule of A is its draft
DEMO_PROPOSALS: Dict[str, Dict[Role, Any]] = {
    StepID.BLOCK_SCHEDULE.value: {
        Role.A: None,
        Role.B: BlockSchedule(start_minutes=22 * 60, end_minutes=6 * 60),
    },
    StepID.APP_SELECTION.value: {
        Role.A: AppSelection(app_tokens=("YXBwLXZpZGVv", "YXBwLXNvY2lhbA=="), category_tokens=("Y2F0LWdhbWVz",)),
        Role.B: AppSelection(app_tokens=("YXBwLXNvY2lhbA==",), category_tokens=("Y2F0LW5ld3M=",)),
    },
}


def describe(payload: Any) -> str:
    """Short human-readable form of a step payload."""
    if isinstance(payload, BlockSchedule):
        return payload.format()
    if isinstance(payload, AppSelection):
        apps = len(payload.app_tokens)
        cats = len(payload.category_tokens)
        if apps == 0 and cats == 0:
            return "No selection yet."
        parts = []
        if apps > 0:
            parts.append(f"{apps} app{'' if apps == 1 else 's'}")
        if cats > 0:
            parts.append(f"{cats} categor{'y' if cats == 1 else 'ies'}")
        return " + ".join(parts)
    return repr(payload)


# ============================================================================
# Session (one pairing's setup)
# ============================================================================

@dataclass
class DemoSession:
    """A single two-party setup run."""
    pairing_id: str
    clients: Dict[Role, PartyClient] = field(default_factory=dict)
    results: List[Dict[str, Any]] = field(default_factory=list)
    completed: bool = False

    start_time: Optional[float] = None
    end_time: Optional[float] = None

    def duration_ms(self) -> float:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time) * 1000
        return 0.0


class SetupRuntime:
    """
    Wires store, pairing directory, engines and party clients.

    Both parties share one InMemoryDocumentStore, exactly like two
    phones sharing one realtime document.
    """

    def __init__(self, config: Config, verbose: bool = True):
        self.config = config
        self.verbose = verbose
        self.store = InMemoryDocumentStore()
        self.directory = PairingDirectory()
        self.tracer = NegotiationTracer()

    def create_session(self, pairing_id: Optional[str] = None, member_a: str = "uid-a", member_b: str = "uid-b") -> DemoSession:
        pairing_id = self.directory.create_pair(member_a, pairing_id=pairing_id)
        self.directory.join_pair(pairing_id, member_b)
        session = DemoSession(pairing_id=pairing_id)

        catalog = self.config.catalog()
        for role, uid in ((Role.A, member_a), (Role.B, member_b)):
            engine = SetupProtocolEngine(
                self.store,
                self.directory.identity_for(uid),
                pairing_id,
                catalog=catalog,
                tracer=self.tracer,
                document_path=self.config.store.document_path,
            )
            client = PartyClient(engine, auto_advance=self.config.flow.auto_advance)
            session.clients[role] = client

        session.clients[Role.A].projection.add_phase_observer(self._print_phase)
        return session

    def _print_phase(self, previous: SetupPhase, new: SetupPhase, view: SetupView) -> None:
        if self.verbose:
            print(f"  [{view.step} {view.step_index + 1}/{view.total_steps}] {previous.value} -> {new.value}")

    def _record(self, session: DemoSession, role: Role, action: str, result: ActionResult, detail: str = "") -> None:
        session.results.append({"role": role.value, "action": action, "ok": result.ok, "error": result.error})
        if self.verbose:
            status = "ok" if result.ok else f"{result.error}: {result.message}"
            suffix = f" {detail}" if detail else ""
            print(f"[{role.value}] {action}{suffix} -> {status}")

    async def _negotiate_step(self, session: DemoSession, step: str) -> bool:
        a = session.clients[Role.A]
        b = session.clients[Role.B]
        proposals = DEMO_PROPOSALS.get(step, {})

        script = (
            (Role.A, "submit", a, proposals.get(Role.A)),
            (Role.B, "approve", b, None),
            (Role.B, "submit", b, proposals.get(Role.B)),
            (Role.A, "approve", a, None),
        )
        for role, action, client, payload in script:
            if action == "submit":
                payload = payload if payload is not None else client.draft
                result = await client.submit(payload)
                self._record(session, role, action, result, describe(payload))
            else:
                partner = client.view.partner_answer if client.view else None
                result = await client.approve()
                self._record(session, role, action, result, describe(partner))
            if not result.ok:
                return False
        return True

    async def run_session(self, session: DemoSession) -> DemoSession:
        session.start_time = time.time()
        a = session.clients[Role.A]
        b = session.clients[Role.B]

        await a.open()
        await b.open()
        key = a.engine.document_key

        with trace_negotiation(self.tracer, key):
            while True:
                view = a.view
                if self.verbose:
                    print(f"\n[Step {view.step_index + 1}/{view.total_steps}] {view.step}")
                if not await self._negotiate_step(session, view.step):
                    break

                await a.settle()
                await b.settle()
                if a.view.is_flow_complete:
                    session.completed = True
                    break
                if not self.config.flow.auto_advance:
                    result = await a.advance_step()
                    self._record(session, Role.A, "advance_step", result)
                    if not result.ok:
                        break

        a.close()
        b.close()
        session.end_time = time.time()
        return session

    def final_configuration(self, session: DemoSession):
        client = session.clients[Role.A]
        document = client.engine.decode(self.store.peek(client.engine.document_key))
        return approved_configuration(document, client.engine.catalog)


# ============================================================================
# CLI Entrypoints
# ============================================================================

def run_demo(runtime: SetupRuntime, pairing_id: Optional[str] = None) -> DemoSession:
    """Run both parties through the full setup flow."""
    print("=" * 50)
    print("DEMO MODE (two parties, in-memory store)")
    print("=" * 50)

    session = runtime.create_session(pairing_id=pairing_id)
    asyncio.run(runtime.run_session(session))
    configuration = runtime.final_configuration(session)
    trace = runtime.tracer.get_trace(session.clients[Role.A].engine.document_key)

    print("\n" + "=" * 50)
    print("SUMMARY")
    print("=" * 50)
    print(f"Pairing: {session.pairing_id}")
    print(f"Completed: {'Yes' if session.completed else 'No'}")
    if configuration.schedule is not None:
        print(f"Schedule: {configuration.schedule.format()}")
    else:
        print("Schedule: N/A")
    print(f"Selection: {describe(configuration.selection)}")
    if trace is not None:
        transitions = sum(len(trace.events(name)) for name in ("submit", "approve", "advance_step"))
        print(f"Transitions: {transitions}")
        print(f"Rejected: {len(trace.events('rejected'))}")
    print(f"Duration: {session.duration_ms():.2f}ms")
    print("=" * 50)
    return session


def print_phases() -> None:
    """Print the turn-taking transition table."""
    print(f"{'PHASE':<22}{'ACTOR':<7}{'ACTION':<9}NEXT")
    for phase, (role, action, target) in TRANSITIONS.items():
        print(f"{phase.value:<22}{role.value:<7}{action.value:<9}{target.value}")
    print(f"{SetupPhase.COMPLETE.value:<22}(terminal)")


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="pair-setup",
        description="Two-party setup negotiation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pair-setup demo                         # Full two-step demo
  pair-setup demo --config setup.yaml -v  # With config and debug logging
  pair-setup phases                       # Transition table
""",
    )
    subparsers = parser.add_subparsers(dest="command")

    demo = subparsers.add_parser("demo", help="Run both parties through the setup flow")
    demo.add_argument("--config", type=str, help="Config file path")
    demo.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    demo.add_argument("--pairing-id", type=str, help="Pairing id to use")
    demo.add_argument("--quiet", action="store_true", help="Only print the summary")

    subparsers.add_parser("phases", help="Print the transition table")

    args = parser.parse_args(argv)

    if args.command == "phases":
        print_phases()
        return 0
    if args.command != "demo":
        parser.print_help()
        return 2

    config = load_config(args.config)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.logging.level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    runtime = SetupRuntime(config, verbose=not args.quiet)
    session = run_demo(runtime, pairing_id=args.pairing_id)
    return 0 if session.completed else 1


if __name__ == "__main__":
    raise SystemExit(main())
