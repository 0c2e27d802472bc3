"""
Pair Setup
==========

Bilateral setup negotiation for two paired users.

Two clients that never talk directly agree on a shared configuration
by taking turns on one realtime document:

    A submits ─► B approves ─► B submits ─► A approves ─► complete

Layers (one question each):

    protocol       What does a proposal / the document look like?
    fsm            Whose turn is it and what comes next?
    coordination   Is this party allowed to act right now?
    transport      How do writes and change notifications move?
    context        Who am I in this pairing?
    orchestration  Which write does this action produce, what does the screen show?
    agents         What can one party do from its screen?
    runtime        How is the system configured and run?
    evaluation     What happened during a negotiation?
"""

from .agents import ActionResult, PartyClient
from .context import DirectoryIdentity, IdentityProvider, PairingDirectory
from .errors import (
    IdentityUnavailable,
    NoProposalYet,
    OutOfTurn,
    SetupError,
    StoreError,
    StoreUnavailable,
    TooManyParticipants,
    WriteFailed,
)
from .fsm import Role, SetupPhase
from .orchestration import RealtimeProjection, SetupProtocolEngine, SetupView
from .protocol import AppSelection, BlockSchedule, SetupDocument, StepCatalog, StepID
from .transport import DocumentStore, InMemoryDocumentStore

__version__ = "0.1.0"
__all__ = [
    "ActionResult",
    "AppSelection",
    "BlockSchedule",
    "DirectoryIdentity",
    "DocumentStore",
    "IdentityProvider",
    "IdentityUnavailable",
    "InMemoryDocumentStore",
    "NoProposalYet",
    "OutOfTurn",
    "PairingDirectory",
    "PartyClient",
    "RealtimeProjection",
    "Role",
    "SetupDocument",
    "SetupError",
    "SetupPhase",
    "SetupProtocolEngine",
    "SetupView",
    "StepCatalog",
    "StepID",
    "StoreError",
    "StoreUnavailable",
    "TooManyParticipants",
    "WriteFailed",
]
