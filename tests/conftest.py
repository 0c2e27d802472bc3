"""
Shared fixtures
===============

One in-memory store, one pairing ("pair-1") with members "A" and "B",
and an engine / party client per member.
"""

import pytest

from pair_setup.agents import PartyClient
from pair_setup.context import PairingDirectory
from pair_setup.evaluation import NegotiationTracer
from pair_setup.orchestration import SetupProtocolEngine
from pair_setup.transport import InMemoryDocumentStore


PAIRING_ID = "pair-1"
DOCUMENT_KEY = f"pairSpaces/{PAIRING_ID}/setup/current"


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def directory():
    directory = PairingDirectory()
    directory.create_pair("A", pairing_id=PAIRING_ID)
    directory.join_pair(PAIRING_ID, "B")
    return directory


@pytest.fixture
def tracer():
    return NegotiationTracer()


def make_engine(store, directory, uid, tracer=None, **kwargs):
    return SetupProtocolEngine(store, directory.identity_for(uid), PAIRING_ID, tracer=tracer, **kwargs)


@pytest.fixture
def engine_a(store, directory, tracer):
    return make_engine(store, directory, "A", tracer)


@pytest.fixture
def engine_b(store, directory, tracer):
    return make_engine(store, directory, "B", tracer)


@pytest.fixture
def client_a(engine_a):
    return PartyClient(engine_a)


@pytest.fixture
def client_b(engine_b):
    return PartyClient(engine_b)
