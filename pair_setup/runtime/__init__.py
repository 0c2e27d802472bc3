"""
runtime - The Shell
===================

Run methods:
    pair-setup demo [--config PATH] [--verbose] [--pairing-id ID]
    pair-setup phases
    python -m pair_setup.runtime demo

What the runtime does:
- Loads configuration (YAML)
- Configures logging
- Wires store, identity, engines and party clients

What the runtime does NOT do:
- Decide whose turn it is (that's fsm)
- Build writes (that's orchestration)
- Validate payloads (that's protocol)
"""

from .config import Config, load_config
from .runner import DemoSession, SetupRuntime, main

__all__ = ["Config", "DemoSession", "SetupRuntime", "load_config", "main"]
