"""
Identity and Pairing Context
============================

Provides the authoritative facts the engine asks before acting:
"who am I?" and "am I A or B in this pairing?".

This is NOT for party-to-party communication.
This IS for reading facts the pairing layer already decided.

Example:
    directory = PairingDirectory()
    pair_id = directory.create_pair("uid-alice")
    directory.join_pair(pair_id, "uid-bob")
    directory.identity_for("uid-bob").role_for_pairing(pair_id)   # Role.B
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..fsm import Role


logger = logging.getLogger(__name__)


class IdentityProvider(ABC):
    """Identity API consumed by the setup core."""

    @abstractmethod
    def current_user_id(self) -> Optional[str]:
        """The signed-in party's id, or None when signed out."""

    @abstractmethod
    def role_for_pairing(self, pairing_id: str) -> Role:
        """A, B, or NONE when the current user is not in the pairing."""


class PairingDirectory:
    """
    In-memory pairing records, the source of truth for roles.

    The party who creates a pairing is A, the party who joins is B.
    Roles never change for the pairing's lifetime.

    In production this would be backed by the same document store:
        pairSpaces/{pairing_id} = {"memberA": uid, "memberB": uid}
    """

    def __init__(self):
        self._pairs: Dict[str, Dict[str, Optional[str]]] = {}

    def create_pair(self, member_a: str, pairing_id: Optional[str] = None) -> str:
        pairing_id = pairing_id or uuid.uuid4().hex[:12]
        if pairing_id in self._pairs:
            raise ValueError(f"Pairing {pairing_id} already exists")
        self._pairs[pairing_id] = {"memberA": member_a, "memberB": None}
        logger.info("Pairing %s created by %s", pairing_id, member_a)
        return pairing_id

    def join_pair(self, pairing_id: str, member_b: str) -> None:
        pair = self._pairs.get(pairing_id)
        if pair is None:
            raise ValueError(f"Unknown pairing: {pairing_id}")
        if pair["memberA"] == member_b:
            raise ValueError("You can't join your own pairing")
        if pair["memberB"] is not None and pair["memberB"] != member_b:
            raise ValueError(f"Pairing {pairing_id} is already full")
        pair["memberB"] = member_b
        logger.info("Pairing %s joined by %s", pairing_id, member_b)

    def role_of(self, pairing_id: str, uid: Optional[str]) -> Role:
        pair = self._pairs.get(pairing_id)
        if pair is None or uid is None:
            return Role.NONE
        if pair["memberA"] == uid:
            return Role.A
        if pair["memberB"] == uid:
            return Role.B
        return Role.NONE

    def members(self, pairing_id: str) -> Dict[str, Optional[str]]:
        return dict(self._pairs.get(pairing_id, {}))

    def identity_for(self, uid: Optional[str]) -> "DirectoryIdentity":
        return DirectoryIdentity(self, uid)


class DirectoryIdentity(IdentityProvider):
    """Identity of one signed-in user, resolved against a PairingDirectory."""

    def __init__(self, directory: PairingDirectory, uid: Optional[str]):
        self._directory = directory
        self._uid = uid

    def current_user_id(self) -> Optional[str]:
        return self._uid

    def sign_out(self) -> None:
        self._uid = None

    def role_for_pairing(self, pairing_id: str) -> Role:
        return self._directory.role_of(pairing_id, self._uid)
