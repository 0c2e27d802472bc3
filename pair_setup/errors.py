"""
Setup Errors
============

Every failure the setup core reports to its caller.

Errors are raised by the engine and the store, and converted into
ActionResult values at the presentation boundary (agents/party.py).

    SetupError
    ├── OutOfTurn             role/phase does not permit the action
    ├── NoProposalYet         nothing from the partner to approve
    ├── TooManyParticipants   more than two parties in one document
    ├── IdentityUnavailable   no signed-in user
    ├── UnknownStep           step id with no registered definition
    ├── InvalidPayload        payload does not fit its step schema
    ├── UnsupportedValueType  payload value the codec cannot encode
    ├── InvalidFieldPath      id that cannot be used as a document field name
    └── StoreError            infrastructure, retryable
        ├── StoreUnavailable
        ├── WriteFailed
        └── PreconditionFailed
"""

from typing import Optional


class SetupError(Exception):
    """Base class for all setup errors."""

    code = "setup_error"
    default_message = "Setup failed."
    recoverable = False

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class OutOfTurn(SetupError):
    """Action attempted when (role, phase) does not permit it."""

    code = "out_of_turn"
    default_message = "You can't do that at this time."


class NoProposalYet(SetupError):
    """Approval attempted before the partner submitted."""

    code = "no_proposal_yet"
    default_message = "No partner proposal to approve yet."


class TooManyParticipants(SetupError):
    """The document references more than two parties."""

    code = "too_many_participants"
    default_message = "This setup already has two participants."


class IdentityUnavailable(SetupError):
    code = "identity_unavailable"
    default_message = "You need to be signed in."


class UnknownStep(SetupError):
    code = "unknown_step"
    default_message = "Unknown setup step."


class InvalidPayload(SetupError, ValueError):
    """A payload that does not satisfy its step schema."""

    code = "invalid_payload"
    default_message = "That proposal is not valid."


class UnsupportedValueType(SetupError, TypeError):
    """A payload value has no representation in the document store."""

    code = "unsupported_value"
    default_message = "Unsupported value type."


class InvalidFieldPath(SetupError, ValueError):
    """A uid or step id that would split a dotted merge path."""

    code = "invalid_field_path"
    default_message = "This account can't be used for setup."


class StoreError(SetupError):
    """Transient document store failure. Safe to retry."""

    code = "store_error"
    default_message = "Something went wrong. Please try again."
    recoverable = True


class StoreUnavailable(StoreError):
    code = "store_unavailable"
    default_message = "Can't reach the server. Please try again."


class WriteFailed(StoreError):
    code = "write_failed"
    default_message = "Couldn't save your change. Please try again."


class PreconditionFailed(StoreError):
    """The document changed between read and conditional write."""

    code = "precondition_failed"
    default_message = "Phase changed. Try again."
