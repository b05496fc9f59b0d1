# rcv_node/rcv_runtime/errors.py
from __future__ import annotations

"""
Ledger error taxonomy.

Every rejected operation raises one of these. Callers receive the `reason`
tag (e.g. "ProposalClosed"), never a reformulated message, and the ledger
state is left exactly as it was before the call.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ErrorContext:
    """
    Optional context object for debugging / audit logs.
    """

    action: str
    detail: Optional[str] = None


class LedgerError(Exception):
    """
    Base class for all ledger rejections.
    """

    reason: str = "LedgerError"

    def __init__(self, message: str = "", ctx: Optional[ErrorContext] = None):
        super().__init__(message or self.reason)
        self.ctx = ctx


class Unauthorized(LedgerError):
    """Caller is not the administrator for an admin-only operation."""

    reason = "Unauthorized"


class IndexOutOfRange(LedgerError):
    """Proposal id outside [0, count)."""

    reason = "IndexOutOfRange"


class ProposalClosed(LedgerError):
    """Ballot submitted after the proposal was closed."""

    reason = "ProposalClosed"


class NotCredentialHolder(LedgerError):
    """Caller does not own the referenced credential."""

    reason = "NotCredentialHolder"


class CredentialLookupFailed(LedgerError):
    """The credential registry could not resolve the credential."""

    reason = "CredentialLookupFailed"


class InvalidRanking(LedgerError):
    """Ranks are empty or repeated while strict ranking is enabled."""

    reason = "InvalidRanking"


class TxVerificationError(ValueError):
    """
    Raised when a transaction envelope fails verification
    (signature, nonce, unknown kind, malformed payload).
    """

    def __init__(self, message: str, reason: str = "TxRejected"):
        super().__init__(message)
        self.reason = reason


__all__ = [
    "ErrorContext",
    "LedgerError",
    "Unauthorized",
    "IndexOutOfRange",
    "ProposalClosed",
    "NotCredentialHolder",
    "CredentialLookupFailed",
    "InvalidRanking",
    "TxVerificationError",
]
