# rcv_node/rcv_runtime/proposals.py
from __future__ import annotations

"""
Proposal Ledger

Append-only ordered collection of proposals. Each proposal has a fixed
four-option schema and an open/closed flag.

Invariants:
- proposal ids are dense, zero-based and assigned in creation order
- a proposal starts open and, once closed, is never reopened
- proposals are never deleted
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .auth import AuthorizationGuard
from .errors import ErrorContext, IndexOutOfRange
from .events import EventLog, ProposalCreated, VotingEnded

log = logging.getLogger(__name__)

OPTION_COUNT = 4


@dataclass
class Proposal:
    proposal_id: int
    name: str
    options: Tuple[str, str, str, str]
    is_open: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposal_id": self.proposal_id,
            "name": self.name,
            "options": list(self.options),
            "is_open": self.is_open,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Proposal":
        return cls(
            proposal_id=int(data["proposal_id"]),
            name=str(data.get("name", "")),
            options=tuple(str(o) for o in data.get("options", [])),  # type: ignore[arg-type]
            is_open=bool(data.get("is_open", True)),
        )


class ProposalLedger:
    def __init__(self, guard: AuthorizationGuard, events: EventLog) -> None:
        self.guard = guard
        self.events = events
        self._proposals: List[Proposal] = []

    # ------------------------
    # Reads
    # ------------------------
    def proposal_count(self) -> int:
        return len(self._proposals)

    def latest_proposal_id(self) -> Optional[int]:
        """
        Highest assigned id, or None when no proposal exists yet.
        """
        if not self._proposals:
            return None
        return len(self._proposals) - 1

    def _require_in_range(self, proposal_id: int) -> Proposal:
        try:
            pid = int(proposal_id)
        except (TypeError, ValueError):
            pid = -1
        if pid < 0 or pid >= len(self._proposals):
            raise IndexOutOfRange(
                f"proposal {proposal_id!r} not in [0, {len(self._proposals)})",
                ErrorContext(action="get_proposal", detail=str(proposal_id)),
            )
        return self._proposals[pid]

    def get_proposal(self, proposal_id: int) -> Proposal:
        # a copy; closing only happens through close_proposal
        return replace(self._require_in_range(proposal_id))

    def is_open(self, proposal_id: int) -> bool:
        return self._require_in_range(proposal_id).is_open

    def list_proposals(self) -> List[Proposal]:
        return [replace(p) for p in self._proposals]

    # ------------------------
    # Mutations (admin only)
    # ------------------------
    def create_proposal(
        self,
        caller: str,
        name: str,
        option1: str,
        option2: str,
        option3: str,
        option4: str,
        *,
        cosigners: Iterable[str] = (),
    ) -> int:
        self.guard.require_administrator(caller, cosigners, action="create_proposal")

        pid = len(self._proposals)
        options = (str(option1), str(option2), str(option3), str(option4))
        self._proposals.append(Proposal(proposal_id=pid, name=str(name), options=options))

        self.events.append(
            lambda seq: ProposalCreated(
                seq=seq,
                proposal_id=pid,
                name=str(name),
                option1=options[0],
                option2=options[1],
                option3=options[2],
                option4=options[3],
            )
        )
        log.info("proposal %s created: %r", pid, name)
        return pid

    def close_proposal(
        self, caller: str, proposal_id: int, *, cosigners: Iterable[str] = ()
    ) -> None:
        """
        Closing an already closed proposal leaves state untouched but
        re-emits VotingEnded; consumers cut off at the first one.
        """
        self.guard.require_administrator(caller, cosigners, action="close_proposal")
        prop = self._require_in_range(proposal_id)

        if not prop.is_open:
            log.info("proposal %s already closed; re-emitting VotingEnded", prop.proposal_id)
        prop.is_open = False

        self.events.append(lambda seq: VotingEnded(seq=seq, proposal_id=prop.proposal_id))
        log.info("proposal %s closed", prop.proposal_id)

    # ------------------------
    # Persistence
    # ------------------------
    def to_list(self) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in self._proposals]

    def load(self, rows: Iterable[Dict[str, Any]]) -> None:
        proposals = [Proposal.from_dict(r) for r in rows]
        for i, p in enumerate(proposals):
            if p.proposal_id != i:
                raise ValueError(f"proposal ids must be dense; got {p.proposal_id} at {i}")
            if len(p.options) != OPTION_COUNT:
                raise ValueError(f"proposal {i} must have {OPTION_COUNT} options")
        self._proposals = proposals
