# rcv_node/rcv_runtime/ballots.py
from __future__ import annotations

"""
Ballot Store

Per-proposal, per-voter record of the most recently submitted ranked ballot.

Submission order of checks:
  1. resolve credential owner via the bound registry   -> CredentialLookupFailed
  2. owner must be the caller                           -> NotCredentialHolder
  3. proposal id in range, then proposal open           -> IndexOutOfRange / ProposalClosed
  4. (strict_ranking only) ranks non-empty and distinct -> InvalidRanking
  5. write / overwrite, emit VoterVoted

Ranks are not checked against the proposal's option labels. The same
credential used from a different address is not detected.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .auth import AuthorizationGuard, normalize_address
from .errors import ErrorContext, InvalidRanking, NotCredentialHolder, ProposalClosed
from .events import EventLog, VoterVoted
from .proposals import ProposalLedger
from .registry import RegistryDirectory

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ballot:
    proposal_id: int
    voter: str
    ranks: Tuple[str, str, str, str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposal_id": self.proposal_id,
            "voter": self.voter,
            "ranks": list(self.ranks),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Ballot":
        return cls(
            proposal_id=int(data["proposal_id"]),
            voter=normalize_address(data["voter"]),
            ranks=tuple(str(r) for r in data["ranks"]),  # type: ignore[arg-type]
        )


def check_strict_ranking(ranks: Tuple[str, ...]) -> None:
    if any(not r.strip() for r in ranks):
        raise InvalidRanking("ranks must be non-empty", ErrorContext(action="submit_ballot"))
    if len(set(ranks)) != len(ranks):
        raise InvalidRanking("ranks must be distinct", ErrorContext(action="submit_ballot"))


class BallotStore:
    def __init__(
        self,
        proposals: ProposalLedger,
        guard: AuthorizationGuard,
        registries: RegistryDirectory,
        events: EventLog,
        *,
        strict_ranking: bool = False,
    ) -> None:
        self.proposals = proposals
        self.guard = guard
        self.registries = registries
        self.events = events
        self.strict_ranking = bool(strict_ranking)
        self._ballots: Dict[Tuple[int, str], Ballot] = {}

    def submit_ballot(
        self,
        caller: str,
        credential_id: int,
        proposal_id: int,
        rank1: str,
        rank2: str,
        rank3: str,
        rank4: str,
    ) -> Ballot:
        voter = normalize_address(caller)

        owner = self.registries.owner_of(self.guard.registry_address, credential_id)
        if owner != voter:
            log.warning(
                "credential %s presented by %s but owned by %s", credential_id, voter, owner
            )
            raise NotCredentialHolder(
                f"{voter} does not hold credential {credential_id}",
                ErrorContext(action="submit_ballot", detail=f"credential={credential_id}"),
            )

        prop = self.proposals.get_proposal(proposal_id)
        if not prop.is_open:
            raise ProposalClosed(
                f"proposal {prop.proposal_id} is closed",
                ErrorContext(action="submit_ballot", detail=str(prop.proposal_id)),
            )

        ranks = (str(rank1), str(rank2), str(rank3), str(rank4))
        if self.strict_ranking:
            check_strict_ranking(ranks)

        ballot = Ballot(proposal_id=prop.proposal_id, voter=voter, ranks=ranks)
        self._ballots[(prop.proposal_id, voter)] = ballot

        self.events.append(
            lambda seq: VoterVoted(
                seq=seq,
                credential_id=int(credential_id),
                proposal_id=prop.proposal_id,
                voter=voter,
                rank1=ranks[0],
                rank2=ranks[1],
                rank3=ranks[2],
                rank4=ranks[3],
            )
        )
        log.info("ballot recorded proposal=%s voter=%s", prop.proposal_id, voter)
        return ballot

    def get_ballot(self, proposal_id: int, voter: str) -> Optional[Ballot]:
        """
        Public read. None means "never voted", which is distinct from a
        ballot whose ranks happen to be empty strings.
        """
        return self._ballots.get((int(proposal_id), normalize_address(voter)))

    def ballots_for(self, proposal_id: int) -> List[Ballot]:
        pid = int(proposal_id)
        return [b for (p, _), b in sorted(self._ballots.items()) if p == pid]

    # ------------------------
    # Persistence
    # ------------------------
    def to_list(self) -> List[Dict[str, Any]]:
        return [b.to_dict() for _, b in sorted(self._ballots.items())]

    def load(self, rows: Iterable[Dict[str, Any]]) -> None:
        ballots = [Ballot.from_dict(r) for r in rows]
        self._ballots = {(b.proposal_id, b.voter): b for b in ballots}
