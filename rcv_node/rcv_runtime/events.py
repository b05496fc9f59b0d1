# rcv_node/rcv_runtime/events.py
from __future__ import annotations

"""
Produced signal stream.

Every accepted mutation appends one event. Events carry a `seq` number that
is the ledger's total execution order; consumers (the off-chain Instant-Runoff
tabulator) must process them in that order.

Kinds
-----
ProposalCreated            once per create_proposal
VoterVoted                 once per accepted submit_ballot
VotingEnded                once per close_proposal (redundant closes re-emit)
AdministrationTransferred  once per set_owner
CredentialRegistryBound    once per set_credential_registry
PolicyChanged              once per set_policy
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEvent:
    seq: int
    kind: str = field(init=False, default="LedgerEvent")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProposalCreated(LedgerEvent):
    proposal_id: int = 0
    name: str = ""
    option1: str = ""
    option2: str = ""
    option3: str = ""
    option4: str = ""
    kind: str = field(init=False, default="ProposalCreated")


@dataclass(frozen=True)
class VoterVoted(LedgerEvent):
    credential_id: int = 0
    proposal_id: int = 0
    voter: str = ""
    rank1: str = ""
    rank2: str = ""
    rank3: str = ""
    rank4: str = ""
    kind: str = field(init=False, default="VoterVoted")

    @property
    def ranks(self) -> Tuple[str, str, str, str]:
        return (self.rank1, self.rank2, self.rank3, self.rank4)


@dataclass(frozen=True)
class VotingEnded(LedgerEvent):
    proposal_id: int = 0
    kind: str = field(init=False, default="VotingEnded")


@dataclass(frozen=True)
class AdministrationTransferred(LedgerEvent):
    previous: Dict[str, Any] = field(default_factory=dict)
    new_admin: str = ""
    kind: str = field(init=False, default="AdministrationTransferred")


@dataclass(frozen=True)
class CredentialRegistryBound(LedgerEvent):
    registry_address: str = ""
    kind: str = field(init=False, default="CredentialRegistryBound")


@dataclass(frozen=True)
class PolicyChanged(LedgerEvent):
    previous: Dict[str, Any] = field(default_factory=dict)
    policy: Dict[str, Any] = field(default_factory=dict)
    kind: str = field(init=False, default="PolicyChanged")


EVENT_TYPES: Dict[str, type] = {
    cls.__name__: cls
    for cls in (
        ProposalCreated,
        VoterVoted,
        VotingEnded,
        AdministrationTransferred,
        CredentialRegistryBound,
        PolicyChanged,
    )
}


def event_from_dict(data: Dict[str, Any]) -> LedgerEvent:
    raw = dict(data)
    kind = raw.pop("kind", None)
    cls = EVENT_TYPES.get(str(kind))
    if cls is None:
        raise ValueError(f"unknown event kind: {kind!r}")
    return cls(**raw)


Subscriber = Callable[[LedgerEvent], None]


class EventLog:
    """
    Append-only, ordered event stream with post-commit subscribers.

    Events are staged by `append` and become visible to subscribers only
    after `publish` (called by the ledger once an operation commits).
    """

    def __init__(self, events: Optional[Iterable[LedgerEvent]] = None) -> None:
        self._events: List[LedgerEvent] = list(events or [])
        self._subscribers: List[Subscriber] = []
        self._published = len(self._events)

    def __len__(self) -> int:
        return len(self._events)

    @property
    def next_seq(self) -> int:
        return len(self._events)

    def append(self, make: Callable[[int], LedgerEvent]) -> LedgerEvent:
        ev = make(self.next_seq)
        self._events.append(ev)
        return ev

    def truncate(self, length: int) -> None:
        del self._events[length:]
        self._published = min(self._published, length)

    def publish(self) -> None:
        pending = self._events[self._published:]
        self._published = len(self._events)
        for ev in pending:
            for sub in list(self._subscribers):
                try:
                    sub(ev)
                except Exception:
                    # A broken consumer must not undo a committed operation.
                    log.exception("event subscriber failed on seq=%s", ev.seq)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def since(self, seq: int = 0) -> List[LedgerEvent]:
        return list(self._events[max(0, int(seq)):self._published])

    def all(self) -> List[LedgerEvent]:
        return self.since(0)

    def records(self) -> List[LedgerEvent]:
        """Every event, including ones staged by an uncommitted operation."""
        return list(self._events)


def final_ballots(
    events: Iterable[LedgerEvent], proposal_id: int
) -> Dict[str, Tuple[str, str, str, str]]:
    """
    Reduce an ordered event stream to the per-voter ballot snapshot at cutoff.

    - Later VoterVoted for the same voter supersedes earlier ones.
    - The first VotingEnded for the proposal is the cutoff; ballot events
      ordered after it are ignored.

    Returns {voter: (rank1, rank2, rank3, rank4)}. Tabulation (elimination
    rounds) is left to the consumer.
    """
    snapshot: Dict[str, Tuple[str, str, str, str]] = {}
    for ev in sorted(events, key=lambda e: e.seq):
        if isinstance(ev, VotingEnded) and ev.proposal_id == proposal_id:
            break
        if isinstance(ev, VoterVoted) and ev.proposal_id == proposal_id:
            snapshot[ev.voter] = ev.ranks
    return snapshot
