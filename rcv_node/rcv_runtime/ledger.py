# rcv_node/rcv_runtime/ledger.py
from __future__ import annotations

"""
rcv_node/rcv_runtime/ledger.py
------------------------------

GovernanceLedger composes the three core components:

    AuthorizationGuard -> ProposalLedger -> BallotStore

plus the credential RegistryDirectory and the EventLog.

Every mutating operation is all-or-nothing: state is snapshotted before the
call and restored if anything raises, and staged events are only published
to subscribers after the operation commits. The ledger itself is not
thread-safe; the executor serializes callers.
"""

import copy
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from .auth import AuthorizationGuard, AuthorizationPolicy, SingleKeyPolicy
from .ballots import Ballot, BallotStore
from .events import (
    AdministrationTransferred,
    CredentialRegistryBound,
    EventLog,
    LedgerEvent,
    PolicyChanged,
    event_from_dict,
)
from .proposals import Proposal, ProposalLedger
from .registry import CredentialRegistry, RegistryDirectory

log = logging.getLogger(__name__)

STATE_VERSION = 1


class GovernanceLedger:
    def __init__(
        self,
        admin: Optional[str] = None,
        *,
        policy: Optional[AuthorizationPolicy] = None,
        registry_address: Optional[str] = None,
        strict_ranking: bool = False,
        registries: Optional[RegistryDirectory] = None,
    ) -> None:
        if policy is None:
            policy = SingleKeyPolicy(admin=admin or "")
        self.guard = AuthorizationGuard(policy, registry_address=registry_address)
        self.events = EventLog()
        self._commit_hooks: List[Callable[["GovernanceLedger"], None]] = []
        self.registries = registries or RegistryDirectory()
        self.proposals = ProposalLedger(self.guard, self.events)
        self.ballots = BallotStore(
            self.proposals,
            self.guard,
            self.registries,
            self.events,
            strict_ranking=strict_ranking,
        )

    @property
    def strict_ranking(self) -> bool:
        return self.ballots.strict_ranking

    def add_commit_hook(self, hook: Callable[["GovernanceLedger"], None]) -> None:
        """
        Run `hook(ledger)` at the end of every mutating operation, before
        events are published. If the hook raises, the operation is rolled
        back (used by the executor to persist within the atomic unit).
        """
        self._commit_hooks.append(hook)

    # ------------------------
    # Atomic unit of execution
    # ------------------------
    @contextmanager
    def _atomic(self) -> Iterator[None]:
        saved_proposals = copy.deepcopy(self.proposals._proposals)
        saved_ballots = dict(self.ballots._ballots)
        saved_policy = self.guard.policy
        saved_registry = self.guard.registry_address
        saved_events = len(self.events)
        try:
            yield
            for hook in self._commit_hooks:
                hook(self)
        except BaseException:
            self.proposals._proposals = saved_proposals
            self.ballots._ballots = saved_ballots
            self.guard.policy = saved_policy
            self.guard.registry_address = saved_registry
            self.events.truncate(saved_events)
            raise
        self.events.publish()

    # ------------------------
    # Authorization Guard surface
    # ------------------------
    def is_administrator(self, caller: str, cosigners: Iterable[str] = ()) -> bool:
        return self.guard.is_administrator(caller, cosigners)

    def transfer_administration(
        self, caller: str, new_admin: str, *, cosigners: Iterable[str] = ()
    ) -> None:
        with self._atomic():
            previous = self.guard.policy.to_dict()
            self.guard.transfer_administration(caller, new_admin, cosigners)
            self.events.append(
                lambda seq: AdministrationTransferred(
                    seq=seq, previous=previous, new_admin=str(new_admin)
                )
            )
            log.info("administration transferred to %s", new_admin)

    # external name
    set_owner = transfer_administration

    def bind_credential_registry(
        self, caller: str, registry_address: str, *, cosigners: Iterable[str] = ()
    ) -> None:
        with self._atomic():
            self.guard.bind_credential_registry(caller, registry_address, cosigners)
            self.events.append(
                lambda seq: CredentialRegistryBound(
                    seq=seq, registry_address=str(registry_address)
                )
            )
            log.info("credential registry bound to %s", registry_address)

    set_credential_registry = bind_credential_registry

    def set_policy(
        self,
        caller: str,
        policy: AuthorizationPolicy,
        *,
        cosigners: Iterable[str] = (),
    ) -> None:
        with self._atomic():
            previous = self.guard.policy.to_dict()
            self.guard.set_policy(caller, policy, cosigners)
            self.events.append(
                lambda seq: PolicyChanged(seq=seq, previous=previous, policy=policy.to_dict())
            )
            log.info("authorization policy set to %s", policy.kind.value)

    def register_registry(self, address: str, registry: CredentialRegistry) -> None:
        """
        Make a registry client reachable at `address`. Not a ledger mutation:
        this is host wiring, comparable to network reachability.
        """
        self.registries.register(address, registry)

    # ------------------------
    # Proposal Ledger surface
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
        with self._atomic():
            return self.proposals.create_proposal(
                caller, name, option1, option2, option3, option4, cosigners=cosigners
            )

    def close_proposal(
        self, caller: str, proposal_id: int, *, cosigners: Iterable[str] = ()
    ) -> None:
        with self._atomic():
            self.proposals.close_proposal(caller, proposal_id, cosigners=cosigners)

    def get_proposal(self, proposal_id: int) -> Proposal:
        return self.proposals.get_proposal(proposal_id)

    def proposal_count(self) -> int:
        return self.proposals.proposal_count()

    def latest_proposal_id(self) -> Optional[int]:
        return self.proposals.latest_proposal_id()

    def list_proposals(self) -> List[Proposal]:
        return self.proposals.list_proposals()

    # ------------------------
    # Ballot Store surface
    # ------------------------
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
        with self._atomic():
            return self.ballots.submit_ballot(
                caller, credential_id, proposal_id, rank1, rank2, rank3, rank4
            )

    def get_ballot(self, proposal_id: int, voter: str) -> Optional[Ballot]:
        return self.ballots.get_ballot(proposal_id, voter)

    def ballots_for(self, proposal_id: int) -> List[Ballot]:
        self.proposals.get_proposal(proposal_id)
        return self.ballots.ballots_for(proposal_id)

    # ------------------------
    # Signal stream
    # ------------------------
    def events_since(self, seq: int = 0) -> List[LedgerEvent]:
        return self.events.since(seq)

    def subscribe(self, callback):
        return self.events.subscribe(callback)

    # ------------------------
    # State export / import
    # ------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "auth": self.guard.to_dict(),
            "strict_ranking": self.strict_ranking,
            "proposals": self.proposals.to_list(),
            "ballots": self.ballots.to_list(),
            "events": [e.to_dict() for e in self.events.records()],
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        *,
        registries: Optional[RegistryDirectory] = None,
        strict_ranking: Optional[bool] = None,
    ) -> "GovernanceLedger":
        version = int(data.get("version", STATE_VERSION))
        if version != STATE_VERSION:
            raise ValueError(f"unsupported ledger state version {version}")

        guard = AuthorizationGuard.from_dict(data.get("auth") or {})
        if strict_ranking is None:
            strict_ranking = bool(data.get("strict_ranking", False))

        ledger = cls(
            policy=guard.policy,
            registry_address=guard.registry_address,
            strict_ranking=strict_ranking,
            registries=registries,
        )
        ledger.proposals.load(data.get("proposals", []))
        ledger.ballots.load(data.get("ballots", []))
        ledger.events = EventLog(event_from_dict(e) for e in data.get("events", []))
        ledger.proposals.events = ledger.events
        ledger.ballots.events = ledger.events
        return ledger
