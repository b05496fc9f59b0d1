"""
rcv_node/executor.py
--------------------

LedgerExecutor owns the node's single GovernanceLedger and is the only path
by which transactions mutate it.

Per transaction:
  1. verify the envelope (payload schema, signature, cosignatures)
  2. require tx.nonce == expected nonce for the sender
  3. dispatch to the ledger operation for tx.kind
  4. persist ledger + nonces inside the ledger's atomic unit
  5. bump the sender's nonce

All mutations are serialized with a lock, so concurrent HTTP requests never
interleave ledger operations. A rejected tx consumes no nonce and leaves
every piece of state untouched.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from .config import get_state_path, load_config
from .rcv_runtime.auth import normalize_address
from .rcv_runtime.ballots import Ballot
from .rcv_runtime.events import LedgerEvent
from .rcv_runtime.ledger import GovernanceLedger
from .rcv_runtime.proposals import Proposal
from .rcv_runtime.registry import HttpCredentialRegistry, RegistryDirectory
from .rcv_runtime.tx import (
    NonceStore,
    TxDomain,
    TxEnvelope,
    TxKind,
    TxVerifyPolicy,
    VerifiedTx,
    verify_tx_envelope,
)
from .storage.state_store import JSONStateStore

log = logging.getLogger(__name__)


class LedgerExecutor:
    def __init__(
        self,
        cfg: Optional[Dict[str, Any]] = None,
        *,
        store: Optional[JSONStateStore] = None,
        registries: Optional[RegistryDirectory] = None,
    ) -> None:
        self.cfg = cfg if cfg is not None else load_config()
        ledger_cfg = self.cfg.get("ledger", {})
        sec_cfg = self.cfg.get("security", {})

        self.domain = TxDomain(chain_id=str(sec_cfg.get("chain_id", "rcv-local")))
        self.verify_policy = TxVerifyPolicy(
            require_signature=bool(sec_cfg.get("require_signed_tx", True))
        )
        self.store = store
        if self.store is None and get_state_path(self.cfg):
            self.store = JSONStateStore(
                get_state_path(self.cfg),
                keep_backups=int(self.cfg.get("persistence", {}).get("keep_backups", 2)),
            )

        self._lock = threading.RLock()
        self.registries = registries or RegistryDirectory()
        self._wire_http_registry()

        strict = bool(ledger_cfg.get("strict_ranking", False))
        snapshot = self.store.load() if self.store is not None else None
        if snapshot:
            self.ledger = GovernanceLedger.from_dict(
                snapshot.get("ledger") or {},
                registries=self.registries,
                strict_ranking=strict,
            )
            self.nonces = NonceStore(snapshot.get("nonces") or {})
            log.info(
                "loaded state: %d proposals, %d events",
                self.ledger.proposal_count(),
                len(self.ledger.events),
            )
        else:
            self.ledger = GovernanceLedger(
                admin=str(ledger_cfg.get("admin", "")),
                registry_address=str(ledger_cfg.get("registry_address", "")) or None,
                strict_ranking=strict,
                registries=self.registries,
            )
            self.nonces = NonceStore()

        self._pending_nonce: Optional[VerifiedTx] = None
        self.ledger.add_commit_hook(self._persist)

    def _wire_http_registry(self) -> None:
        """
        Register an HTTP client for every known registry address, so a later
        set_credential_registry tx can move lookups without a restart.

        registry.endpoints maps address -> base url; registry.http_url is
        shorthand for the genesis ledger.registry_address.
        """
        reg_cfg = self.cfg.get("registry", {})
        timeout = float(reg_cfg.get("timeout_sec", 2.5))

        endpoints: Dict[str, str] = {}
        url = str(reg_cfg.get("http_url", "") or "")
        address = str(self.cfg.get("ledger", {}).get("registry_address", "") or "")
        if url and address:
            endpoints[address] = url
        for addr, base in (reg_cfg.get("endpoints") or {}).items():
            if addr and base:
                endpoints[str(addr)] = str(base)

        for addr, base in endpoints.items():
            self.registries.register(addr, HttpCredentialRegistry(base, timeout_sec=timeout))
            log.info("credential registry %s served by %s", addr, base)

    # ------------------------
    # Persistence
    # ------------------------
    def snapshot(self) -> Dict[str, Any]:
        nonces = self.nonces.to_dict()
        if self._pending_nonce is not None:
            nonces[self._pending_nonce.sender] = self._pending_nonce.nonce + 1
        return {"ledger": self.ledger.to_dict(), "nonces": nonces}

    def _persist(self, _ledger: GovernanceLedger) -> None:
        if self.store is None:
            return
        try:
            self.store.save(self.snapshot())
        except OSError:
            log.exception("failed to persist state to %s", self.store.path)
            raise

    # ------------------------
    # Transactions
    # ------------------------
    def expected_nonce(self, sender: str) -> int:
        with self._lock:
            return self.nonces.expected(sender)

    def submit(self, env: TxEnvelope) -> Dict[str, Any]:
        """
        Verify and apply one envelope. Raises TxVerificationError or a
        LedgerError subclass on rejection.
        """
        with self._lock:
            vtx = verify_tx_envelope(self.domain, env, policy=self.verify_policy)
            self.nonces.require(vtx.sender, vtx.nonce)

            self._pending_nonce = vtx
            try:
                result = self._dispatch(vtx)
            finally:
                self._pending_nonce = None
            self.nonces.commit(vtx.sender, vtx.nonce)

        log.info("tx %s applied (%s by %s)", vtx.tx_id[:16], vtx.kind.value, vtx.sender)
        return {"ok": True, "tx_id": vtx.tx_id, "kind": vtx.kind.value, "sender": vtx.sender, **result}

    def _dispatch(self, vtx: VerifiedTx) -> Dict[str, Any]:
        p: Any = vtx.payload
        caller = vtx.sender
        cos = vtx.cosigners

        if vtx.kind == TxKind.CREATE_PROPOSAL:
            pid = self.ledger.create_proposal(caller, p.name, *p.options, cosigners=cos)
            return {"proposal_id": pid}

        if vtx.kind == TxKind.CLOSE_PROPOSAL:
            self.ledger.close_proposal(caller, p.proposal_id, cosigners=cos)
            return {"proposal_id": p.proposal_id}

        if vtx.kind == TxKind.SUBMIT_BALLOT:
            ballot = self.ledger.submit_ballot(caller, p.credential_id, p.proposal_id, *p.ranks)
            return {"ballot": ballot.to_dict()}

        if vtx.kind == TxKind.SET_OWNER:
            self.ledger.set_owner(caller, p.new_owner, cosigners=cos)
            return {"new_owner": normalize_address(p.new_owner)}

        if vtx.kind == TxKind.SET_CREDENTIAL_REGISTRY:
            self.ledger.set_credential_registry(caller, p.registry_address, cosigners=cos)
            return {"registry_address": p.registry_address}

        if vtx.kind == TxKind.SET_POLICY:
            policy = p.to_policy()
            self.ledger.set_policy(caller, policy, cosigners=cos)
            return {"policy": policy.to_dict()}

        raise AssertionError(f"unhandled tx kind {vtx.kind}")

    # ------------------------
    # Reads
    # ------------------------
    def get_proposal(self, proposal_id: int) -> Proposal:
        with self._lock:
            return self.ledger.get_proposal(proposal_id)

    def list_proposals(self) -> List[Proposal]:
        with self._lock:
            return self.ledger.list_proposals()

    def proposal_count(self) -> int:
        with self._lock:
            return self.ledger.proposal_count()

    def latest_proposal_id(self) -> Optional[int]:
        with self._lock:
            return self.ledger.latest_proposal_id()

    def get_ballot(self, proposal_id: int, voter: str) -> Optional[Ballot]:
        with self._lock:
            return self.ledger.get_ballot(proposal_id, voter)

    def ballots_for(self, proposal_id: int) -> List[Ballot]:
        with self._lock:
            return self.ledger.ballots_for(proposal_id)

    def events_since(self, seq: int = 0) -> List[LedgerEvent]:
        with self._lock:
            return self.ledger.events_since(seq)

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "chain_id": self.domain.chain_id,
                "policy": self.ledger.guard.policy.to_dict(),
                "registry_address": self.ledger.guard.registry_address,
                "strict_ranking": self.ledger.strict_ranking,
                "proposal_count": self.ledger.proposal_count(),
                "event_count": len(self.ledger.events),
            }
