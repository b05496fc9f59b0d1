import pathlib
import sys
from dataclasses import dataclass

import pytest

# Ensure repo root (containing the rcv_node package) is on sys.path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from rcv_node.crypto_utils import address_from_public_key, ed25519_generate_keypair
from rcv_node.executor import LedgerExecutor
from rcv_node.rcv_runtime.ledger import GovernanceLedger
from rcv_node.rcv_runtime.registry import InMemoryCredentialRegistry, RegistryDirectory
from rcv_node.rcv_runtime.tx import TxDomain, add_cosignature, sign_envelope

ADMIN = "0xadmin"
VOTER_V = "0xvoter_v"
VOTER_W = "0xvoter_w"
REGISTRY_ADDR = "0xregistry"


@dataclass
class Account:
    secret_key: str
    public_key: str

    @property
    def address(self) -> str:
        return address_from_public_key(self.public_key)


def new_account() -> Account:
    sk, pk = ed25519_generate_keypair()
    return Account(secret_key=sk, public_key=pk)


@pytest.fixture
def registry():
    """Credential 7 -> V, credential 8 -> W."""
    return InMemoryCredentialRegistry({7: VOTER_V, 8: VOTER_W})


@pytest.fixture
def ledger(registry):
    """Fresh ledger, admin = ADMIN, registry bound and reachable."""
    lg = GovernanceLedger(admin=ADMIN, registry_address=REGISTRY_ADDR)
    lg.register_registry(REGISTRY_ADDR, registry)
    return lg


@pytest.fixture
def budget(ledger):
    """Ledger with the 'Budget' proposal (id 0) already created."""
    pid = ledger.create_proposal(ADMIN, "Budget", "A", "B", "C", "D")
    assert pid == 0
    return ledger


# ============================================================
# Executor / signed tx fixtures
# ============================================================

@pytest.fixture
def admin_acct():
    return new_account()


@pytest.fixture
def voter_acct():
    return new_account()


@pytest.fixture
def node_cfg(tmp_path, admin_acct):
    return {
        "ledger": {
            "admin": admin_acct.address,
            "strict_ranking": False,
            "registry_address": REGISTRY_ADDR,
        },
        "registry": {"http_url": ""},
        "security": {"require_signed_tx": True, "chain_id": "rcv-test"},
        "persistence": {"state_path": str(tmp_path / "state.json"), "keep_backups": 2},
    }


@pytest.fixture
def node_registry(voter_acct):
    """Registry directory where credential 7 is held by voter_acct."""
    directory = RegistryDirectory()
    directory.register(REGISTRY_ADDR, InMemoryCredentialRegistry({7: voter_acct.address}))
    return directory


@pytest.fixture
def executor(node_cfg, node_registry):
    return LedgerExecutor(node_cfg, registries=node_registry)


class Signer:
    """Builds signed envelopes with the right nonce for an executor."""

    def __init__(self, ex: LedgerExecutor):
        self.ex = ex

    @property
    def domain(self) -> TxDomain:
        return self.ex.domain

    def envelope(self, acct: Account, kind: str, payload: dict, nonce=None, cosigners=()):
        if nonce is None:
            nonce = self.ex.expected_nonce(acct.address)
        env = sign_envelope(self.domain, acct.secret_key, kind, payload, nonce)
        for c in cosigners:
            add_cosignature(self.domain, env, c.secret_key)
        return env

    def submit(self, acct: Account, kind: str, payload: dict, **kw):
        return self.ex.submit(self.envelope(acct, kind, payload, **kw))


@pytest.fixture
def signer(executor):
    return Signer(executor)
