# tests/test_tx.py

import pytest

from rcv_node.crypto_utils import (
    address_from_public_key,
    ed25519_generate_keypair,
    ed25519_sign,
    ed25519_verify,
)
from rcv_node.rcv_runtime.errors import TxVerificationError
from rcv_node.rcv_runtime.tx import (
    NonceStore,
    SubmitBallotPayload,
    TxDomain,
    TxEnvelope,
    TxKind,
    TxVerifyPolicy,
    add_cosignature,
    compute_tx_id,
    sign_envelope,
    verify_tx_envelope,
)

from conftest import new_account

DOMAIN = TxDomain(chain_id="rcv-test")
BALLOT = {"credential_id": 7, "proposal_id": 0, "ranks": ["A", "C", "B", "D"]}


# ============================================================
# Crypto helpers
# ============================================================

def test_ed25519_sign_and_verify():
    sk, pk = ed25519_generate_keypair()
    sig = ed25519_sign(sk, b"hello")
    assert ed25519_verify(pk, b"hello", sig)
    assert not ed25519_verify(pk, b"hellO", sig)
    assert not ed25519_verify("zz", b"hello", sig)


def test_address_shape():
    _, pk = ed25519_generate_keypair()
    addr = address_from_public_key(pk)
    assert addr.startswith("0x")
    assert len(addr) == 2 + 40
    assert addr == addr.lower()


# ============================================================
# Envelope verification
# ============================================================

def test_signed_envelope_verifies_and_derives_sender():
    acct = new_account()
    env = sign_envelope(DOMAIN, acct.secret_key, "submit_ballot", BALLOT, 0)

    vtx = verify_tx_envelope(DOMAIN, env)
    assert vtx.sender == acct.address
    assert vtx.kind == TxKind.SUBMIT_BALLOT
    assert isinstance(vtx.payload, SubmitBallotPayload)
    assert vtx.payload.ranks == ["A", "C", "B", "D"]
    assert vtx.tx_id == compute_tx_id(DOMAIN, env)


def test_envelope_survives_dict_form():
    acct = new_account()
    env = sign_envelope(DOMAIN, acct.secret_key, "close_proposal", {"proposal_id": 0}, 3)
    again = TxEnvelope.from_dict(env.to_dict())
    assert verify_tx_envelope(DOMAIN, again).sender == acct.address


@pytest.mark.parametrize(
    "mutate",
    [
        lambda e: e.payload.update({"proposal_id": 1}),
        lambda e: setattr(e, "nonce", 1),
        lambda e: setattr(e, "kind", "close_proposal"),
        lambda e: setattr(e, "public_key", new_account().public_key),
    ],
)
def test_tampered_envelope_is_rejected(mutate):
    acct = new_account()
    env = sign_envelope(DOMAIN, acct.secret_key, "submit_ballot", dict(BALLOT), 0)
    mutate(env)
    with pytest.raises(TxVerificationError):
        verify_tx_envelope(DOMAIN, env)


def test_signature_is_bound_to_chain_id():
    acct = new_account()
    env = sign_envelope(DOMAIN, acct.secret_key, "submit_ballot", BALLOT, 0)
    with pytest.raises(TxVerificationError) as excinfo:
        verify_tx_envelope(TxDomain(chain_id="other-chain"), env)
    assert excinfo.value.reason == "BadSignature"


def test_sender_must_match_key():
    acct = new_account()
    env = sign_envelope(DOMAIN, acct.secret_key, "submit_ballot", BALLOT, 0)
    env.sender = "0xsomeoneelse"
    with pytest.raises(TxVerificationError):
        verify_tx_envelope(DOMAIN, env)


def test_unsigned_envelope_needs_dev_mode():
    env = TxEnvelope(kind="submit_ballot", payload=BALLOT, nonce=0, sender="0xVOTER_V")

    with pytest.raises(TxVerificationError) as excinfo:
        verify_tx_envelope(DOMAIN, env)
    assert excinfo.value.reason == "BadSignature"

    dev = TxVerifyPolicy(require_signature=False)
    assert verify_tx_envelope(DOMAIN, env, policy=dev).sender == "0xvoter_v"

    env.sender = ""
    with pytest.raises(TxVerificationError) as excinfo:
        verify_tx_envelope(DOMAIN, env, policy=dev)
    assert excinfo.value.reason == "MissingSender"


@pytest.mark.parametrize(
    "kind,payload,reason",
    [
        ("mint_tokens", {}, "UnknownTxKind"),
        ("create_proposal", {"name": "x", "options": ["a", "b", "c"]}, "MalformedPayload"),
        ("submit_ballot", {"credential_id": 7, "proposal_id": 0}, "MalformedPayload"),
        ("close_proposal", {"proposal_id": "zero"}, "MalformedPayload"),
    ],
)
def test_bad_kind_or_payload(kind, payload, reason):
    acct = new_account()
    env = sign_envelope(DOMAIN, acct.secret_key, kind, payload, 0)
    with pytest.raises(TxVerificationError) as excinfo:
        verify_tx_envelope(DOMAIN, env)
    assert excinfo.value.reason == reason


def test_negative_nonce_rejected():
    acct = new_account()
    env = sign_envelope(DOMAIN, acct.secret_key, "close_proposal", {"proposal_id": 0}, -1)
    with pytest.raises(TxVerificationError) as excinfo:
        verify_tx_envelope(DOMAIN, env)
    assert excinfo.value.reason == "BadNonce"


def test_cosignatures_are_verified_and_reported():
    a, b = new_account(), new_account()
    env = sign_envelope(DOMAIN, a.secret_key, "close_proposal", {"proposal_id": 0}, 0)
    add_cosignature(DOMAIN, env, b.secret_key)

    vtx = verify_tx_envelope(DOMAIN, env)
    assert vtx.sender == a.address
    assert vtx.cosigners == (b.address,)

    env.cosignatures[0] = type(env.cosignatures[0])(
        public_key=new_account().public_key,
        signature=env.cosignatures[0].signature,
    )
    with pytest.raises(TxVerificationError):
        verify_tx_envelope(DOMAIN, env)


# ============================================================
# Nonces
# ============================================================

def test_nonce_store_sequence():
    store = NonceStore()
    assert store.expected("0xA") == 0

    store.require("0xA", 0)
    store.commit("0xA", 0)
    assert store.expected("0xa") == 1

    with pytest.raises(TxVerificationError) as excinfo:
        store.require("0xa", 0)
    assert excinfo.value.reason == "BadNonce"
    with pytest.raises(TxVerificationError):
        store.require("0xa", 5)

    assert NonceStore(store.to_dict()).expected("0xa") == 1
