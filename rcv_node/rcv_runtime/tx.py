# rcv_node/rcv_runtime/tx.py
from __future__ import annotations

"""
Authenticated transaction envelopes.

Every mutation reaches the ledger as a TxEnvelope:

    kind         one of TxKind
    payload      kind-specific fields (validated with pydantic)
    nonce        must equal the sender's next expected nonce (replay guard)
    public_key   Ed25519 public key, hex; the caller address derives from it
    signature    Ed25519 signature over the signing preimage, hex
    cosignatures extra (public_key, signature) pairs for multi-sig policies

Signing preimage:
    SHA256(domain_tag || chain_id || schema_version || canonical_json(unsigned))

Dev mode (require_signature=False) accepts an unsigned envelope carrying a
plain `sender` address instead of a key.
"""

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, Field, ValidationError, model_validator

from ..crypto_utils import (
    address_from_public_key,
    canonical_json,
    ed25519_sign,
    ed25519_verify,
    public_key_hex_from_secret,
)
from .auth import AuthorizationPolicy, normalize_address
from .errors import TxVerificationError


class TxKind(str, Enum):
    CREATE_PROPOSAL = "create_proposal"
    CLOSE_PROPOSAL = "close_proposal"
    SUBMIT_BALLOT = "submit_ballot"
    SET_OWNER = "set_owner"
    SET_CREDENTIAL_REGISTRY = "set_credential_registry"
    SET_POLICY = "set_policy"


# ------------------------------------------------------------------------------
# Payload schemas
# ------------------------------------------------------------------------------

class CreateProposalPayload(BaseModel):
    name: str
    options: List[str] = Field(min_length=4, max_length=4)


class CloseProposalPayload(BaseModel):
    proposal_id: int


class SubmitBallotPayload(BaseModel):
    credential_id: int
    proposal_id: int
    ranks: List[str] = Field(min_length=4, max_length=4)


class SetOwnerPayload(BaseModel):
    new_owner: str


class SetCredentialRegistryPayload(BaseModel):
    registry_address: str


class SetPolicyPayload(BaseModel):
    """
    Fields per policy kind:
      single_key  admin
      multi_sig   members, threshold
      role_list   admins
    """

    kind: str
    admin: str = ""
    members: List[str] = Field(default_factory=list)
    threshold: int = 1
    admins: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_policy(self) -> "SetPolicyPayload":
        # surfaces unknown kinds and bad thresholds as validation errors
        self.to_policy()
        return self

    def to_policy(self) -> AuthorizationPolicy:
        return AuthorizationPolicy.from_dict(self.model_dump())


PAYLOAD_MODELS: Dict[TxKind, Type[BaseModel]] = {
    TxKind.CREATE_PROPOSAL: CreateProposalPayload,
    TxKind.CLOSE_PROPOSAL: CloseProposalPayload,
    TxKind.SUBMIT_BALLOT: SubmitBallotPayload,
    TxKind.SET_OWNER: SetOwnerPayload,
    TxKind.SET_CREDENTIAL_REGISTRY: SetCredentialRegistryPayload,
    TxKind.SET_POLICY: SetPolicyPayload,
}


def parse_payload(kind: str, payload: Dict[str, Any]) -> Tuple[TxKind, BaseModel]:
    try:
        tx_kind = TxKind(kind)
    except ValueError:
        raise TxVerificationError(f"unknown tx kind {kind!r}", reason="UnknownTxKind")
    try:
        return tx_kind, PAYLOAD_MODELS[tx_kind].model_validate(payload or {})
    except ValidationError as e:
        raise TxVerificationError(
            f"malformed {tx_kind.value} payload: {e.error_count()} error(s)",
            reason="MalformedPayload",
        ) from e


# ------------------------------------------------------------------------------
# Envelope + domain separation
# ------------------------------------------------------------------------------

@dataclass(frozen=True)
class TxDomain:
    """
    Domain separation + network binding for tx-id and signatures.
    """

    chain_id: str = "rcv-local"
    schema_version: int = 1
    domain_tag: bytes = b"RCV/TX/v1"


@dataclass(frozen=True)
class Cosignature:
    public_key: str
    signature: str


@dataclass
class TxEnvelope:
    kind: str
    payload: Dict[str, Any]
    nonce: int
    public_key: str = ""
    sender: str = ""
    signature: str = ""
    cosignatures: List[Cosignature] = field(default_factory=list)

    def unsigned_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "payload": self.payload,
            "nonce": int(self.nonce),
            "public_key": self.public_key.lower(),
            "sender": normalize_address(self.sender),
        }

    def to_dict(self) -> Dict[str, Any]:
        out = self.unsigned_dict()
        out["signature"] = self.signature
        out["cosignatures"] = [
            {"public_key": c.public_key, "signature": c.signature} for c in self.cosignatures
        ]
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TxEnvelope":
        return cls(
            kind=str(data.get("kind", "")),
            payload=dict(data.get("payload") or {}),
            nonce=int(data.get("nonce", 0)),
            public_key=str(data.get("public_key", "") or ""),
            sender=str(data.get("sender", "") or ""),
            signature=str(data.get("signature", "") or ""),
            cosignatures=[
                Cosignature(public_key=str(c["public_key"]), signature=str(c["signature"]))
                for c in data.get("cosignatures") or []
            ],
        )


def tx_signing_preimage(domain: TxDomain, env: TxEnvelope) -> bytes:
    payload = (
        domain.domain_tag
        + domain.chain_id.encode("utf-8")
        + str(int(domain.schema_version)).encode("utf-8")
        + canonical_json(env.unsigned_dict())
    )
    return hashlib.sha256(payload).digest()


def compute_tx_id(domain: TxDomain, env: TxEnvelope) -> str:
    return tx_signing_preimage(domain, env).hex()


def sign_envelope(
    domain: TxDomain,
    secret_key_hex: str,
    kind: str,
    payload: Dict[str, Any],
    nonce: int,
) -> TxEnvelope:
    """
    Client-side helper: build and sign an envelope with one key.
    """
    env = TxEnvelope(
        kind=str(kind),
        payload=dict(payload),
        nonce=int(nonce),
        public_key=public_key_hex_from_secret(secret_key_hex),
    )
    env.signature = ed25519_sign(secret_key_hex, tx_signing_preimage(domain, env))
    return env


def add_cosignature(domain: TxDomain, env: TxEnvelope, secret_key_hex: str) -> TxEnvelope:
    pk = public_key_hex_from_secret(secret_key_hex)
    sig = ed25519_sign(secret_key_hex, tx_signing_preimage(domain, env))
    env.cosignatures.append(Cosignature(public_key=pk, signature=sig))
    return env


# ------------------------------------------------------------------------------
# Verification
# ------------------------------------------------------------------------------

@dataclass(frozen=True)
class TxVerifyPolicy:
    require_signature: bool = True


@dataclass(frozen=True)
class VerifiedTx:
    tx_id: str
    sender: str
    cosigners: Tuple[str, ...]
    kind: TxKind
    payload: BaseModel
    nonce: int


def _require(cond: bool, msg: str, reason: str = "BadSignature") -> None:
    if not cond:
        raise TxVerificationError(msg, reason=reason)


def verify_tx_envelope(
    domain: TxDomain,
    env: TxEnvelope,
    *,
    policy: Optional[TxVerifyPolicy] = None,
) -> VerifiedTx:
    pol = policy or TxVerifyPolicy()
    kind, payload = parse_payload(env.kind, env.payload)
    _require(int(env.nonce) >= 0, "nonce must be >= 0", reason="BadNonce")

    preimage = tx_signing_preimage(domain, env)

    if env.signature or pol.require_signature:
        _require(bool(env.public_key), "public_key missing")
        _require(bool(env.signature), "signature missing")
        _require(
            ed25519_verify(env.public_key, preimage, env.signature),
            "signature verification failed",
        )
        sender = address_from_public_key(env.public_key)
        if env.sender:
            _require(
                normalize_address(env.sender) == sender,
                "sender does not match public_key",
            )
    else:
        _require(bool(env.sender.strip()), "unsigned tx requires sender", reason="MissingSender")
        sender = normalize_address(env.sender)

    cosigners: List[str] = []
    for c in env.cosignatures:
        _require(
            ed25519_verify(c.public_key, preimage, c.signature),
            "cosignature verification failed",
        )
        cosigners.append(address_from_public_key(c.public_key))

    return VerifiedTx(
        tx_id=preimage.hex(),
        sender=sender,
        cosigners=tuple(cosigners),
        kind=kind,
        payload=payload,
        nonce=int(env.nonce),
    )


# ------------------------------------------------------------------------------
# Nonces
# ------------------------------------------------------------------------------

class NonceStore:
    """In-memory nonce store backed by a dict.

    sender address -> next expected nonce. Starts at 0 per sender; a tx is
    accepted only when tx.nonce == expected, and commit() bumps it.
    """

    def __init__(self, backing: Optional[Dict[str, int]] = None):
        self._d: Dict[str, int] = dict(backing or {})

    def expected(self, sender: str) -> int:
        return int(self._d.get(normalize_address(sender), 0))

    def require(self, sender: str, nonce: int) -> None:
        exp = self.expected(sender)
        if int(nonce) != exp:
            raise TxVerificationError(
                f"bad nonce for {sender}: got {nonce}, expected {exp}", reason="BadNonce"
            )

    def commit(self, sender: str, nonce: int) -> None:
        self._d[normalize_address(sender)] = int(nonce) + 1

    def to_dict(self) -> Dict[str, int]:
        return dict(self._d)
