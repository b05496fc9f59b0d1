# rcv_node/rcv_runtime/auth.py
from __future__ import annotations

"""
Authorization Guard

Single capability gate consumed by every administrator-only operation:
- transfer administration (set owner)
- bind the credential registry
- create proposals
- close proposals

Ballot submission is NOT gated here; it is gated by credential ownership.

The guard never compares identities itself. It delegates to an installed
AuthorizationPolicy:

- SingleKeyPolicy      one administrator address (the default)
- MultiSigPolicy       k-of-n member addresses must approve
- RoleListPolicy       any address from a list of administrators
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional

from .errors import ErrorContext, Unauthorized

log = logging.getLogger(__name__)


class PolicyKind(str, Enum):
    SINGLE_KEY = "single_key"
    MULTI_SIG = "multi_sig"
    ROLE_LIST = "role_list"


def normalize_address(addr: Any) -> str:
    """
    Addresses are compared case-insensitively (hex), trimmed.
    """
    return str(addr or "").strip().lower()


class AuthorizationPolicy:
    kind: PolicyKind

    def authorizes(self, caller: str, cosigners: Iterable[str] = ()) -> bool:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "AuthorizationPolicy":
        kind = PolicyKind(str(data.get("kind", PolicyKind.SINGLE_KEY.value)))
        if kind == PolicyKind.SINGLE_KEY:
            return SingleKeyPolicy(admin=str(data.get("admin", "")))
        if kind == PolicyKind.MULTI_SIG:
            return MultiSigPolicy(
                members=frozenset(data.get("members", [])),
                threshold=int(data.get("threshold", 1)),
            )
        return RoleListPolicy(admins=frozenset(data.get("admins", [])))


@dataclass(frozen=True)
class SingleKeyPolicy(AuthorizationPolicy):
    admin: str
    kind: PolicyKind = field(default=PolicyKind.SINGLE_KEY, init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "admin", normalize_address(self.admin))

    def authorizes(self, caller: str, cosigners: Iterable[str] = ()) -> bool:
        # an empty admin matches nobody
        return bool(self.admin) and normalize_address(caller) == self.admin

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "admin": self.admin}


@dataclass(frozen=True)
class MultiSigPolicy(AuthorizationPolicy):
    """
    Authorized when at least `threshold` distinct members are among
    {caller} + cosigners.
    """

    members: FrozenSet[str]
    threshold: int
    kind: PolicyKind = field(default=PolicyKind.MULTI_SIG, init=False)

    def __post_init__(self) -> None:
        members = frozenset(normalize_address(m) for m in self.members if normalize_address(m))
        object.__setattr__(self, "members", members)
        if not members:
            raise ValueError("multi-sig policy needs at least one member")
        if self.threshold < 1 or self.threshold > len(members):
            raise ValueError(f"threshold must be within 1..{len(members)}")

    def authorizes(self, caller: str, cosigners: Iterable[str] = ()) -> bool:
        signers = {normalize_address(caller)} | {normalize_address(c) for c in cosigners}
        return len(signers & self.members) >= self.threshold

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "members": sorted(self.members),
            "threshold": int(self.threshold),
        }


@dataclass(frozen=True)
class RoleListPolicy(AuthorizationPolicy):
    admins: FrozenSet[str]
    kind: PolicyKind = field(default=PolicyKind.ROLE_LIST, init=False)

    def __post_init__(self) -> None:
        admins = frozenset(normalize_address(a) for a in self.admins)
        object.__setattr__(self, "admins", admins - {""})

    def authorizes(self, caller: str, cosigners: Iterable[str] = ()) -> bool:
        return normalize_address(caller) in self.admins

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "admins": sorted(self.admins)}


class AuthorizationGuard:
    """
    Holds the current policy and the bound credential-registry address.
    """

    def __init__(
        self,
        policy: AuthorizationPolicy,
        registry_address: Optional[str] = None,
    ) -> None:
        self.policy = policy
        self.registry_address = registry_address

    def is_administrator(self, caller: str, cosigners: Iterable[str] = ()) -> bool:
        return self.policy.authorizes(caller, cosigners)

    def require_administrator(
        self,
        caller: str,
        cosigners: Iterable[str] = (),
        *,
        action: str = "admin",
    ) -> None:
        if not self.is_administrator(caller, cosigners):
            log.warning("unauthorized %s attempt by %s", action, caller)
            raise Unauthorized(
                f"{caller} may not {action}",
                ErrorContext(action=action, detail=f"policy={self.policy.kind.value}"),
            )

    def transfer_administration(
        self, caller: str, new_admin: str, cosigners: Iterable[str] = ()
    ) -> None:
        # No validation of new_admin: an empty address locks administration.
        self.require_administrator(caller, cosigners, action="transfer_administration")
        self.policy = SingleKeyPolicy(admin=new_admin)

    def bind_credential_registry(
        self, caller: str, registry_address: str, cosigners: Iterable[str] = ()
    ) -> None:
        self.require_administrator(caller, cosigners, action="bind_credential_registry")
        self.registry_address = str(registry_address)

    def set_policy(
        self,
        caller: str,
        policy: AuthorizationPolicy,
        cosigners: Iterable[str] = (),
    ) -> None:
        self.require_administrator(caller, cosigners, action="set_policy")
        self.policy = policy

    def to_dict(self) -> Dict[str, Any]:
        return {
            "policy": self.policy.to_dict(),
            "registry_address": self.registry_address,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthorizationGuard":
        return cls(
            policy=AuthorizationPolicy.from_dict(data.get("policy") or {}),
            registry_address=data.get("registry_address"),
        )
