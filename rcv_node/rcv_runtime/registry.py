# rcv_node/rcv_runtime/registry.py
from __future__ import annotations

"""
Credential Registry boundary.

The ledger consumes exactly one capability from the membership-credential
registry:

    owner_of(credential_id) -> address

and treats ANY failure (unminted id, unknown registry address, transport
error) as CredentialLookupFailed. Ownership is resolved on every ballot
submission; nothing is cached.
"""

import logging
from typing import Dict, Optional, Protocol

import requests

from .auth import normalize_address
from .errors import CredentialLookupFailed, ErrorContext

log = logging.getLogger(__name__)


class CredentialRegistry(Protocol):
    def owner_of(self, credential_id: int) -> str:
        ...


class InMemoryCredentialRegistry:
    """
    Minimal non-fungible credential registry for local nodes and tests.
    """

    def __init__(self, owners: Optional[Dict[int, str]] = None) -> None:
        self._owners: Dict[int, str] = {
            int(k): normalize_address(v) for k, v in (owners or {}).items()
        }

    def mint(self, credential_id: int, owner: str) -> None:
        cid = int(credential_id)
        if cid in self._owners:
            raise ValueError(f"credential {cid} already minted")
        self._owners[cid] = normalize_address(owner)

    def transfer(self, credential_id: int, new_owner: str) -> None:
        cid = int(credential_id)
        if cid not in self._owners:
            raise KeyError(cid)
        self._owners[cid] = normalize_address(new_owner)

    def owner_of(self, credential_id: int) -> str:
        try:
            return self._owners[int(credential_id)]
        except (KeyError, TypeError, ValueError) as e:
            raise CredentialLookupFailed(
                f"credential {credential_id!r} is not minted",
                ErrorContext(action="owner_of", detail=str(e)),
            ) from e


class HttpCredentialRegistry:
    """
    Read-only client for a registry exposed over HTTP:

        GET {base_url}/credentials/{credential_id}/owner -> {"owner": "0x..."}
    """

    def __init__(self, base_url: str, timeout_sec: float = 2.5) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = float(timeout_sec)

    def owner_of(self, credential_id: int) -> str:
        url = f"{self.base_url}/credentials/{int(credential_id)}/owner"
        try:
            resp = requests.get(url, timeout=self.timeout_sec)
            resp.raise_for_status()
            owner = resp.json().get("owner")
        except (requests.RequestException, ValueError, AttributeError) as e:
            log.warning("registry lookup failed for %s: %s", credential_id, e)
            raise CredentialLookupFailed(
                f"registry lookup failed for credential {credential_id}",
                ErrorContext(action="owner_of", detail=str(e)),
            ) from e
        if not owner:
            raise CredentialLookupFailed(
                f"registry returned no owner for credential {credential_id}",
                ErrorContext(action="owner_of", detail=url),
            )
        return normalize_address(owner)


class RegistryDirectory:
    """
    Resolves a bound registry address to a registry client.

    The Authorization Guard only stores an address; binding an address with
    no known client is allowed and simply makes every lookup fail.
    """

    def __init__(self) -> None:
        self._registries: Dict[str, CredentialRegistry] = {}

    def register(self, address: str, registry: CredentialRegistry) -> None:
        self._registries[normalize_address(address)] = registry

    def resolve(self, address: Optional[str]) -> CredentialRegistry:
        reg = self._registries.get(normalize_address(address))
        if reg is None:
            raise CredentialLookupFailed(
                f"no credential registry reachable at {address!r}",
                ErrorContext(action="resolve_registry", detail=str(address)),
            )
        return reg

    def owner_of(self, address: Optional[str], credential_id: int) -> str:
        try:
            return normalize_address(self.resolve(address).owner_of(credential_id))
        except CredentialLookupFailed:
            raise
        except Exception as e:
            raise CredentialLookupFailed(
                f"registry at {address!r} failed for credential {credential_id!r}",
                ErrorContext(action="owner_of", detail=str(e)),
            ) from e
