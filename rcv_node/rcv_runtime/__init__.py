# rcv_node/rcv_runtime/__init__.py
from __future__ import annotations

"""
rcv runtime package

The ledger core (auth, proposals, ballots, events, registry) has no
third-party imports except `requests` for the HTTP registry client and
`cryptography` for transaction verification. Modules are exposed lazily so
importing the package does not pull either of them in.
"""

from importlib import import_module
from typing import Any

__all__ = [
    "auth",
    "ballots",
    "errors",
    "events",
    "ledger",
    "proposals",
    "registry",
    "tx",
]

_LAZY_MAP = {name: f"rcv_node.rcv_runtime.{name}" for name in __all__}


def __getattr__(name: str) -> Any:
    mod_path = _LAZY_MAP.get(name)
    if not mod_path:
        raise AttributeError(name)
    return import_module(mod_path)


def __dir__() -> list[str]:
    return sorted(set(globals().keys()) | set(_LAZY_MAP.keys()))
