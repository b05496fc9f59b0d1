# rcv_node/config.py
import copy
import logging
import os
from typing import Any, Callable, Dict, Optional, Tuple

import yaml

log = logging.getLogger(__name__)

CONFIG_FILENAME = "rcv_config.yaml"

# -------- Defaults (non-secret) --------
_DEFAULT: Dict[str, Any] = {
    "ledger": {
        # Initial administrator address (single-key policy). Empty means
        # nobody can administer until state is loaded from a snapshot.
        "admin": "",
        # Reject ballots whose four ranks are empty or repeated.
        "strict_ranking": False,
        # Address of the credential registry bound at genesis.
        "registry_address": "",
    },
    "registry": {
        # Optional HTTP registry reachable at ledger.registry_address.
        "http_url": "",
        "timeout_sec": 2.5,
        # Registry address -> HTTP base url, for addresses a
        # set_credential_registry tx may bind later.
        "endpoints": {},
    },
    "security": {
        "require_signed_tx": True,
        "chain_id": "rcv-local",
    },
    "persistence": {"state_path": "rcv_state.json", "keep_backups": 2},
    "logging": {"level": "INFO"},
    "server": {"host": "127.0.0.1", "port": 8000},
}


def _bool(val: str) -> bool:
    return str(val).strip().lower() in ("1", "true", "yes", "on")


# -------- ENV overrides --------
_ENV_MAP: Dict[Tuple[str, str], Tuple[str, Callable[[str], Any]]] = {
    ("ledger", "admin"): ("RCV_ADMIN", str),
    ("ledger", "strict_ranking"): ("RCV_STRICT_RANKING", _bool),
    ("ledger", "registry_address"): ("RCV_REGISTRY_ADDRESS", str),
    ("registry", "http_url"): ("RCV_REGISTRY_URL", str),
    ("security", "require_signed_tx"): ("RCV_REQUIRE_SIGNED_TX", _bool),
    ("security", "chain_id"): ("RCV_CHAIN_ID", str),
    ("persistence", "state_path"): ("RCV_STATE_PATH", str),
    ("logging", "level"): ("RCV_LOG_LEVEL", str),
    ("server", "host"): ("RCV_HOST", str),
    ("server", "port"): ("RCV_PORT", int),
}


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in (overlay or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    for (section, key), (env_name, cast) in _ENV_MAP.items():
        val = os.getenv(env_name)
        if val is None:
            continue
        try:
            casted = cast(val)
        except ValueError:
            log.warning("ignoring invalid %s=%r", env_name, val)
            continue
        cfg.setdefault(section, {})
        cfg[section][key] = casted
    return cfg


def load_config(repo_root: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads the YAML config from repo_root/rcv_config.yaml (cwd by default).
    Missing file -> defaults. A file that fails to parse is an error.
    ENV overrides are applied last.
    """
    path = os.path.join(repo_root or os.getcwd(), CONFIG_FILENAME)
    cfg = copy.deepcopy(_DEFAULT)

    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a mapping")
        cfg = _deep_merge(cfg, data)

    return _apply_env_overrides(cfg)


def configure_logging(cfg: Dict[str, Any]) -> None:
    level = str(cfg.get("logging", {}).get("level", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


# -------- Small helpers used by the app --------
def get_bind_host(cfg: Dict[str, Any]) -> str:
    return str(cfg.get("server", {}).get("host", "127.0.0.1"))


def get_bind_port(cfg: Dict[str, Any]) -> int:
    return int(cfg.get("server", {}).get("port", 8000))


def get_state_path(cfg: Dict[str, Any]) -> str:
    return str(cfg.get("persistence", {}).get("state_path", "rcv_state.json"))
