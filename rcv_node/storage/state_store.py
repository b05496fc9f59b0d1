from __future__ import annotations

"""
Atomic JSON snapshot store for the node state (ledger + nonces).

- Atomic write (temp file + fsync + os.replace)
- Rolling backups (.bak1, .bak2, ...) rotated before each save
- Load fallback: primary -> bak1 -> bak2 -> ...
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

log = logging.getLogger(__name__)

JsonDict = Dict[str, Any]
PathLike = Union[str, Path]


def _fsync_dir(dir_path: Path) -> None:
    try:
        fd = os.open(str(dir_path), os.O_DIRECTORY)
    except (OSError, AttributeError):
        # O_DIRECTORY is unavailable on some platforms
        return
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        os.replace(str(tmp_path), str(path))
        _fsync_dir(path.parent)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def read_json(path: Path) -> Optional[JsonDict]:
    if not path.exists():
        return None
    try:
        obj = json.loads(path.read_bytes().decode("utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        log.warning("unreadable state snapshot at %s", path, exc_info=True)
        return None
    return obj if isinstance(obj, dict) else None


class JSONStateStore:
    def __init__(self, path: PathLike = "rcv_state.json", keep_backups: int = 2) -> None:
        self.path = Path(path)
        self.keep_backups = int(keep_backups)

    def _backup(self, i: int) -> Path:
        return self.path.with_suffix(self.path.suffix + f".bak{i}")

    def load(self) -> Optional[JsonDict]:
        paths = [self.path] + [self._backup(i) for i in range(1, max(0, self.keep_backups) + 1)]
        for p in paths:
            obj = read_json(p)
            if obj is not None:
                if p != self.path:
                    log.warning("primary state unreadable; recovered from %s", p)
                return obj
        return None

    def _rotate_backups(self) -> None:
        if self.keep_backups <= 0:
            return
        # move .bak(N-1) -> .bakN
        for i in range(self.keep_backups, 1, -1):
            src = self._backup(i - 1)
            if src.exists():
                os.replace(str(src), str(self._backup(i)))
        if self.path.exists():
            os.replace(str(self.path), str(self._backup(1)))

    def save(self, state: JsonDict) -> None:
        data = json.dumps(state, indent=2, sort_keys=True).encode("utf-8")
        self._rotate_backups()
        atomic_write_bytes(self.path, data)
