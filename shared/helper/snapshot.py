"""Atomic JSON snapshots for the file-backed stores."""

import json
import os
import tempfile
from typing import Any

from shared.models.errors import StoreCorruption


def read_snapshot(path: str) -> Any | None:
    """Load a JSON snapshot.

    Args:
        path (str): Snapshot file path.

    Returns:
        Any | None: The decoded document, or None if the file does not exist.

    Raises:
        StoreCorruption: If the file exists but is not valid JSON.
    """
    if not os.path.exists(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StoreCorruption(path, str(exc))


def write_snapshot(path: str, data: Any) -> None:
    """Write a JSON snapshot atomically.

    The document is written to a temp file in the target directory and
    renamed over the previous snapshot, so a crash never leaves a torn file.
    """
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".snapshot-", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
