"""Flat JSON snapshot file used to persist monitor state between restarts."""
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional


class SnapshotError(Exception):
    """The snapshot file exists but cannot be read or decoded."""


def read_snapshot(path: Path) -> Optional[dict[str, Any]]:
    """
    Read and decode the snapshot file.

    Returns:
        Decoded JSON object, or None if the file does not exist

    Raises:
        SnapshotError: if the file is unreadable or does not hold a JSON object
    """
    if not path.exists():
        return None

    try:
        raw = path.read_text(encoding="utf-8")
        data = json.loads(raw)
    except (OSError, ValueError) as e:
        raise SnapshotError(f"Cannot read snapshot {path}: {e}") from e

    if not isinstance(data, dict):
        raise SnapshotError(f"Snapshot {path} does not hold a JSON object")

    return data


def write_snapshot(path: Path, payload: dict[str, Any]) -> None:
    """
    Replace the snapshot file in one step.

    The payload is written to a temporary file in the same directory and
    moved over the target, so readers see either the old or the new file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
            handle.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
