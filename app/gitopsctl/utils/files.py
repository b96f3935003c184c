"""Atomic file writing helpers."""

import os
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

import tomli_w


def atomic_write_toml(path: Path, data: dict[str, Any]) -> Path:
    """Write a TOML document atomically.

    The content is written to a temporary file in the same directory and
    then moved into place with os.replace(). The temporary file is
    cleaned up on failure.

    Args:
        path: Destination path. Parent directories are created.
        data: TOML-serializable mapping (no None values).

    Returns:
        The destination path.

    Raises:
        OSError: If the file cannot be written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="wb",
            dir=path.parent,
            delete=False,
            suffix=".tmp",
        ) as f:
            tmp_path = Path(f.name)
            tomli_w.dump(data, f)
        os.replace(str(tmp_path), str(path))
    except OSError:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise

    return path
