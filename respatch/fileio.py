"""Whole-file reads and durable whole-file rewrites."""

import os
import tempfile
from pathlib import Path
from typing import Union

from respatch.errors import IoFailure

PathLike = Union[str, Path]


def read_bytes(path: PathLike) -> bytearray:
    """Read a whole file into a mutable buffer.

    Raises:
        IoFailure: If the file cannot be read
    """
    try:
        with open(path, "rb") as f:
            return bytearray(f.read())
    except (IOError, OSError) as e:
        raise IoFailure(f"Failed to read file: {e}", path=str(path)) from e


def write_bytes(path: PathLike, data: bytes) -> None:
    """Replace a file's contents and flush them to stable storage.

    The data goes to a temporary file in the same directory which is fsync'd
    and then renamed over the target, so readers see the old or the new
    contents, never a mix.

    Raises:
        IoFailure: If the file cannot be written
    """
    path = Path(path)
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if path.exists():
            os.chmod(tmp_name, path.stat().st_mode & 0o7777)
        os.replace(tmp_name, path)
        tmp_name = None
    except (IOError, OSError) as e:
        raise IoFailure(f"Failed to write file: {e}", path=str(path)) from e
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)


def write_text(path: PathLike, text: str) -> None:
    """Durably replace a text file (UTF-8)"""
    write_bytes(path, text.encode("utf-8"))
