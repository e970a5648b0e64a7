"""Undo files: YAML lists of the original bytes at every patched location.

An undo file looks like::

    - file: swkotor.exe
      offset: 2740
      value: '8002'

Records are appended in write order. Restoring replays them newest first so
that repeated applies to the same location layer back to the oldest bytes.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import yaml
from pydantic import ValidationError

from respatch.errors import IoFailure, UndoUnavailable
from respatch.fileio import PathLike, read_bytes, write_bytes, write_text
from respatch.models import UndoRecord

logger = logging.getLogger(__name__)


class UndoLedger:
    """Reads, appends to and replays undo files.

    Relative undo file names and relative target names inside records are
    resolved against ``base_dir``.
    """

    def __init__(self, base_dir: Optional[PathLike] = None) -> None:
        self.base_dir = Path(base_dir) if base_dir is not None else Path(".")

    def resolve(self, name: PathLike) -> Path:
        path = Path(name)
        if path.is_absolute():
            return path
        return self.base_dir / path

    def exists(self, undo_file: PathLike) -> bool:
        return self.resolve(undo_file).exists()

    def _read(self, undo_file: PathLike) -> Optional[List[UndoRecord]]:
        """Return the records of an undo file, or None if it does not exist"""
        path = self.resolve(undo_file)
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (IOError, OSError, UnicodeDecodeError) as e:
            raise UndoUnavailable(f"Failed to read undo file: {e}", path=str(path)) from e
        except yaml.YAMLError as e:
            raise UndoUnavailable(f"Corrupt undo file: {e}", path=str(path)) from e

        if data is None:
            return []
        if not isinstance(data, list):
            raise UndoUnavailable("Corrupt undo file: expected a list", path=str(path))

        try:
            return [UndoRecord.model_validate(item) for item in data]
        except ValidationError as e:
            raise UndoUnavailable(f"Corrupt undo record: {e}", path=str(path)) from e

    def _write(self, undo_file: PathLike, records: List[UndoRecord]) -> None:
        path = self.resolve(undo_file)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IoFailure(f"Failed to create undo directory: {e}", path=str(path)) from e
        text = yaml.dump(
            [record.model_dump() for record in records], default_flow_style=False
        )
        write_text(path, text)

    def load(self, undo_file: PathLike) -> List[UndoRecord]:
        """Load the records of an undo file.

        Raises:
            UndoUnavailable: If the file is missing, empty or corrupt
        """
        records = self._read(undo_file)
        path = str(self.resolve(undo_file))
        if records is None:
            raise UndoUnavailable("No undo file found for reversing the patch", path=path)
        if not records:
            raise UndoUnavailable("Undo file is empty", path=path)
        return records

    def record(self, undo_file: PathLike, *records: UndoRecord) -> None:
        """Append records to an undo file and flush it to disk.

        An existing undo file that cannot be parsed is never overwritten,
        since it may hold the only copy of the original bytes.
        """
        existing = self._read(undo_file) or []
        self._write(undo_file, existing + list(records))
        logger.debug("Recorded %d pre-image(s) in %s", len(records), undo_file)

    def snapshot(self, undo_file: PathLike) -> Optional[bytes]:
        """Return the raw contents of an undo file, or None if it is absent"""
        path = self.resolve(undo_file)
        if not path.exists():
            return None
        return bytes(read_bytes(path))

    def reset(self, undo_file: PathLike, snapshot: Optional[bytes]) -> None:
        """Put an undo file back to a previously taken snapshot"""
        path = self.resolve(undo_file)
        if snapshot is None:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise IoFailure(f"Failed to remove undo file: {e}", path=str(path)) from e
        else:
            write_bytes(path, snapshot)

    def replay(self, records: Sequence[UndoRecord]) -> None:
        """Write the pre-images of records back into their files, newest first.

        Every record is checked against its file before anything is written.

        Raises:
            UndoUnavailable: If a record lies outside its target file
            IoFailure: If a target file cannot be read or written
        """
        buffers: Dict[Path, bytearray] = {}
        for record in records:
            path = self.resolve(record.file).resolve()
            if path not in buffers:
                buffers[path] = read_bytes(path)
            end = record.offset + len(record.original_bytes)
            if end > len(buffers[path]):
                raise UndoUnavailable(
                    f"Undo record at offset {record.offset:#x} lies past end of file",
                    path=str(path),
                )

        for record in reversed(records):
            original = record.original_bytes
            buffer = buffers[self.resolve(record.file).resolve()]
            buffer[record.offset : record.offset + len(original)] = original

        for path, buffer in buffers.items():
            write_bytes(path, buffer)
            logger.info("Restored original bytes in %s", path)

    def restore(self, undo_file: PathLike) -> List[UndoRecord]:
        """Restore the original bytes recorded in an undo file, then delete it.

        Returns:
            The records that were replayed

        Raises:
            UndoUnavailable: If the undo file is missing, empty or corrupt; the
                target files are left untouched in that case
        """
        records = self.load(undo_file)
        self.replay(records)
        self.reset(undo_file, None)
        logger.info("Consumed undo file %s", undo_file)
        return records
