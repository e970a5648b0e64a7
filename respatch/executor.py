import logging
import os
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from respatch.errors import PatchError, UndoUnavailable, ValueOutOfRange
from respatch.fileio import PathLike, read_bytes, write_bytes
from respatch.ledger import UndoLedger
from respatch.models import (
    U16_MAX,
    AppliedSet,
    EditDescriptor,
    PatchSet,
    UndoRecord,
)
from respatch.signature import find_occurrence
from respatch.writer import apply_field

logger = logging.getLogger(__name__)


class DescriptorState(str, Enum):
    PENDING = "pending"
    MATCHED = "matched"
    WRITTEN = "written"
    RECORDED = "recorded"
    FAILED = "failed"


class PatchSetExecutor:
    """Applies patch sets to files below ``base_dir`` and reverses them.

    A patch set is applied descriptor by descriptor. For each one the
    pre-images are flushed to its undo file before the target file is
    rewritten. If a descriptor fails, the descriptors already committed in the
    same run are rolled back and their undo files put back as they were, so the
    error leaves every file as it was before the run.

    The executor holds no state between calls; everything needed to undo lives
    in the undo files.
    """

    def __init__(
        self,
        base_dir: Optional[PathLike] = None,
        backup_dir: PathLike = "backups",
    ) -> None:
        self.base_dir = Path(base_dir) if base_dir is not None else Path(".")
        self.backup_dir = Path(backup_dir)
        self.ledger = UndoLedger(self.base_dir)

    def resolve(self, name: PathLike) -> Path:
        return self.ledger.resolve(name)

    def undo_file_for(self, descriptor: EditDescriptor) -> str:
        """Undo file of a descriptor, defaulting to one per target file"""
        if descriptor.undo_file:
            return descriptor.undo_file
        return str(self.backup_dir / f"{Path(descriptor.target_file).name}_backup.yaml")

    def undo_files(self, patch_set: PatchSet) -> List[str]:
        """Undo files used by a patch set, in first-use order"""
        files: List[str] = []
        for descriptor in patch_set.descriptors:
            undo_file = self.undo_file_for(descriptor)
            if undo_file not in files:
                files.append(undo_file)
        return files

    def can_patch(self, patch_set: PatchSet) -> bool:
        """Check that the patch set's check file is present in base_dir.

        File names are compared case-insensitively. A patch set without a
        check file only requires base_dir to exist.
        """
        if not self.base_dir.is_dir():
            return False
        check_file = patch_set.check_file
        if not check_file:
            return True
        wanted = check_file.lower()
        return any(entry.name.lower() == wanted for entry in self.base_dir.iterdir())

    def is_patched(self, patch_set: PatchSet) -> bool:
        """Check whether any undo file of the patch set is present"""
        return any(self.ledger.exists(f) for f in self.undo_files(patch_set))

    def apply(
        self,
        patch_set: PatchSet,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> AppliedSet:
        """Apply every descriptor of a patch set, all or nothing.

        Args:
            patch_set: Patch set to apply
            width: Value for dynamic x fields
            height: Value for dynamic y fields

        Returns:
            AppliedSet describing the undo files and records written

        Raises:
            PatchError: On the first failing descriptor, after rollback
        """
        for label, value in (("width", width), ("height", height)):
            if value is not None and not 0 <= value <= U16_MAX:
                raise ValueOutOfRange(
                    f"{label.capitalize()} {value} does not fit into 2 bytes",
                    descriptor=patch_set.name,
                )

        buffers: Dict[Path, bytearray] = {}
        snapshots: Dict[str, Optional[bytes]] = {}
        applied = AppliedSet(name=patch_set.name)

        logger.info(
            "Applying %s (%d descriptor(s))", patch_set.name, len(patch_set.descriptors)
        )
        for descriptor in patch_set.descriptors:
            try:
                records = self._apply_descriptor(
                    descriptor, buffers, snapshots, width, height
                )
            except PatchError as e:
                logger.warning("Patch %s failed: %s", descriptor.name, e)
                if e.descriptor is None:
                    e.descriptor = descriptor.name
                self._rollback(applied, snapshots)
                raise
            applied.records.extend(records)
            undo_file = self.undo_file_for(descriptor)
            if undo_file not in applied.undo_files:
                applied.undo_files.append(undo_file)

        logger.info("Applied %s", patch_set.name)
        return applied

    def _apply_descriptor(
        self,
        descriptor: EditDescriptor,
        buffers: Dict[Path, bytearray],
        snapshots: Dict[str, Optional[bytes]],
        width: Optional[int],
        height: Optional[int],
    ) -> List[UndoRecord]:
        state = DescriptorState.PENDING
        target = descriptor.target_file
        target_path = self.resolve(target)
        # One buffer per file on disk, however the descriptors spell its name
        key = target_path.resolve()
        logger.debug("%s: %s", descriptor.name, state.value)

        try:
            if key not in buffers:
                buffers[key] = read_bytes(target_path)
            buffer = buffers[key]

            position = find_occurrence(
                buffer,
                descriptor.signature,
                descriptor.occurrence,
                descriptor=descriptor.name,
                path=str(target_path),
            )
            state = DescriptorState.MATCHED
            logger.debug("%s: %s at %#x", descriptor.name, state.value, position)

            # Fields go into a copy so a failing field leaves the buffer intact
            working = bytearray(buffer)
            records = []
            for field in descriptor.fields:
                dynamic_value = width if field.axis == "x" else height
                pre_image = apply_field(
                    working, position, field, dynamic_value, descriptor=descriptor.name
                )
                records.append(UndoRecord.from_pre_image(target, pre_image))
            state = DescriptorState.WRITTEN
            logger.debug("%s: %s", descriptor.name, state.value)

            undo_file = self.undo_file_for(descriptor)
            if undo_file not in snapshots:
                snapshots[undo_file] = self.ledger.snapshot(undo_file)
            self.ledger.record(undo_file, *records)
            state = DescriptorState.RECORDED
            logger.debug("%s: %s in %s", descriptor.name, state.value, undo_file)

            write_bytes(target_path, working)
            buffers[key] = working
        except PatchError as e:
            if e.path is None:
                e.path = str(target_path)
            logger.debug(
                "%s: %s after %s", descriptor.name, DescriptorState.FAILED.value, state.value
            )
            raise

        logger.info("Patched %s (%s)", target, descriptor.name)
        return records

    def _rollback(
        self, applied: AppliedSet, snapshots: Dict[str, Optional[bytes]]
    ) -> None:
        """Undo what a failed apply committed and put the undo files back"""
        if not snapshots:
            return
        logger.warning("Rolling back %d committed write(s)", len(applied.records))
        try:
            if applied.records:
                self.ledger.replay(applied.records)
            for undo_file, snapshot in snapshots.items():
                self.ledger.reset(undo_file, snapshot)
        except PatchError:
            logger.exception("Rollback of %s failed", applied.name)

    def undo(
        self, target: Union[AppliedSet, PatchSet, PathLike, Sequence[str]]
    ) -> List[UndoRecord]:
        """Restore the original bytes recorded for an applied patch.

        Every undo file is loaded and checked before any target is touched,
        then they are restored last-applied first.

        Args:
            target: An AppliedSet, a PatchSet (its undo files are used), a
                single undo file name or undo file names in apply order

        Returns:
            All records that were replayed

        Raises:
            UndoUnavailable: If any undo file is missing, empty or corrupt
        """
        if isinstance(target, AppliedSet):
            undo_files = list(target.undo_files)
        elif isinstance(target, PatchSet):
            undo_files = self.undo_files(target)
        elif isinstance(target, (str, os.PathLike)):
            undo_files = [str(target)]
        else:
            undo_files = list(target)
        if not undo_files:
            raise UndoUnavailable("No undo files given")

        for undo_file in undo_files:
            self.ledger.load(undo_file)

        restored: List[UndoRecord] = []
        for undo_file in reversed(undo_files):
            restored.extend(self.ledger.restore(undo_file))
        return restored


def apply_patch_set(
    descriptors: Union[PatchSet, Sequence[EditDescriptor]],
    width: Optional[int] = None,
    height: Optional[int] = None,
    base_dir: Optional[PathLike] = None,
    backup_dir: PathLike = "backups",
) -> AppliedSet:
    """Apply a patch set (or a plain descriptor list) below base_dir"""
    if isinstance(descriptors, PatchSet):
        patch_set = descriptors
    else:
        descriptors = list(descriptors)
        name = descriptors[0].name if descriptors else "patch"
        patch_set = PatchSet(name=name, descriptors=descriptors)
    return PatchSetExecutor(base_dir, backup_dir).apply(patch_set, width, height)


def undo_patch_set(
    undo_files: Union[AppliedSet, PathLike, Sequence[str]],
    base_dir: Optional[PathLike] = None,
) -> List[UndoRecord]:
    """Restore the original bytes from undo files given in apply order"""
    return PatchSetExecutor(base_dir).undo(undo_files)
