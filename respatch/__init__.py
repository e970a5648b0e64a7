"""
respatch: signature-based binary field patcher

Locates a masked byte signature inside a file, overwrites 2-byte fields at
offsets from the match (typically a game's hard-coded width and height) and
keeps undo files so every edit can be reversed byte for byte.
"""

__version__ = "0.1.0"

from respatch.errors import (
    DescriptorError,
    InvalidSignature,
    IoFailure,
    MissingValue,
    OutOfBounds,
    PatchError,
    SignatureNotFound,
    UndoUnavailable,
    ValueOutOfRange,
)
from respatch.executor import PatchSetExecutor, apply_patch_set, undo_patch_set
from respatch.ledger import UndoLedger
from respatch.models import (
    AppliedSet,
    EditDescriptor,
    FieldSpec,
    PatchSet,
    PreImage,
    Signature,
    UndoRecord,
)
from respatch.signature import find_occurrence, locate_signature
from respatch.writer import apply_field

__all__ = [
    "__version__",
    "AppliedSet",
    "DescriptorError",
    "EditDescriptor",
    "FieldSpec",
    "InvalidSignature",
    "IoFailure",
    "MissingValue",
    "OutOfBounds",
    "PatchError",
    "PatchSet",
    "PatchSetExecutor",
    "PreImage",
    "Signature",
    "SignatureNotFound",
    "UndoLedger",
    "UndoRecord",
    "UndoUnavailable",
    "ValueOutOfRange",
    "apply_field",
    "apply_patch_set",
    "find_occurrence",
    "locate_signature",
    "undo_patch_set",
]
