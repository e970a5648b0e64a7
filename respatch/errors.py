"""Exceptions raised by the patching core."""

from typing import Optional


class PatchError(Exception):
    """Base class for every failure surfaced by respatch.

    None of these are transient: they point at a patch definition that does
    not fit the selected files (wrong game version, wrong directory), so the
    caller has to pick another definition rather than retry.

    Attributes:
        descriptor: Name of the edit descriptor being processed (optional)
        path: File the failure relates to (optional)
    """

    def __init__(
        self,
        message: str,
        descriptor: Optional[str] = None,
        path: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.descriptor = descriptor
        self.path = path

    def __str__(self) -> str:
        context = []
        if self.descriptor:
            context.append(f"patch '{self.descriptor}'")
        if self.path:
            context.append(f"file '{self.path}'")
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class InvalidSignature(PatchError, ValueError):
    """Signature and mask are malformed (bad hex, odd length, length mismatch)."""


class SignatureNotFound(PatchError):
    """The requested occurrence of a signature does not exist in the file."""

    def __init__(
        self,
        requested: int,
        found: int,
        descriptor: Optional[str] = None,
        path: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Signature occurrence {requested} requested but only {found} found",
            descriptor,
            path,
        )
        self.requested = requested
        self.found = found


class OutOfBounds(PatchError):
    """A field would be written past the end of the file."""

    def __init__(
        self,
        position: int,
        length: int,
        descriptor: Optional[str] = None,
        path: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Field at offset {position:#x} runs past end of data ({length:#x} bytes)",
            descriptor,
            path,
        )
        self.position = position
        self.length = length


class MissingValue(PatchError):
    """A dynamic field was requested but no resolution value was supplied."""

    def __init__(
        self,
        axis: str,
        descriptor: Optional[str] = None,
        path: Optional[str] = None,
    ) -> None:
        label = "width" if axis == "x" else "height"
        super().__init__(f"No {label} value supplied for dynamic field", descriptor, path)
        self.axis = axis


class ValueOutOfRange(PatchError, ValueError):
    """A value does not fit into a 2-byte unsigned field."""


class IoFailure(PatchError):
    """A target or undo file could not be read or written."""


class UndoUnavailable(PatchError):
    """An undo file is missing, empty or corrupt."""


class DescriptorError(PatchError):
    """A flat patch definition is missing a required key or has a bad value.

    Attributes:
        section: Name of the patch definition section
        field: Base key name (without the ``pN`` prefix)
    """

    def __init__(self, section: str, field: str, message: str) -> None:
        super().__init__(f"[{section}] {field}: {message}", descriptor=section)
        self.section = section
        self.field = field
