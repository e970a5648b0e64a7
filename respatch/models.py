import re
from typing import List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from respatch.errors import InvalidSignature

FIELD_SIZE = 2
U16_MAX = 0xFFFF

_HEX_RE = re.compile(r"[0-9A-Fa-f]*")
_WHITESPACE_RE = re.compile(r"\s+")


def _check_pattern(pattern: bytes, wildcard: Sequence[bool]) -> None:
    if not pattern:
        raise InvalidSignature("Signature must contain at least one byte")
    if len(wildcard) != len(pattern):
        raise InvalidSignature(
            f"Wildcard mask has {len(wildcard)} entries for a {len(pattern)} byte signature"
        )


class Signature(BaseModel):
    """A masked byte pattern used to anchor edits inside a file.

    Wildcard bytes keep their stored value so a signature can be written back
    out unchanged, but that value is never compared while matching.

    Build signatures with ``from_hex`` or ``from_bytes``, which raise
    InvalidSignature. Constructing the model directly runs the same checks
    but pydantic reports them as ValidationError.
    """

    model_config = ConfigDict(frozen=True)

    pattern: bytes
    wildcard: Tuple[bool, ...]

    @model_validator(mode="after")
    def validate_mask(self) -> "Signature":
        """Ensure the mask covers the pattern one-to-one"""
        _check_pattern(self.pattern, self.wildcard)
        return self

    @classmethod
    def from_bytes(
        cls, pattern: bytes, wildcard: Optional[Sequence[bool]] = None
    ) -> "Signature":
        """Build a signature, raising InvalidSignature on malformed input.

        Args:
            pattern: Byte values of the signature
            wildcard: One flag per byte, True where the byte is ignored.
                Defaults to an all-exact mask.
        """
        if wildcard is None:
            wildcard = [False] * len(pattern)
        _check_pattern(pattern, wildcard)
        return cls(pattern=bytes(pattern), wildcard=tuple(bool(w) for w in wildcard))

    @classmethod
    def from_hex(cls, sig: str, sigwild: Optional[str] = None) -> "Signature":
        """Parse the hex / bit string representation of a signature.

        Args:
            sig: Hex digits, two per byte (e.g. "80020000C701E0010000")
            sigwild: One character per byte, "1" for wildcard and "0" for
                exact (e.g. "0000110000"). Defaults to all exact.

        Returns:
            The validated Signature

        Raises:
            InvalidSignature: If either string is malformed or they disagree in length
        """
        sig = _WHITESPACE_RE.sub("", sig or "")
        if len(sig) % 2:
            raise InvalidSignature(f"Invalid hex string length: {len(sig)} digits")
        if not _HEX_RE.fullmatch(sig):
            raise InvalidSignature(f"Invalid hex digits in signature: {sig}")
        pattern = bytes.fromhex(sig)

        if sigwild is None:
            return cls.from_bytes(pattern)

        sigwild = _WHITESPACE_RE.sub("", sigwild)
        wildcard = []
        for c in sigwild:
            if c not in "01":
                raise InvalidSignature(f"Invalid sigwild character: {c}")
            wildcard.append(c == "1")
        return cls.from_bytes(pattern, wildcard)

    def to_hex(self) -> Tuple[str, str]:
        """Return the (sig, sigwild) strings for this signature"""
        return (
            self.pattern.hex().upper(),
            "".join("1" if w else "0" for w in self.wildcard),
        )

    def matches_at(self, buffer: bytes, index: int) -> bool:
        """Check whether the signature matches buffer at index"""
        if index < 0 or index + len(self.pattern) > len(buffer):
            return False
        for j, (expected_byte, is_wildcard) in enumerate(
            zip(self.pattern, self.wildcard)
        ):
            if not is_wildcard and buffer[index + j] != expected_byte:
                return False
        return True

    def __len__(self) -> int:
        return len(self.pattern)


class FieldSpec(BaseModel):
    """A 2-byte little-endian field at an offset from the signature start.

    The value written is ``fixed`` when set, otherwise the resolution
    component named by ``axis`` (x = width, y = height).
    """

    offset: int = Field(ge=0)
    axis: Literal["x", "y"] = "x"
    fixed: Optional[int] = Field(default=None, ge=0, le=U16_MAX)
    size: Literal[2] = FIELD_SIZE

    @property
    def is_dynamic(self) -> bool:
        return self.fixed is None


class EditDescriptor(BaseModel):
    """One signature-anchored modification of a target file"""

    name: str = "patch"
    target_file: str
    signature: Signature
    occurrence: int = Field(default=1, ge=1)
    fields: List[FieldSpec]
    undo_file: Optional[str] = None
    check_file: Optional[str] = None

    @field_validator("fields")
    @classmethod
    def validate_fields(cls, v: List[FieldSpec]) -> List[FieldSpec]:
        if not v:
            raise ValueError("Descriptor must have at least one field")
        return v

    @field_validator("target_file")
    @classmethod
    def validate_target_file(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Descriptor must name a target file")
        return v


class PatchSet(BaseModel):
    """Ordered edit descriptors that make up one logical patch"""

    name: str
    details: Optional[str] = None
    check_file: Optional[str] = None
    descriptors: List[EditDescriptor]

    @field_validator("descriptors")
    @classmethod
    def validate_descriptors(cls, v: List[EditDescriptor]) -> List[EditDescriptor]:
        if not v:
            raise ValueError("Patch set must have at least one descriptor")
        return v

    @property
    def target_files(self) -> List[str]:
        """Files touched by this patch set, in first-use order"""
        seen: List[str] = []
        for descriptor in self.descriptors:
            if descriptor.target_file not in seen:
                seen.append(descriptor.target_file)
        return seen


class PreImage(BaseModel):
    """Bytes found at a field location before it was overwritten"""

    position: int = Field(ge=0)
    original: bytes


class UndoRecord(BaseModel):
    """A persisted pre-image: restore ``value`` at ``offset`` in ``file``"""

    file: str
    offset: int = Field(ge=0)
    value: str

    @field_validator("value")
    @classmethod
    def validate_hex_value(cls, v: str) -> str:
        """Ensure value is valid hex"""
        try:
            if not bytes.fromhex(v):
                raise ValueError("empty")
        except ValueError:
            raise ValueError(f"Invalid hex value: {v!r}")
        return v.lower()

    @classmethod
    def from_pre_image(cls, file: str, pre_image: PreImage) -> "UndoRecord":
        return cls(file=file, offset=pre_image.position, value=pre_image.original.hex())

    @property
    def original_bytes(self) -> bytes:
        return bytes.fromhex(self.value)


class AppliedSet(BaseModel):
    """What one successful apply wrote, enough to undo it later"""

    name: str
    undo_files: List[str] = Field(default_factory=list)
    records: List[UndoRecord] = Field(default_factory=list)
