"""Build patch sets from flat key/value patch definitions.

A definition section holds one unprefixed descriptor plus any number of
alternates whose keys carry a ``pN`` prefix. In a YAML patch file::

    Widescreen:
      checkfile: game.exe
      sig: 80020000C701E0010000
      sigwild: 0000110000
      xoffset: 0
      yoffset: 6
      occur: 1
      modfile: game.exe
      undofile: game.undo1
      p1sig: 3D00040000B329EFEF
      p1sigwild: 000000011
      p1xoffset: 1
      p1occur: 1
      p1setx: 0
      p1modfile: game.exe
      p1undofile: game.undo2

The descriptors are ordered unprefixed first, then by ascending N.
"""

import logging
import re
from pathlib import Path
from typing import Any, List, Mapping, Optional

import yaml

from respatch.errors import DescriptorError, InvalidSignature, IoFailure
from respatch.fileio import PathLike
from respatch.models import U16_MAX, EditDescriptor, FieldSpec, PatchSet, Signature

logger = logging.getLogger(__name__)

DESCRIPTOR_KEYS = (
    "modfile",
    "undofile",
    "sig",
    "sigwild",
    "xoffset",
    "yoffset",
    "setx",
    "sety",
    "occur",
)

_PREFIX_RE = re.compile(r"^p(\d+)(%s)$" % "|".join(DESCRIPTOR_KEYS))


def _prefix_indices(section: str, items: Mapping[str, Any]) -> List[int]:
    indices = set()
    for key in items:
        match = _PREFIX_RE.match(str(key))
        if not match:
            continue
        digits = match.group(1)
        if digits != str(int(digits)):
            raise DescriptorError(section, str(key), f"Invalid prefix 'p{digits}'")
        indices.add(int(digits))
    return sorted(indices)


class _Items:
    """Typed access to the keys of one descriptor inside a section"""

    def __init__(
        self, section: str, items: Mapping[str, Any], index: Optional[int]
    ) -> None:
        self.section = section
        self.items = items
        self.index = index

    def key(self, field: str) -> str:
        if self.index is None:
            return field
        return f"p{self.index}{field}"

    def get(self, field: str, required: bool = False) -> Optional[str]:
        value = self.items.get(self.key(field))
        if value is None or str(value).strip() == "":
            if required:
                raise DescriptorError(
                    self.section, field, f"Missing required key '{self.key(field)}'"
                )
            return None
        return str(value).strip()

    def get_int(
        self,
        field: str,
        required: bool = False,
        minimum: int = 0,
        maximum: Optional[int] = None,
    ) -> Optional[int]:
        text = self.get(field, required)
        if text is None:
            return None
        try:
            value = int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError:
            raise DescriptorError(self.section, field, f"Invalid integer: {text}")
        if value < minimum or (maximum is not None and value > maximum):
            raise DescriptorError(self.section, field, f"Value out of range: {value}")
        return value


def descriptor_from_items(
    section: str, items: Mapping[str, Any], index: Optional[int] = None
) -> EditDescriptor:
    """Build the unprefixed (index None) or ``p<index>`` descriptor of a section.

    Raises:
        DescriptorError: If a required key is missing or a value does not parse
        InvalidSignature: If sig / sigwild are malformed
    """
    keys = _Items(section, items, index)
    name = section if index is None else f"{section}/p{index}"

    try:
        signature = Signature.from_hex(
            keys.get("sig", required=True), keys.get("sigwild", required=True)
        )
    except InvalidSignature as e:
        e.descriptor = name
        raise

    specs = []
    xoffset = keys.get_int("xoffset")
    if xoffset is not None:
        specs.append(
            FieldSpec(offset=xoffset, axis="x", fixed=keys.get_int("setx", maximum=U16_MAX))
        )
    yoffset = keys.get_int("yoffset")
    if yoffset is not None:
        specs.append(
            FieldSpec(offset=yoffset, axis="y", fixed=keys.get_int("sety", maximum=U16_MAX))
        )
    if not specs:
        raise DescriptorError(section, "xoffset", f"'{name}' has neither xoffset nor yoffset")

    return EditDescriptor(
        name=name,
        target_file=keys.get("modfile", required=True),
        signature=signature,
        occurrence=keys.get_int("occur", required=True, minimum=1),
        fields=specs,
        undo_file=keys.get("undofile"),
        check_file=keys.get("checkfile"),
    )


def patch_set_from_items(section: str, items: Mapping[str, Any]) -> PatchSet:
    """Build the patch set of one definition section.

    Args:
        section: Section name, used as patch set name and in error messages
        items: Already parsed key/value pairs of the section

    Returns:
        PatchSet with the unprefixed descriptor first, then p1, p2, ...
    """
    descriptors = [descriptor_from_items(section, items)]
    for index in _prefix_indices(section, items):
        descriptors.append(descriptor_from_items(section, items, index))

    details = items.get("details")
    check_file = items.get("checkfile")
    return PatchSet(
        name=section,
        details=str(details) if details is not None else None,
        check_file=str(check_file) if check_file else None,
        descriptors=descriptors,
    )


def load_patch_file(path: PathLike) -> List[PatchSet]:
    """Load every patch set from a YAML patch definition file.

    The file maps section names to their flat key/value items. All scalars
    are read as strings so signatures and masks keep their leading zeros.

    Raises:
        IoFailure: If the file cannot be read
        DescriptorError: If the file layout or a section is invalid
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.load(f, Loader=yaml.BaseLoader)
    except (IOError, OSError) as e:
        raise IoFailure(f"Failed to read patch file: {e}", path=str(path)) from e
    except yaml.YAMLError as e:
        raise DescriptorError(path.name, "file", f"Invalid YAML: {e}") from e

    if not data:
        return []
    if not isinstance(data, dict):
        raise DescriptorError(path.name, "file", "Expected a mapping of sections")

    patch_sets = []
    for section, items in data.items():
        if not isinstance(items, dict):
            raise DescriptorError(section, "section", "Expected a mapping of keys")
        patch_sets.append(patch_set_from_items(section, items))
    logger.debug("Loaded %d patch set(s) from %s", len(patch_sets), path)
    return patch_sets


def find_patch_set(patch_sets: List[PatchSet], name: str) -> PatchSet:
    """Return the patch set called name (case-insensitive)"""
    for patch_set in patch_sets:
        if patch_set.name.lower() == name.lower():
            return patch_set
    raise DescriptorError(name, "section", "No such patch definition")
