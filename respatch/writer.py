import logging
from typing import Optional

from respatch.errors import MissingValue, OutOfBounds, ValueOutOfRange
from respatch.models import FieldSpec, PreImage, U16_MAX

logger = logging.getLogger(__name__)


def resolve_value(
    field: FieldSpec,
    dynamic_value: Optional[int] = None,
    descriptor: Optional[str] = None,
) -> int:
    """Pick the value a field receives.

    A fixed value always wins; a dynamic field takes ``dynamic_value``.

    Raises:
        MissingValue: If the field is dynamic and no value was supplied
        ValueOutOfRange: If the value does not fit into 2 unsigned bytes
    """
    if field.fixed is not None:
        return field.fixed
    if dynamic_value is None:
        raise MissingValue(field.axis, descriptor=descriptor)
    if dynamic_value < 0 or dynamic_value > U16_MAX:
        raise ValueOutOfRange(
            f"Value {dynamic_value} does not fit into {field.size} byte(s)",
            descriptor=descriptor,
        )
    return dynamic_value


def apply_field(
    buffer: bytearray,
    match_position: int,
    field: FieldSpec,
    dynamic_value: Optional[int] = None,
    descriptor: Optional[str] = None,
) -> PreImage:
    """Overwrite one field in buffer and return what was there before.

    Nothing is written when the field is out of bounds or has no value.

    Args:
        buffer: Mutable file contents
        match_position: Offset of the signature match the field is relative to
        field: Field to write
        dynamic_value: Resolution component for dynamic fields
        descriptor: Descriptor name reported on failure (optional)

    Returns:
        PreImage holding the original bytes at the field location
    """
    position = match_position + field.offset
    if position + field.size > len(buffer):
        raise OutOfBounds(position, len(buffer), descriptor=descriptor)

    value = resolve_value(field, dynamic_value, descriptor=descriptor)
    pre_image = PreImage(
        position=position, original=bytes(buffer[position : position + field.size])
    )
    buffer[position : position + field.size] = value.to_bytes(
        field.size, byteorder="little"
    )
    logger.debug(
        "Wrote %s=%d at %#x (was %s)", field.axis, value, position, pre_image.original.hex()
    )
    return pre_image
