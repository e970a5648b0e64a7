"""Tests for field writing."""

import pytest
from pydantic import ValidationError

from respatch.errors import MissingValue, OutOfBounds, ValueOutOfRange
from respatch.models import FieldSpec
from respatch.signature import find_occurrence
from respatch.writer import apply_field, resolve_value


class TestResolveValue:
    """Tests for choosing between fixed and dynamic values."""

    def test_fixed_wins_over_dynamic(self):
        """Test setx=0 style fields ignore the supplied resolution."""
        field = FieldSpec(offset=0, axis="x", fixed=0)
        assert resolve_value(field, 1920) == 0

    def test_dynamic_value_used(self):
        assert resolve_value(FieldSpec(offset=0, axis="y"), 1080) == 1080

    def test_dynamic_without_value(self):
        with pytest.raises(MissingValue) as exc_info:
            resolve_value(FieldSpec(offset=0, axis="y"), None, descriptor="Game")
        assert exc_info.value.axis == "y"
        assert "height" in str(exc_info.value)

    @pytest.mark.parametrize("value", [-1, 0x10000])
    def test_value_out_of_range(self, value):
        with pytest.raises(ValueOutOfRange):
            resolve_value(FieldSpec(offset=0), value)

    def test_fixed_value_validated(self):
        with pytest.raises(ValidationError):
            FieldSpec(offset=0, fixed=0x10000)

    def test_negative_offset_rejected(self):
        with pytest.raises(ValidationError):
            FieldSpec(offset=-1)


class TestApplyField:
    """Tests for overwriting fields relative to a match."""

    def test_resolution_scenario(self, signature, game_bytes):
        """Test width/height land little-endian at the expected offsets."""
        buffer = bytearray(game_bytes)
        position = find_occurrence(buffer, signature, 1)
        assert position == 100

        x = apply_field(buffer, position, FieldSpec(offset=0, axis="x"), 1024)
        y = apply_field(buffer, position, FieldSpec(offset=6, axis="y"), 768)

        assert buffer[100:102] == b"\x00\x04"
        assert buffer[106:108] == b"\x00\x03"
        assert x.position == 100
        assert x.original == b"\x80\x02"
        assert y.position == 106
        assert y.original == b"\xe0\x01"

    def test_field_may_lie_past_signature(self, signature, game_bytes):
        """Test fields are not confined to the signature bytes."""
        buffer = bytearray(game_bytes)
        pre_image = apply_field(buffer, 100, FieldSpec(offset=50), 0xBEEF)
        assert pre_image.position == 150
        assert buffer[150:152] == b"\xef\xbe"

    def test_field_ending_at_end_of_file(self):
        buffer = bytearray(4)
        apply_field(buffer, 0, FieldSpec(offset=2), 0x0102)
        assert buffer == bytearray(b"\x00\x00\x02\x01")

    def test_out_of_bounds_writes_nothing(self):
        buffer = bytearray(4)
        with pytest.raises(OutOfBounds) as exc_info:
            apply_field(buffer, 0, FieldSpec(offset=3), 1)
        assert exc_info.value.position == 3
        assert exc_info.value.length == 4
        assert buffer == bytearray(4)

    def test_missing_value_writes_nothing(self, game_bytes):
        buffer = bytearray(game_bytes)
        with pytest.raises(MissingValue):
            apply_field(buffer, 100, FieldSpec(offset=0, axis="x"), None)
        assert bytes(buffer) == game_bytes
