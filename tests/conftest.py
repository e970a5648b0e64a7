"""Shared fixtures: small fake game files with known signatures."""

import pytest

from respatch.models import EditDescriptor, FieldSpec, Signature

SIG = "80020000C701E0010000"
SIGWILD = "0000110000"
SIG_BYTES = bytes.fromhex(SIG)


def build_file(size: int, positions, payload: bytes = SIG_BYTES) -> bytes:
    data = bytearray(size)
    for position in positions:
        data[position : position + len(payload)] = payload
    return bytes(data)


@pytest.fixture
def signature():
    return Signature.from_hex(SIG, SIGWILD)


@pytest.fixture
def game_bytes():
    """200 zero bytes with the signature at offset 100"""
    return build_file(200, [100])


@pytest.fixture
def game_dir(tmp_path, game_bytes):
    (tmp_path / "game.exe").write_bytes(game_bytes)
    (tmp_path / "engine.dll").write_bytes(build_file(64, [40]))
    return tmp_path


@pytest.fixture
def resolution_descriptor(signature):
    return EditDescriptor(
        name="Game",
        target_file="game.exe",
        signature=signature,
        occurrence=1,
        fields=[FieldSpec(offset=0, axis="x"), FieldSpec(offset=6, axis="y")],
        undo_file="game.undo1",
    )
