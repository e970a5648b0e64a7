"""Tests for undo files."""

import pytest
import yaml

from respatch.errors import UndoUnavailable
from respatch.ledger import UndoLedger
from respatch.models import PreImage, UndoRecord


@pytest.fixture
def ledger(game_dir):
    return UndoLedger(game_dir)


def record(offset, value, file="game.exe"):
    return UndoRecord(file=file, offset=offset, value=value)


class TestRecord:
    """Tests for persisting pre-images."""

    def test_record_writes_yaml_list(self, ledger, game_dir):
        ledger.record("game.undo1", record(100, "8002"), record(106, "e001"))

        with open(game_dir / "game.undo1", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        assert data == [
            {"file": "game.exe", "offset": 100, "value": "8002"},
            {"file": "game.exe", "offset": 106, "value": "e001"},
        ]

    def test_record_appends(self, ledger):
        ledger.record("game.undo1", record(100, "8002"))
        ledger.record("game.undo1", record(100, "0004"))
        assert [r.value for r in ledger.load("game.undo1")] == ["8002", "0004"]

    def test_record_creates_backup_directory(self, ledger, game_dir):
        ledger.record("backups/game.exe_backup.yaml", record(100, "8002"))
        assert (game_dir / "backups" / "game.exe_backup.yaml").exists()

    def test_record_refuses_to_overwrite_corrupt_file(self, ledger, game_dir):
        """Test an unreadable undo file is kept instead of replaced."""
        (game_dir / "game.undo1").write_text("{not: [valid", encoding="utf-8")
        with pytest.raises(UndoUnavailable):
            ledger.record("game.undo1", record(100, "8002"))
        assert (game_dir / "game.undo1").read_text(encoding="utf-8") == "{not: [valid"

    def test_from_pre_image(self):
        rec = UndoRecord.from_pre_image("game.exe", PreImage(position=7, original=b"\xab\xcd"))
        assert rec == record(7, "abcd")
        assert rec.original_bytes == b"\xab\xcd"

    def test_invalid_hex_rejected(self):
        with pytest.raises(ValueError):
            record(0, "xyz")


class TestLoad:
    """Tests for reading undo files back."""

    def test_missing(self, ledger):
        with pytest.raises(UndoUnavailable):
            ledger.load("nope.undo")

    def test_empty(self, ledger, game_dir):
        (game_dir / "game.undo1").write_text("", encoding="utf-8")
        with pytest.raises(UndoUnavailable):
            ledger.load("game.undo1")

    @pytest.mark.parametrize(
        "content",
        [
            "[unterminated",
            "file: game.exe\n",
            "- file: game.exe\n  offset: -4\n  value: '0000'\n",
            "- file: game.exe\n  offset: 4\n  value: zz\n",
            "- just a string\n",
        ],
    )
    def test_corrupt(self, ledger, game_dir, content):
        (game_dir / "game.undo1").write_text(content, encoding="utf-8")
        with pytest.raises(UndoUnavailable):
            ledger.load("game.undo1")


class TestRestore:
    """Tests for replaying undo files."""

    def test_restore_writes_original_bytes_and_consumes_file(self, ledger, game_dir, game_bytes):
        path = game_dir / "game.exe"
        ledger.record("game.undo1", record(100, "8002"))
        patched = bytearray(game_bytes)
        patched[100:102] = b"\x00\x04"
        path.write_bytes(bytes(patched))

        restored = ledger.restore("game.undo1")

        assert restored == [record(100, "8002")]
        assert path.read_bytes() == game_bytes
        assert not (game_dir / "game.undo1").exists()

    def test_second_restore_fails(self, ledger):
        ledger.record("game.undo1", record(100, "8002"))
        ledger.restore("game.undo1")
        with pytest.raises(UndoUnavailable):
            ledger.restore("game.undo1")

    def test_reverse_order_layers_to_oldest(self, ledger, game_dir, game_bytes):
        """Test overlapping records restore the first recorded bytes."""
        path = game_dir / "game.exe"
        ledger.record("game.undo1", record(100, "8002"))
        ledger.record("game.undo1", record(100, "0004"))
        patched = bytearray(game_bytes)
        patched[100:102] = b"\x80\x07"
        path.write_bytes(bytes(patched))

        ledger.restore("game.undo1")

        assert path.read_bytes() == game_bytes

    def test_record_past_end_leaves_files_untouched(self, ledger, game_dir, game_bytes):
        ledger.record("game.undo1", record(100, "8002"), record(199, "0000"))
        patched = bytearray(game_bytes)
        patched[100:102] = b"\x00\x04"
        (game_dir / "game.exe").write_bytes(bytes(patched))

        with pytest.raises(UndoUnavailable):
            ledger.restore("game.undo1")

        assert (game_dir / "game.exe").read_bytes() == bytes(patched)
        assert (game_dir / "game.undo1").exists()

    def test_restore_multiple_files(self, ledger, game_dir):
        before_game = (game_dir / "game.exe").read_bytes()
        before_engine = (game_dir / "engine.dll").read_bytes()
        ledger.record(
            "shared.undo",
            record(100, before_game[100:102].hex()),
            record(40, before_engine[40:42].hex(), file="engine.dll"),
        )
        (game_dir / "game.exe").write_bytes(bytes(200))
        (game_dir / "engine.dll").write_bytes(bytes(64))

        ledger.restore("shared.undo")

        assert (game_dir / "game.exe").read_bytes()[100:102] == before_game[100:102]
        assert (game_dir / "engine.dll").read_bytes()[40:42] == before_engine[40:42]


class TestSnapshot:
    """Tests for snapshot / reset used by rollback."""

    def test_reset_to_absent_removes_file(self, ledger, game_dir):
        snapshot = ledger.snapshot("game.undo1")
        assert snapshot is None
        ledger.record("game.undo1", record(100, "8002"))
        ledger.reset("game.undo1", snapshot)
        assert not (game_dir / "game.undo1").exists()

    def test_reset_to_previous_content(self, ledger):
        ledger.record("game.undo1", record(100, "8002"))
        snapshot = ledger.snapshot("game.undo1")
        ledger.record("game.undo1", record(106, "e001"))
        ledger.reset("game.undo1", snapshot)
        assert ledger.load("game.undo1") == [record(100, "8002")]
