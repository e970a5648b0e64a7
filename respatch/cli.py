"""Command-line front end.

Examples:
  respatch list patches.yml
  respatch apply patches.yml "Knights of the Old Republic" --dir ~/kotor --width 1920 --height 1080
  respatch undo patches.yml "Knights of the Old Republic" --dir ~/kotor
  respatch locate swkotor.exe --sig 80020000C701E0010000 --sigwild 0000110000
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from respatch import __version__
from respatch.config import DEFAULT_SETTINGS_FILE, Settings, load_settings, save_settings
from respatch.descriptors import find_patch_set, load_patch_file
from respatch.errors import PatchError
from respatch.executor import PatchSetExecutor
from respatch.fileio import read_bytes
from respatch.models import Signature
from respatch.signature import locate_signature

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="respatch",
        description="Patch hard-coded resolutions in game executables",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--settings",
        default=DEFAULT_SETTINGS_FILE,
        help=f"Settings file (default: {DEFAULT_SETTINGS_FILE})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List patch definitions in a file")
    list_parser.add_argument("patch_file", nargs="?", help="YAML patch definition file")

    for name, help_text in (
        ("apply", "Apply a patch definition"),
        ("undo", "Reverse a previously applied patch definition"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("patch_file", help="YAML patch definition file")
        sub.add_argument("section", help="Name of the patch definition")
        sub.add_argument("--dir", dest="game_dir", help="Directory holding the game files")
        sub.add_argument("--backup-dir", help="Directory for default undo files")
        if name == "apply":
            sub.add_argument("--width", type=int, help="Horizontal resolution")
            sub.add_argument("--height", type=int, help="Vertical resolution")
            sub.add_argument(
                "--force",
                action="store_true",
                help="Skip the check file test",
            )

    locate_parser = subparsers.add_parser("locate", help="List signature matches in a file")
    locate_parser.add_argument("target", help="File to search")
    locate_parser.add_argument("--sig", required=True, help="Signature hex string")
    locate_parser.add_argument("--sigwild", help="Wildcard bit string (1 = wildcard)")

    return parser


def _list(args: argparse.Namespace, settings: Settings) -> int:
    patch_file = args.patch_file or settings.patch_file
    if not patch_file:
        logger.error("No patch file given")
        return 1
    for patch_set in load_patch_file(patch_file):
        print(f"{patch_set.name} ({len(patch_set.descriptors)} descriptor(s))")
        if patch_set.details:
            print(f"    {patch_set.details}")
    return 0


def _apply_or_undo(args: argparse.Namespace, settings: Settings) -> int:
    patch_set = find_patch_set(load_patch_file(args.patch_file), args.section)
    game_dir = args.game_dir or settings.game_dir or "."
    backup_dir = args.backup_dir or settings.backup_dir
    executor = PatchSetExecutor(game_dir, backup_dir)

    if args.command == "undo":
        records = executor.undo(patch_set)
        print(f"Restored {len(records)} field(s) for {patch_set.name}")
        settings.game_dir = str(Path(game_dir).resolve())
        return 0

    if not args.force and not executor.can_patch(patch_set):
        logger.error(
            "Check file %s not found in %s", patch_set.check_file or "-", game_dir
        )
        return 1

    width = args.width if args.width is not None else settings.width
    height = args.height if args.height is not None else settings.height
    applied = executor.apply(patch_set, width, height)
    print(
        f"Patched {patch_set.name}: {len(applied.records)} field(s), "
        f"undo files: {', '.join(applied.undo_files)}"
    )

    settings.game_dir = str(Path(game_dir).resolve())
    settings.patch_file = str(Path(args.patch_file).resolve())
    settings.width = width
    settings.height = height
    return 0


def _locate(args: argparse.Namespace) -> int:
    signature = Signature.from_hex(args.sig, args.sigwild)
    positions = locate_signature(read_bytes(args.target), signature)
    if not positions:
        print("Signature not found")
        return 1
    for occurrence, position in enumerate(positions, start=1):
        print(f"{occurrence}: {position:#x}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entrypoint."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.settings)
    except ValueError as e:
        print(f"Warning: {e}", file=sys.stderr)
        settings = Settings()

    level = logging.DEBUG if args.verbose else getattr(logging, settings.log_level)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        if args.command == "list":
            return _list(args, settings)
        if args.command == "locate":
            return _locate(args)
        result = _apply_or_undo(args, settings)
    except PatchError as e:
        logger.error("%s", e)
        return 1

    try:
        save_settings(settings, args.settings)
    except PatchError as e:
        logger.warning("Failed to save settings: %s", e)
    return result


if __name__ == "__main__":
    sys.exit(main())
