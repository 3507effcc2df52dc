"""Command line entry point for the public card library."""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .config import ConfigLoader, ConfigLoadError, LibraryConfig
from .library import CardLibrary
from .services.character_cards import CharacterCardError, PNGMetadataHandler, SourceFormat

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> Optional[Path]:
    """Configure logging. Returns the debug log file path when debug is on."""
    # stdout is reserved for command output
    handlers = [logging.StreamHandler(sys.stderr)]
    log_file = None

    # Add file handler if debug mode is enabled
    if debug:
        log_dir = Path("data/debug_logs")
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"card_library_{timestamp}.log"

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )

    # Only set DEBUG for our own loggers
    logging.getLogger('card_library').setLevel(logging.DEBUG if debug else logging.INFO)
    logging.getLogger('PIL').setLevel(logging.WARNING)
    return log_file


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="card-library", description="Public character card library")
    parser.add_argument("--config", type=Path, help="Path to library.yaml")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import", help="Import a YAML, JSON or PNG character")
    p_import.add_argument("file", type=Path)
    p_import.add_argument("--format", dest="source_format", help="yaml, yml, json or png (default: file extension)")
    p_import.add_argument("--handle", required=True, help="Uploader handle")
    p_import.add_argument("--display-name", help="Uploader display name (default: handle)")
    p_import.add_argument("--preserve", help="Overwrite this existing card file name")

    sub.add_parser("list", help="List public characters")

    p_show = sub.add_parser("show", help="Print a character's JSON")
    p_show.add_argument("name")

    p_delete = sub.add_parser("delete", help="Delete a public character")
    p_delete.add_argument("name")

    p_inspect = sub.add_parser("inspect", help="Show the PNG chunks of a file")
    p_inspect.add_argument("file", type=Path)
    return parser


def load_config(path: Optional[Path]) -> LibraryConfig:
    loader = ConfigLoader()
    return loader.load_library_config(path) if path else loader.load_library_config()


def run(args: argparse.Namespace) -> int:
    if args.command == "inspect":
        data = args.file.read_bytes()
        report = PNGMetadataHandler.inspect(data)
        print(f"Chunks: {', '.join(report.chunk_names)}")
        print(f"tEXt keywords: {', '.join(report.text_keywords) or '(none)'}")
        payload = PNGMetadataHandler.try_decode(data)
        print(f"Character card: {'yes' if payload is not None else 'no'}")
        return 0

    config = load_config(args.config)
    if config.debug and not args.debug:
        setup_logging(debug=True)
    library = CardLibrary.from_config(config)

    if args.command == "import":
        source_format = args.source_format or args.file.suffix
        # the CLI reads the file itself so the original is never deleted
        result = library.import_card(
            SourceFormat.parse(source_format),
            args.file.read_bytes(),
            args.handle,
            args.display_name or args.handle,
            preserved_file_name=args.preserve,
        )
        for warning in result.warnings:
            print(f"warning: {warning}")
        print(result.file_name)
    elif args.command == "list":
        for entry in library.list_all():
            marker = " (unreadable)" if entry.degraded else ""
            print(f"{entry.file_name}\t{entry.name}\t{entry.uploader}{marker}")
    elif args.command == "show":
        entry = library.get(args.name)
        print(json.dumps(entry.record.payload(), ensure_ascii=False, indent=2))
    elif args.command == "delete":
        library.delete(args.name)
        print(f"Deleted {args.name}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.debug)
    try:
        return run(args)
    except CharacterCardError as e:
        print(f"error [{e.kind.value}]: {e}", file=sys.stderr)
        return 1
    except (ConfigLoadError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
