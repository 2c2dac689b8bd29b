"""Command-line interface.

Provides the `wit2zig` command: load a YAML world description and write
the generated Zig bindings.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import yaml

from wit2zig.compiler import find_world, generate_files
from wit2zig.config import GeneratorOptions, load_options
from wit2zig.errors import GenerationError
from wit2zig.wit.loader import load_world

logger = logging.getLogger("wit2zig")


def cmd_generate(args: argparse.Namespace) -> int:
    """Generate bindings for one world."""
    try:
        options = load_options(args.options) if args.options else GeneratorOptions()
        resolve, world_id = load_world(args.world_file)
        if args.world is not None:
            world_id = find_world(resolve, args.world)
        files = generate_files(resolve, world_id, options)
    except (OSError, yaml.YAMLError, ValueError, KeyError) as e:
        logger.error("Cannot load %s: %s", args.world_file, e)
        return 1
    except GenerationError as e:
        logger.error("Generation failed: %s", e)
        return 1

    if args.out_dir is None:
        for text in files.values():
            sys.stdout.write(text)
        return 0

    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    for name, text in files.items():
        path = out_dir / name
        path.write_text(text)
        logger.info("Wrote %s", path)
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="wit2zig",
        description="Generate Zig bindings for a component world",
    )
    parser.add_argument(
        "world_file",
        type=Path,
        help="Path to the YAML world description",
    )
    parser.add_argument(
        "--world",
        help="Name of the world to generate (default: the file's world)",
    )
    parser.add_argument(
        "-o",
        "--out-dir",
        help="Directory to write <world>.zig into (default: stdout)",
    )
    parser.add_argument(
        "--options",
        type=Path,
        help="Path to a YAML file of generator options",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log each generated function",
    )
    parser.set_defaults(func=cmd_generate)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
