"""wit2zig: Zig bindings generator for WebAssembly component worlds."""

from __future__ import annotations

from wit2zig.compiler import generate_files, generate_world
from wit2zig.config import GeneratorOptions, load_options
from wit2zig.errors import GenerationError
from wit2zig.wit.loader import load_world, parse_world

__all__ = [
    "GenerationError",
    "GeneratorOptions",
    "generate_files",
    "generate_world",
    "load_options",
    "load_world",
    "parse_world",
]
