"""wit2zig compiler package - instruction sequences to Zig source.

This package turns the canonical ABI instruction sequences of a world's
functions into Zig wrappers and assembles them into one module.
"""

from __future__ import annotations

from wit2zig.compiler.compiler import find_world, generate_files, generate_world
from wit2zig.compiler.scope import ScopeTree, scope_path
from wit2zig.compiler.types import TypeMapper

__all__ = [
    "ScopeTree",
    "TypeMapper",
    "find_world",
    "generate_files",
    "generate_world",
    "scope_path",
]
