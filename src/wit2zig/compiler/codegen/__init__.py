"""Code generation module - turns instruction sequences into Zig."""
# ruff: noqa: I001 - Import order is intentional (handlers must follow dispatchers)

from __future__ import annotations

# Import the dispatcher first
from wit2zig.compiler.codegen.instructions import emit_instruction

# Import handlers to register them with the dispatcher
from wit2zig.compiler.codegen import blocks as _blocks  # noqa: F401
from wit2zig.compiler.codegen import handlers as _handlers  # noqa: F401
from wit2zig.compiler.codegen import memory as _memory  # noqa: F401

from wit2zig.compiler.codegen.functions import compile_export, compile_import

__all__ = ["compile_export", "compile_import", "emit_instruction"]
