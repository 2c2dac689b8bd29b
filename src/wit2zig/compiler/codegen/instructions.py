"""Instruction emission dispatcher.

This module contains only the singledispatch function with no handlers.
Handlers are registered in handlers.py, memory.py and blocks.py, which
must be imported to activate them.
"""

from __future__ import annotations

from functools import singledispatch
from typing import TYPE_CHECKING

from wit2zig.errors import UnsupportedInstruction

if TYPE_CHECKING:
    from wit2zig.abi.instructions import Instruction
    from wit2zig.compiler.context import FunctionBindgen


@singledispatch
def emit_instruction(inst: Instruction, ctx: FunctionBindgen) -> None:
    """Emit Zig code for one instruction."""
    raise UnsupportedInstruction(inst.tag)
