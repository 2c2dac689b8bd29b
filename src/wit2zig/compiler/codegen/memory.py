"""Linear-memory access handlers.

Slots carry addresses as ``i32``. An address is turned back into a
``usize`` by reinterpreting it as ``u32`` first, so that addresses in
the upper half of memory stay positive.
"""

from __future__ import annotations

from wit2zig.abi.instructions import Load, ParamPointer, ReturnPointer, Store
from wit2zig.compiler.codegen.instructions import emit_instruction
from wit2zig.compiler.codegen.numeric import convert, of_access, of_slot
from wit2zig.compiler.context import FunctionBindgen, MemoryArea  # noqa: TC001
from wit2zig.compiler.types import slot_spelling


def usize_of(slot: str) -> str:
    """``usize`` value of an ``i32`` slot holding an address or length."""
    return f"@as(usize, @as(u32, @bitCast({slot})))"


def address(base: str, offset: int) -> str:
    """Address expression for ``base + offset``."""
    if offset == 0:
        return usize_of(base)
    return f"{usize_of(base)} + {offset}"


def int_to_slot(expr: str) -> str:
    """``i32`` slot holding the ``usize`` value of ``expr``."""
    return f"@as(i32, @bitCast(@as(u32, @intCast({expr}))))"


def ptr_to_slot(ptr: str) -> str:
    return int_to_slot(f"@intFromPtr({ptr})")


def area_pointer(ctx: FunctionBindgen, area: MemoryArea) -> str:
    # Export areas outlive the call, so they live in a container.
    if ctx.is_import:
        return ptr_to_slot(f"&{area.name}")
    return ptr_to_slot(f"&{area.name}.bytes")


def area_declaration(ctx: FunctionBindgen, area: MemoryArea) -> str:
    storage = f"[{area.size}]u8 align({area.align}) = undefined"
    if ctx.is_import:
        return f"var {area.name}: {storage};"
    return f"const {area.name} = struct {{ var bytes: {storage}; }};"


# =============================================================================
# Loads and stores
# =============================================================================


@emit_instruction.register
def _load(inst: Load, ctx: FunctionBindgen) -> None:
    base = ctx.pop()
    access = of_access(inst.access)
    read = (
        f"@as(*align(1) const {access.spelling}, "
        f"@ptrFromInt({address(base, inst.offset)})).*"
    )
    slot = inst.access.slot
    name = ctx.tmp("load")
    ctx.emitter.line(
        f"const {name}: {slot_spelling(slot)} = {convert(read, access, of_slot(slot))};"
    )
    ctx.push(name)


@emit_instruction.register
def _store(inst: Store, ctx: FunctionBindgen) -> None:
    base = ctx.pop()
    value = ctx.pop()
    access = of_access(inst.access)
    target = (
        f"@as(*align(1) {access.spelling}, "
        f"@ptrFromInt({address(base, inst.offset)})).*"
    )
    value = convert(value, of_slot(inst.access.slot), access)
    ctx.emitter.line(f"{target} = {value};")


# =============================================================================
# Scratch areas
# =============================================================================


@emit_instruction.register
def _return_pointer(inst: ReturnPointer, ctx: FunctionBindgen) -> None:
    ctx.push(area_pointer(ctx, ctx.return_area(inst.size, inst.align)))


@emit_instruction.register
def _param_pointer(inst: ParamPointer, ctx: FunctionBindgen) -> None:
    ctx.push(area_pointer(ctx, ctx.parameter_area(inst.size, inst.align)))
