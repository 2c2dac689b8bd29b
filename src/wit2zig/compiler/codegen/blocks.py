"""Block-structured instructions: options and lists.

A block is a nested instruction sub-sequence with its own operand stack
and text buffer. Blocks are closed by ``BlockEnd`` and consumed by the
option or list instruction that follows them, which splices their text
into an ``if``/``switch`` arm or a ``for`` loop body.
"""

from __future__ import annotations

from typing import Final

from wit2zig.abi.instructions import (
    BlockBegin,
    BlockEnd,
    IterBasePointer,
    IterElem,
    ListLift,
    ListLower,
    OptionLift,
    OptionLower,
    VariantPayload,
)
from wit2zig.compiler.codegen.instructions import emit_instruction
from wit2zig.compiler.codegen.memory import int_to_slot, ptr_to_slot, usize_of
from wit2zig.compiler.context import Block, FunctionBindgen  # noqa: TC001
from wit2zig.compiler.types import slot_spelling
from wit2zig.errors import StackMismatch

ALLOCATOR: Final[str] = '@import("std").heap.wasm_allocator'
OUT_OF_MEMORY: Final[str] = 'catch @panic("out of memory")'


def _expect_results(block: Block, count: int, consumer: str) -> None:
    if len(block.results) != count:
        msg = (
            f"{consumer} expects blocks with {count} result(s), "
            f"got {len(block.results)}"
        )
        raise StackMismatch(msg)


def _splice(ctx: FunctionBindgen, body: str) -> None:
    """Emit a block body one level deeper than the current line."""
    ctx.emitter.indent_inc()
    if body.strip():
        ctx.emitter.text(body)
    ctx.emitter.indent_dec()


# =============================================================================
# Block structure
# =============================================================================


@emit_instruction.register
def _block_begin(inst: BlockBegin, ctx: FunctionBindgen) -> None:
    ctx.begin_block(inst.inputs, loop=inst.loop)


@emit_instruction.register
def _block_end(inst: BlockEnd, ctx: FunctionBindgen) -> None:
    ctx.end_block(inst.results)


@emit_instruction.register
def _variant_payload(inst: VariantPayload, ctx: FunctionBindgen) -> None:
    frame = ctx.current_frame()
    if frame.payload is None:
        frame.payload = ctx.tmp("payload")
    ctx.push(frame.payload)


@emit_instruction.register
def _iter_elem(inst: IterElem, ctx: FunctionBindgen) -> None:
    frame = ctx.loop_frame()
    if frame.elem is None:
        frame.elem = ctx.tmp("elem")
    ctx.push(frame.elem)


@emit_instruction.register
def _iter_base_pointer(inst: IterBasePointer, ctx: FunctionBindgen) -> None:
    frame = ctx.loop_frame()
    if frame.base is None:
        frame.base = ctx.tmp("base")
        frame.index = ctx.tmp("index")
    ctx.push(frame.base)


# =============================================================================
# Options
# =============================================================================


@emit_instruction.register
def _option_lower(inst: OptionLower, ctx: FunctionBindgen) -> None:
    some = ctx.pop_block()
    none = ctx.pop_block()
    _expect_results(some, len(inst.results), inst.tag)
    _expect_results(none, len(inst.results), inst.tag)
    value = ctx.pop()

    name = ctx.tmp("option")
    slots = [f"{name}_{i}" for i in range(len(inst.results))]
    ctx.reserve(set(slots))
    for slot, ty in zip(slots, inst.results, strict=True):
        ctx.emitter.line(f"var {slot}: {slot_spelling(ty)} = undefined;")

    ctx.emitter.line(f"if ({value}) |{some.frame.payload or '_'}| {{")
    _option_arm(ctx, some, slots)
    ctx.emitter.line("} else {")
    _option_arm(ctx, none, slots)
    ctx.emitter.line("}")
    ctx.push(*slots)


def _option_arm(ctx: FunctionBindgen, block: Block, slots: list[str]) -> None:
    _splice(ctx, block.body)
    ctx.emitter.indent_inc()
    for slot, result in zip(slots, block.results, strict=True):
        ctx.emitter.line(f"{slot} = {result};")
    ctx.emitter.indent_dec()


@emit_instruction.register
def _option_lift(inst: OptionLift, ctx: FunctionBindgen) -> None:
    some = ctx.pop_block()
    none = ctx.pop_block()
    _expect_results(some, 1, inst.tag)
    _expect_results(none, 0, inst.tag)
    discriminant = ctx.pop()

    name = ctx.tmp("option")
    payload = ctx.mapper.spelling(inst.payload)
    ctx.emitter.line(f"const {name}: ?{payload} = switch ({discriminant}) {{")
    ctx.emitter.indent_inc()
    _switch_arm(ctx, "0", none, "null", f"{name}_none")
    _switch_arm(ctx, "1", some, some.results[0], f"{name}_some")
    ctx.emitter.line("else => unreachable,")
    ctx.emitter.indent_dec()
    ctx.emitter.line("};")
    ctx.push(name)


def _switch_arm(
    ctx: FunctionBindgen, case: str, block: Block, value: str, label: str
) -> None:
    if not block.body.strip():
        ctx.emitter.line(f"{case} => {value},")
        return
    ctx.emitter.line(f"{case} => {label}: {{")
    _splice(ctx, block.body)
    ctx.emitter.indent_inc()
    ctx.emitter.line(f"break :{label} {value};")
    ctx.emitter.indent_dec()
    ctx.emitter.line("},")


# =============================================================================
# Lists
# =============================================================================


@emit_instruction.register
def _list_lower(inst: ListLower, ctx: FunctionBindgen) -> None:
    body = ctx.pop_block()
    _expect_results(body, 0, inst.tag)
    frame = body.frame
    vec = ctx.materialize(ctx.pop(), "vec")

    # Allocate in units of the element alignment so the buffer is aligned.
    result = ctx.tmp("result")
    unit = f"u{inst.align * 8}"
    count = f"{vec}.len * {inst.size // inst.align}"
    ctx.emitter.line(
        f"const {result} = {ALLOCATOR}.alloc({unit}, {count}) {OUT_OF_MEMORY};"
    )
    if ctx.is_import:
        ctx.emitter.line(f"defer {ALLOCATOR}.free({result});")

    ctx.emitter.line(
        f"for ({vec}, 0..) |{frame.elem or '_'}, {frame.index or '_'}| {{"
    )
    if frame.base is not None:
        ctx.emitter.indent_inc()
        base = f"@intFromPtr({result}.ptr) + {frame.index} * {inst.size}"
        ctx.emitter.line(f"const {frame.base}: i32 = {int_to_slot(base)};")
        ctx.emitter.indent_dec()
    _splice(ctx, body.body)
    ctx.emitter.line("}")

    ctx.push(ptr_to_slot(f"{result}.ptr"), int_to_slot(f"{vec}.len"))


@emit_instruction.register
def _list_lift(inst: ListLift, ctx: FunctionBindgen) -> None:
    body = ctx.pop_block()
    _expect_results(body, 1, inst.tag)
    frame = body.frame
    length = ctx.pop()
    ptr = ctx.pop()

    element = ctx.mapper.spelling(inst.element)
    result = ctx.tmp("result")
    ctx.emitter.line(
        f"const {result} = {ALLOCATOR}.alloc({element}, {usize_of(length)}) "
        f"{OUT_OF_MEMORY};"
    )

    item = ctx.tmp("item")
    ctx.emitter.line(f"for ({result}, 0..) |*{item}, {frame.index or '_'}| {{")
    ctx.emitter.indent_inc()
    if frame.base is not None:
        base = f"{usize_of(ptr)} + {frame.index} * {inst.size}"
        ctx.emitter.line(f"const {frame.base}: i32 = {int_to_slot(base)};")
    ctx.emitter.indent_dec()
    _splice(ctx, body.body)
    ctx.emitter.indent_inc()
    ctx.emitter.line(f"{item}.* = {body.results[0]};")
    ctx.emitter.indent_dec()
    ctx.emitter.line("}")

    ctx.push(result)
