"""Instruction handlers for values, calls and returns.

This module registers handlers for emit_instruction.
Import this module to activate the handlers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from wit2zig.abi.instructions import (
    Bitcasts,
    CallInterface,
    CallWasm,
    ConstZero,
    GetArg,
    I32Const,
    ListCanonLift,
    ListCanonLower,
    NumericNarrow,
    NumericWiden,
    Return,
    Roll,
    StringLift,
    StringLower,
    TupleLift,
    TupleLower,
)
from wit2zig.compiler.codegen.instructions import emit_instruction
from wit2zig.compiler.codegen.memory import int_to_slot, ptr_to_slot, usize_of
from wit2zig.compiler.codegen.numeric import convert, narrow, of_slot, widen
from wit2zig.compiler.context import FunctionBindgen  # noqa: TC001
from wit2zig.compiler.names import to_zig_ident
from wit2zig.compiler.types import TypeMapper, slot_spelling
from wit2zig.errors import (
    MissingResultConvention,
    StackMismatch,
    UnsupportedInstruction,
)

if TYPE_CHECKING:
    from wit2zig.abi.instructions import WasmType
    from wit2zig.wit.types import Primitive


# =============================================================================
# Arguments, constants and stack shuffling
# =============================================================================


@emit_instruction.register
def _get_arg(inst: GetArg, ctx: FunctionBindgen) -> None:
    if inst.nth >= len(ctx.params):
        msg = f"Argument {inst.nth} out of range ({len(ctx.params)} bound)"
        raise StackMismatch(msg)
    ctx.push(ctx.params[inst.nth])


@emit_instruction.register
def _i32_const(inst: I32Const, ctx: FunctionBindgen) -> None:
    ctx.push(f"@as(i32, {inst.value})")


@emit_instruction.register
def _const_zero(inst: ConstZero, ctx: FunctionBindgen) -> None:
    ctx.push(*(f"@as({slot_spelling(ty)}, 0)" for ty in inst.types))


@emit_instruction.register
def _roll(inst: Roll, ctx: FunctionBindgen) -> None:
    if inst.depth >= len(ctx.operands):
        msg = f"Cannot roll depth {inst.depth} of {len(ctx.operands)} operands"
        raise StackMismatch(msg)
    ctx.operands.append(ctx.operands.pop(-1 - inst.depth))


# =============================================================================
# Numeric conversions
# =============================================================================


def _check_slot(
    inst: NumericWiden | NumericNarrow, prim: Primitive, slot: WasmType
) -> None:
    # A slot that cannot hold every value would need a lossy cast.
    if slot.bits not in TypeMapper.widths(prim):
        raise UnsupportedInstruction(f"{inst.tag}({prim.value}, {slot.value})")


@emit_instruction.register
def _numeric_widen(inst: NumericWiden, ctx: FunctionBindgen) -> None:
    _check_slot(inst, inst.src, inst.dst)
    ctx.push(widen(ctx.pop(), inst.src, inst.dst))


@emit_instruction.register
def _numeric_narrow(inst: NumericNarrow, ctx: FunctionBindgen) -> None:
    _check_slot(inst, inst.dst, inst.src)
    ctx.push(narrow(ctx.pop(), inst.src, inst.dst))


@emit_instruction.register
def _bitcasts(inst: Bitcasts, ctx: FunctionBindgen) -> None:
    values = ctx.pop_n(len(inst.casts))
    ctx.push(
        *(
            convert(value, of_slot(src), of_slot(dst))
            for value, (src, dst) in zip(values, inst.casts, strict=True)
        )
    )


# =============================================================================
# Strings and canonical lists
# =============================================================================


def _lower_slice(ctx: FunctionBindgen) -> None:
    value = ctx.materialize(ctx.pop(), "slice")
    ctx.push(ptr_to_slot(f"{value}.ptr"), int_to_slot(f"{value}.len"))


def _lift_slice(ctx: FunctionBindgen, element: str, prefix: str) -> None:
    length = ctx.pop()
    ptr = ctx.pop()
    name = ctx.tmp(prefix)
    ctx.emitter.line(
        f"const {name}: []const {element} = "
        f"@as([*]const {element}, @ptrFromInt({usize_of(ptr)}))"
        f"[0..{usize_of(length)}];"
    )
    ctx.push(name)


@emit_instruction.register
def _string_lower(inst: StringLower, ctx: FunctionBindgen) -> None:
    _lower_slice(ctx)


@emit_instruction.register
def _string_lift(inst: StringLift, ctx: FunctionBindgen) -> None:
    _lift_slice(ctx, "u8", "str")


@emit_instruction.register
def _list_canon_lower(inst: ListCanonLower, ctx: FunctionBindgen) -> None:
    _lower_slice(ctx)


@emit_instruction.register
def _list_canon_lift(inst: ListCanonLift, ctx: FunctionBindgen) -> None:
    _lift_slice(ctx, ctx.mapper.spelling(inst.element), "list")


# =============================================================================
# Tuples
# =============================================================================


@emit_instruction.register
def _tuple_lower(inst: TupleLower, ctx: FunctionBindgen) -> None:
    if not inst.arity:
        # Nothing reads an empty tuple, and Zig rejects unused names.
        ctx.emitter.line(f"_ = {ctx.pop()};")
        return
    value = ctx.materialize(ctx.pop(), "tuple")
    ctx.push(*(f'{value}.@"{i}"' for i in range(inst.arity)))


@emit_instruction.register
def _tuple_lift(inst: TupleLift, ctx: FunctionBindgen) -> None:
    fields = ctx.pop_n(inst.arity)
    if not fields:
        ctx.push(".{}")
        return
    ctx.push(f".{{ {', '.join(fields)} }}")


# =============================================================================
# Calls and returns
# =============================================================================


def _fn_type(ctx: FunctionBindgen) -> str:
    params = ", ".join(slot_spelling(ty) for ty in ctx.sig.params)
    results = slot_spelling(ctx.sig.results[0]) if ctx.sig.results else "void"
    return f"*const fn ({params}) callconv(.c) {results}"


@emit_instruction.register
def _call_wasm(inst: CallWasm, ctx: FunctionBindgen) -> None:
    if not ctx.is_import:
        raise UnsupportedInstruction(inst.tag)
    if len(inst.sig.results) > 1:
        raise MissingResultConvention(inst.name, len(inst.sig.results))

    args = ", ".join(ctx.pop_n(len(inst.sig.params)))
    func = ctx.fresh("wasm_import")
    ctx.emitter.line(
        f"const {func} = @extern({_fn_type(ctx)}, "
        f'.{{ .library_name = "{ctx.link_name}", .name = "{inst.name}" }});'
    )
    if inst.sig.results:
        ret = ctx.fresh("ret")
        ctx.emitter.line(f"const {ret} = {func}({args});")
        ctx.push(ret)
    else:
        ctx.emitter.line(f"{func}({args});")


@emit_instruction.register
def _call_interface(inst: CallInterface, ctx: FunctionBindgen) -> None:
    if ctx.is_import:
        raise UnsupportedInstruction(inst.tag)

    args = ", ".join(ctx.pop_n(len(inst.func.params)))
    target = ".".join(
        [ctx.impl_param, *ctx.scope_path, to_zig_ident(inst.func.name)]
    )
    results = inst.func.results
    if not len(results):
        ctx.emitter.line(f"{target}({args});")
        return

    ret = ctx.fresh("ret")
    ctx.emitter.line(f"const {ret} = {target}({args});")
    if results.is_named:
        ctx.push(*(f"{ret}.{to_zig_ident(name)}" for name, _ in results.named))
    else:
        ctx.push(ret)


@emit_instruction.register
def _return(inst: Return, ctx: FunctionBindgen) -> None:
    values = ctx.pop_n(inst.amt)
    results = ctx.func.results

    if ctx.is_import and results.is_named:
        if len(values) != len(results.named):
            msg = f"Expected {len(results.named)} results, found {len(values)}"
            raise StackMismatch(msg)
        fields = ", ".join(
            f".{to_zig_ident(name)} = {value}"
            for (name, _), value in zip(results.named, values, strict=True)
        )
        ctx.emitter.line(f"return .{{ {fields} }};")
        return

    match values:
        case []:
            pass
        case [value]:
            ctx.emitter.line(f"return {value};")
        case _:
            raise MissingResultConvention(ctx.func.name, len(values))
