"""Function compilation: one wrapper per function and direction.

An import becomes a ``pub fn`` that lowers its arguments, calls the
extern counterpart and lifts the results. An export becomes a
``pub export fn`` entry point that lifts its slots, calls the
implementation and lowers the results.
"""

from __future__ import annotations

import logging
from io import StringIO
from typing import TYPE_CHECKING

from wit2zig.abi.generator import call, wasm_signature
from wit2zig.abi.instructions import AbiVariant
from wit2zig.compiler.codegen.instructions import emit_instruction
from wit2zig.compiler.codegen.memory import area_declaration
from wit2zig.compiler.context import FunctionBindgen
from wit2zig.compiler.names import to_keyword_safe, to_zig_ident
from wit2zig.compiler.types import slot_spelling
from wit2zig.emitter import ZigEmitter
from wit2zig.errors import GenerationError

if TYPE_CHECKING:
    from wit2zig.abi.instructions import Instruction
    from wit2zig.compiler.context import WorldContext
    from wit2zig.wit.types import Function

logger = logging.getLogger(__name__)


def export_symbol(func: Function, scope_path: tuple[str, ...], link_name: str) -> str:
    """Linker symbol of an exported function.

    ``<link name>#<function>`` when scoped, the bare function name when
    exported at the world level.
    """
    if scope_path:
        return f"{link_name}#{func.name}"
    return func.name


def compile_import(
    func: Function,
    world: WorldContext,
    scope_path: tuple[str, ...] = (),
    link_name: str = "$root",
) -> str:
    """Compile the import wrapper of ``func``.

    Args:
        func: Function to wrap.
        world: Shared state of the world being generated.
        scope_path: Namespace segments the wrapper is filed under.
        link_name: Library name of the extern counterpart.

    Returns:
        The wrapper's Zig source.
    """
    direction = AbiVariant.GUEST_IMPORT
    try:
        param_types = [world.mapper.spelling(ty) for _, ty in func.params]
        result_type = world.mapper.result_spelling(func.results)

        ctx = _new_bindgen(func, world, direction, scope_path, link_name)
        ctx.bind_params([to_zig_ident(name) for name, _ in func.params])
        _walk(ctx, call(world.resolve, direction, func, world.sizes))
    except GenerationError as err:
        err.locate(func.name, direction.value)
        raise

    params = ", ".join(
        f"{name}: {ty}" for name, ty in zip(ctx.params, param_types, strict=True)
    )
    header = f"pub fn {to_zig_ident(func.name)}({params}) {result_type} {{"
    logger.debug("import %s -> %s", func.name, ".".join(scope_path) or "<root>")
    return _assemble(ctx, header, world.options.indent)


def compile_export(
    func: Function,
    world: WorldContext,
    scope_path: tuple[str, ...] = (),
    link_name: str = "$root",
) -> str:
    """Compile the exported entry point of ``func``.

    The entry point calls ``<impl>.<scope path>.<function>`` on the
    implementation type supplied to the exports wrapper.
    """
    direction = AbiVariant.GUEST_EXPORT
    try:
        for _, ty in func.params:
            world.mapper.check(ty)
        for ty in func.results.types():
            world.mapper.check(ty)

        ctx = _new_bindgen(func, world, direction, scope_path, link_name)
        ctx.params = [ctx.tmp("arg") for _ in ctx.sig.params]
        _walk(ctx, call(world.resolve, direction, func, world.sizes))
    except GenerationError as err:
        err.locate(func.name, direction.value)
        raise

    params = ", ".join(
        f"{name}: {slot_spelling(ty)}"
        for name, ty in zip(ctx.params, ctx.sig.params, strict=True)
    )
    result = slot_spelling(ctx.sig.results[0]) if ctx.sig.results else "void"
    symbol = to_keyword_safe(export_symbol(func, scope_path, link_name))
    header = f"pub export fn {symbol}({params}) {result} {{"
    logger.debug("export %s -> %s", func.name, ".".join(scope_path) or "<root>")
    return _assemble(ctx, header, world.options.indent)


def _new_bindgen(
    func: Function,
    world: WorldContext,
    direction: AbiVariant,
    scope_path: tuple[str, ...],
    link_name: str,
) -> FunctionBindgen:
    ctx = FunctionBindgen(
        resolve=world.resolve,
        mapper=world.mapper,
        sizes=world.sizes,
        func=func,
        direction=direction,
        sig=wasm_signature(world.resolve, direction, func),
        scope_path=scope_path,
        link_name=link_name,
        impl_param=world.options.impl_param,
        emitter=ZigEmitter(StringIO(), world.options.indent),
    )
    ctx.reserve(world.reserved)
    return ctx


def _walk(ctx: FunctionBindgen, instructions: list[Instruction]) -> None:
    for inst in instructions:
        emit_instruction(inst, ctx)
    ctx.check_finished()


def _assemble(ctx: FunctionBindgen, header: str, width: int) -> str:
    out = StringIO()
    emitter = ZigEmitter(out, width)
    emitter.line(header)
    emitter.indent_inc()
    for area in (ctx.param_area, ctx.ret_area):
        if area is not None:
            emitter.line(area_declaration(ctx, area))
    assert isinstance(ctx.emitter.stream, StringIO)
    body = ctx.emitter.stream.getvalue()
    if body.strip():
        emitter.text(body)
    emitter.indent_dec()
    emitter.line("}")
    return out.getvalue()
