"""Core generator module - simple functional design."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from wit2zig.compiler.codegen import compile_export, compile_import
from wit2zig.compiler.codegen.functions import export_symbol
from wit2zig.compiler.context import WorldContext
from wit2zig.compiler.module import VERIFY_FN, assemble_module
from wit2zig.compiler.names import to_declaration_name, to_keyword_safe, to_zig_ident
from wit2zig.compiler.scope import scope_path
from wit2zig.compiler.types import TypeMapper
from wit2zig.config import GeneratorOptions
from wit2zig.wit.sizes import SizeAlign
from wit2zig.wit.types import FunctionItem, InterfaceItem, TypeItem

if TYPE_CHECKING:
    from wit2zig.wit.types import Resolve, World, WorldItem, WorldKey

logger = logging.getLogger(__name__)


def find_world(resolve: Resolve, name: str) -> int:
    """Id of the world called ``name``."""
    for world_id, world in enumerate(resolve.worlds):
        if world.name == name:
            return world_id
    msg = f"No world named {name!r}"
    raise KeyError(msg)


def generate_world(
    resolve: Resolve, world_id: int, options: GeneratorOptions | None = None
) -> str:
    """Generate the Zig module of a world.

    Args:
        resolve: Resolve holding the world and everything it references.
        world_id: Id of the world to generate.
        options: Generator options; defaults when omitted.

    Returns:
        Zig source of the module. Nothing is returned if any function
        fails: the first ``GenerationError`` propagates.
    """
    options = options or GeneratorOptions()
    world = resolve.worlds[world_id]
    ctx = WorldContext(
        resolve=resolve,
        options=options,
        mapper=TypeMapper(resolve),
        sizes=SizeAlign(resolve),
        reserved=collect_reserved(resolve, world, options),
    )

    for key, item in world.imports.items():
        _import_item(ctx, key, item)
    for key, item in world.exports.items():
        _export_item(ctx, key, item)

    return assemble_module(ctx, world.name)


def generate_files(
    resolve: Resolve, world_id: int, options: GeneratorOptions | None = None
) -> dict[str, str]:
    """Generate the files of a world, keyed by file name."""
    world = resolve.worlds[world_id]
    name = f"{to_declaration_name(world.name)}.zig"
    return {name: generate_world(resolve, world_id, options)}


def collect_reserved(
    resolve: Resolve, world: World, options: GeneratorOptions
) -> set[str]:
    """Container-level names of the module, which locals must not shadow."""
    reserved = {options.exports_type, options.impl_param, VERIFY_FN}
    for items in (world.imports, world.exports):
        for key, item in items.items():
            match item:
                case FunctionItem(function=func):
                    reserved.add(to_zig_ident(func.name))
                    reserved.add(to_keyword_safe(func.name))
                case InterfaceItem(interface=iface_id):
                    reserved.update(scope_path(resolve, key))
                    for func in resolve.interfaces[iface_id].functions.values():
                        reserved.add(to_zig_ident(func.name))
    return reserved


def _import_item(ctx: WorldContext, key: WorldKey, item: WorldItem) -> None:
    match item:
        case FunctionItem(function=func):
            ctx.imports.file_flat(compile_import(func, ctx))
        case InterfaceItem(interface=iface_id):
            path = scope_path(ctx.resolve, key)
            link_name = ctx.resolve.name_world_key(key)
            for func in ctx.resolve.interfaces[iface_id].functions.values():
                ctx.imports.file(path, compile_import(func, ctx, path, link_name))
        case TypeItem(type=ty):
            logger.debug("skipping imported type %s", ctx.resolve.typedef(ty).name)


def _export_item(ctx: WorldContext, key: WorldKey, item: WorldItem) -> None:
    match item:
        case FunctionItem(function=func):
            ctx.exports.file_flat(compile_export(func, ctx))
            ctx.export_symbols.append(((), export_symbol(func, (), "$root")))
        case InterfaceItem(interface=iface_id):
            path = scope_path(ctx.resolve, key)
            link_name = ctx.resolve.name_world_key(key)
            for func in ctx.resolve.interfaces[iface_id].functions.values():
                ctx.exports.file(path, compile_export(func, ctx, path, link_name))
                ctx.export_symbols.append(
                    (path, export_symbol(func, path, link_name))
                )
        case TypeItem(type=ty):
            logger.debug("skipping exported type %s", ctx.resolve.typedef(ty).name)
