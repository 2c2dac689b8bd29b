"""Module assembly: imports, the exports wrapper and its verification.

The module declares no ``cabi_realloc`` and no post-return functions.
A host that lowers strings or lists into export parameters, or into
the string results of imports, has to get that allocator from another
object linked into the component.
"""

from __future__ import annotations

import re
from io import StringIO
from typing import TYPE_CHECKING, Final

from wit2zig.compiler.names import to_keyword_safe
from wit2zig.emitter import ZigEmitter
from wit2zig.errors import UnreachableExport

if TYPE_CHECKING:
    from wit2zig.compiler.context import WorldContext
    from wit2zig.compiler.scope import ScopeTree

VERIFY_FN: Final[str] = "verifyExports"

# Referencing every public declaration forces Zig to analyze, and so to
# emit, each exported function of the nested structs.
VERIFY_EXPORTS_CODE: Final[str] = """
fn verifyExports(comptime T: type) void {
    inline for (@typeInfo(T).@"struct".decls) |decl| {
        const value = @field(T, decl.name);
        if (@TypeOf(value) == type) {
            if (@typeInfo(value) == .@"struct") verifyExports(value);
        }
    }
}
"""

_EXPORT_HEADER = re.compile(
    r'^\s*pub export fn (@"(?:[^"\\]|\\.)*"|[A-Za-z_]\w*)\(', re.M
)


def exported_symbols(tree: ScopeTree) -> set[tuple[tuple[str, ...], str]]:
    """``(path, declared name)`` of every export declared in ``tree``."""
    found = set()
    for path, fragments in tree.walk():
        for fragment in fragments:
            for m in _EXPORT_HEADER.finditer(fragment):
                found.add((path, m.group(1)))
    return found


def check_exports(world: WorldContext) -> None:
    """Fail unless every recorded export symbol is declared where it was filed."""
    declared = exported_symbols(world.exports)
    for path, symbol in world.export_symbols:
        if (path, to_keyword_safe(symbol)) not in declared:
            raise UnreachableExport(symbol)


def assemble_module(world: WorldContext, world_name: str) -> str:
    """Render the complete module of a world.

    Args:
        world: World state holding the filled scope trees.
        world_name: Name used in the header comment.

    Returns:
        Zig source of the module.
    """
    check_exports(world)
    options = world.options

    out = StringIO()
    emitter = ZigEmitter(out, options.indent)
    sections = 0

    if options.header:
        emitter.comment(f"Generated by wit2zig from world `{world_name}`.")
        emitter.comment("Do not edit by hand.")
        sections += 1

    if not world.imports.is_empty():
        if sections:
            emitter.blank()
        emitter.text(world.imports.render(0, options.indent))
        sections += 1

    if not world.exports.is_empty():
        if sections:
            emitter.blank()
        _exports_wrapper(world, emitter)
        emitter.blank()
        emitter.text(VERIFY_EXPORTS_CODE)

    return out.getvalue()


def _exports_wrapper(world: WorldContext, emitter: ZigEmitter) -> None:
    options = world.options
    emitter.line(
        f"pub fn {options.exports_type}(comptime {options.impl_param}: type) type {{"
    )
    emitter.indent_inc()
    emitter.line("return struct {")
    emitter.indent_inc()
    emitter.text(world.exports.render(0, options.indent))
    emitter.blank()
    emitter.line("comptime {")
    emitter.indent_inc()
    emitter.line(f"{VERIFY_FN}(@This());")
    emitter.indent_dec()
    emitter.line("}")
    emitter.indent_dec()
    emitter.line("};")
    emitter.indent_dec()
    emitter.line("}")
