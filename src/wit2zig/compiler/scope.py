"""Namespace tree of generated declarations.

Fragments of generated code are filed under a path of namespace
segments and rendered as nested ``pub const seg = struct { ... };``
blocks. The tree is built once per run and rendered with a single
recursive walk.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from io import StringIO
from typing import TYPE_CHECKING

from wit2zig.compiler.names import to_zig_ident
from wit2zig.emitter import ZigEmitter
from wit2zig.wit.types import InterfaceKey, NameKey

if TYPE_CHECKING:
    from collections.abc import Iterator

    from wit2zig.wit.types import Resolve, WorldKey


def scope_path(resolve: Resolve, key: WorldKey | None) -> tuple[str, ...]:
    """Namespace segments for the items of a world key.

    Args:
        resolve: Resolve holding the key's interface and package.
        key: World key, or None for world-level functions.

    Returns:
        One segment for a name key, three (namespace, package,
        interface) for an interface key, none for world-level items.
    """
    match key:
        case None:
            return ()
        case NameKey(name=name):
            return (to_zig_ident(name),)
        case InterfaceKey(interface=iface_id):
            iface = resolve.interfaces[iface_id]
            if iface.package is None or iface.name is None:
                msg = f"Interface {iface_id} is not part of a package"
                raise ValueError(msg)
            pkg = resolve.packages[iface.package]
            return (
                to_zig_ident(pkg.namespace),
                to_zig_ident(pkg.name),
                to_zig_ident(iface.name),
            )


@dataclass
class ScopeNode:
    fragments: list[str] = field(default_factory=list)
    children: dict[str, ScopeNode] = field(default_factory=dict)

    def child(self, segment: str) -> ScopeNode:
        if segment not in self.children:
            self.children[segment] = ScopeNode()
        return self.children[segment]


@dataclass
class ScopeTree:
    """Fragments keyed by namespace path."""

    root: ScopeNode = field(default_factory=ScopeNode)

    def file(self, path: tuple[str, ...] | list[str], fragment: str) -> None:
        """Append ``fragment`` under the node reached by ``path``."""
        node = self.root
        for segment in path:
            node = node.child(segment)
        node.fragments.append(fragment)

    def file_flat(self, fragment: str) -> None:
        self.file((), fragment)

    def is_empty(self) -> bool:
        return not self.root.fragments and not self.root.children

    def walk(self) -> Iterator[tuple[tuple[str, ...], list[str]]]:
        """Yield ``(path, fragments)`` for every node, parents first.

        Children are visited in lexical order of their segment.
        """
        stack: list[tuple[tuple[str, ...], ScopeNode]] = [((), self.root)]
        while stack:
            path, node = stack.pop()
            yield path, node.fragments
            for segment in sorted(node.children, reverse=True):
                stack.append(((*path, segment), node.children[segment]))

    def render(self, indent: int = 0, width: int = 4) -> str:
        """Render the tree as Zig declarations.

        Args:
            indent: Indentation level of the root, in levels.
            width: Spaces per indentation level.

        Returns:
            Zig source text; empty for an empty tree.
        """
        out = StringIO()
        emitter = ZigEmitter(out, width)
        emitter.indent_inc(indent)
        _render_node(self.root, emitter)
        return out.getvalue()


def _render_node(node: ScopeNode, emitter: ZigEmitter) -> None:
    first = True
    for fragment in node.fragments:
        if not first:
            emitter.blank()
        emitter.text(fragment)
        first = False

    for segment in sorted(node.children):
        if not first:
            emitter.blank()
        emitter.line(f"pub const {segment} = struct {{")
        emitter.indent_inc()
        _render_node(node.children[segment], emitter)
        emitter.indent_dec()
        emitter.line("};")
        first = False
