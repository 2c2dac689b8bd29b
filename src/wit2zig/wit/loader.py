"""Load world descriptions from YAML.

A world file describes one world, the named types it uses and the
interfaces it imports or exports:

    package: example:demo@0.1.0
    world: demo

    types:
      pair: tuple<s32, s32>
      point:
        record: {x: s32, y: s32}

    interfaces:
      ns:pkg/iface:
        functions:
          f: {params: {x: u8}, result: u8}

    imports:
      - function: add
        params: {a: s32, b: s32}
        result: s32
      - interface: ns:pkg/iface
    exports:
      - function: run

Type expressions use the interface-language spelling: primitives
(``u8``, ``string``...), names declared under ``types`` and the generic
forms ``tuple<...>``, ``list<T>``, ``option<T>`` and ``result<T, E>``.
Interfaces named ``ns:pkg/name[@version]`` belong to a package; plain
names declare inline interfaces keyed by name.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from wit2zig.wit.types import (
    Alias,
    Case,
    Enum_,
    Field,
    Flags,
    Function,
    FunctionItem,
    Interface,
    InterfaceItem,
    InterfaceKey,
    List,
    NameKey,
    Option,
    Package,
    Primitive,
    Record,
    Resolve,
    Resource,
    Result,
    Results,
    Tuple,
    TypeDef,
    TypeId,
    TypeItem,
    Variant,
    World,
)

if TYPE_CHECKING:
    from wit2zig.wit.types import Type, TypeDefKind, WorldItem, WorldKey


class WorldFormatError(ValueError):
    """The world description is malformed."""


_TOKEN = re.compile(r"\s*(?:([A-Za-z_][A-Za-z0-9_-]*)|(<|>|,))")
_QUALIFIED = re.compile(
    r"^(?P<ns>[a-z][a-z0-9-]*):(?P<pkg>[a-z][a-z0-9-]*)/(?P<name>[a-z][a-z0-9-]*)"
    r"(?:@(?P<version>[0-9A-Za-z.+-]+))?$"
)
_PACKAGE = re.compile(
    r"^(?P<ns>[a-z][a-z0-9-]*):(?P<pkg>[a-z][a-z0-9-]*)"
    r"(?:@(?P<version>[0-9A-Za-z.+-]+))?$"
)
_PRIMITIVES = {p.value: p for p in Primitive}


def load_world(path: Path) -> tuple[Resolve, int]:
    """Load a world description from a YAML file.

    Args:
        path: Path to the world file.

    Returns:
        The resolve holding everything the world references, and the
        world's id within it.
    """
    with Path(path).open() as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        msg = f"{path}: expected a mapping at the top level"
        raise WorldFormatError(msg)
    return parse_world(data)


def parse_world(data: dict) -> tuple[Resolve, int]:
    """Build a resolve from an already-parsed world description."""
    return _WorldParser(data).parse()


@dataclass
class _WorldParser:
    data: dict
    resolve: Resolve = field(default_factory=Resolve)
    named_types: dict[str, TypeId] = field(default_factory=dict)
    packages: dict[tuple[str, str, str | None], int] = field(default_factory=dict)
    interfaces: dict[str, int] = field(default_factory=dict)

    def parse(self) -> tuple[Resolve, int]:
        name = self.data.get("world")
        if not isinstance(name, str):
            msg = "Missing world name (`world: <name>`)"
            raise WorldFormatError(msg)

        package = None
        if "package" in self.data:
            package = self._package(str(self.data["package"]))

        self._types(self.data.get("types") or {})
        for iface_name, body in (self.data.get("interfaces") or {}).items():
            self._interface(str(iface_name), body or {})

        world = World(name=name, package=package)
        world.imports = self._items(self.data.get("imports") or [], "imports")
        world.exports = self._items(self.data.get("exports") or [], "exports")
        return self.resolve, self.resolve.add_world(world)

    # =========================================================================
    # Packages and interfaces
    # =========================================================================

    def _package(self, text: str) -> int:
        m = _PACKAGE.match(text)
        if not m:
            msg = f"Invalid package name: {text!r}"
            raise WorldFormatError(msg)
        key = (m["ns"], m["pkg"], m["version"])
        if key not in self.packages:
            self.packages[key] = self.resolve.add_package(
                Package(namespace=m["ns"], name=m["pkg"], version=m["version"])
            )
        return self.packages[key]

    def _interface(self, name: str, body: dict) -> int:
        if name in self.interfaces:
            msg = f"Interface {name!r} declared twice"
            raise WorldFormatError(msg)
        m = _QUALIFIED.match(name)
        if m:
            package = self._package(
                f"{m['ns']}:{m['pkg']}" + (f"@{m['version']}" if m["version"] else "")
            )
            iface = Interface(name=m["name"], package=package)
        else:
            iface = Interface(name=name)

        for func_name, func_body in (body.get("functions") or {}).items():
            iface.functions[str(func_name)] = self._function(
                str(func_name), func_body or {}
            )
        self.interfaces[name] = self.resolve.add_interface(iface)
        return self.interfaces[name]

    def _items(self, entries: list, section: str) -> dict[WorldKey, WorldItem]:
        items: dict[WorldKey, WorldItem] = {}
        for entry in entries:
            if not isinstance(entry, dict):
                msg = f"{section}: expected a mapping, got {entry!r}"
                raise WorldFormatError(msg)
            if "function" in entry:
                name = str(entry["function"])
                key: WorldKey = NameKey(name)
                item: WorldItem = FunctionItem(self._function(name, entry))
            elif "interface" in entry:
                name = str(entry["interface"])
                if name not in self.interfaces:
                    msg = f"{section}: unknown interface {name!r}"
                    raise WorldFormatError(msg)
                iface_id = self.interfaces[name]
                if self.resolve.interfaces[iface_id].package is None:
                    key = NameKey(name)
                else:
                    key = InterfaceKey(iface_id)
                item = InterfaceItem(iface_id)
            elif "type" in entry:
                name = str(entry["type"])
                key = NameKey(name)
                item = TypeItem(self._named(name))
            else:
                msg = f"{section}: expected `function`, `interface` or `type`"
                raise WorldFormatError(msg)
            if key in items:
                msg = f"{section}: duplicate entry {name!r}"
                raise WorldFormatError(msg)
            items[key] = item
        return items

    def _function(self, name: str, body: dict) -> Function:
        params = tuple(
            (str(p), self._type_expr(str(t)))
            for p, t in (body.get("params") or {}).items()
        )
        if "result" in body and "results" in body:
            msg = f"Function {name!r}: use either `result` or `results`"
            raise WorldFormatError(msg)
        if body.get("result") is not None:
            results = Results.single(self._type_expr(str(body["result"])))
        elif body.get("results"):
            results = Results.of(
                [(str(r), self._type_expr(str(t))) for r, t in body["results"].items()]
            )
        else:
            results = Results.none()
        return Function(name=name, params=params, results=results)

    # =========================================================================
    # Types
    # =========================================================================

    def _types(self, types: dict) -> None:
        # Reserve ids first so that definitions may refer to each other.
        for name in types:
            self.named_types[str(name)] = self.resolve.add_type(Resource(), str(name))
        for name, body in types.items():
            ty = self.named_types[str(name)]
            self.resolve.types[ty.index] = TypeDef(
                kind=self._definition(str(name), body), name=str(name)
            )

    def _definition(self, name: str, body: object) -> TypeDefKind:
        if isinstance(body, str):
            target = self._type_expr(body)
            if target == self.named_types[name]:
                msg = f"Type {name!r} is defined as itself"
                raise WorldFormatError(msg)
            if isinstance(target, TypeId) and self.resolve.typedef(target).name is None:
                return self.resolve.typedef(target).kind
            return Alias(target)
        if not isinstance(body, dict) or len(body) != 1:
            msg = f"Type {name!r}: expected a type expression or one-key mapping"
            raise WorldFormatError(msg)

        ((kind, value),) = body.items()
        match kind, value:
            case "record", dict():
                return Record(
                    tuple(
                        Field(str(f), self._type_expr(str(t)))
                        for f, t in value.items()
                    )
                )
            case "variant", dict():
                return Variant(
                    tuple(
                        Case(str(c), None if t is None else self._type_expr(str(t)))
                        for c, t in value.items()
                    )
                )
            case "enum", list():
                return Enum_(tuple(str(c) for c in value))
            case "flags", list():
                return Flags(tuple(str(f) for f in value))
            case "resource", _:
                return Resource()
            case "record" | "variant", _:
                msg = f"Type {name!r}: {kind} body must be a mapping"
                raise WorldFormatError(msg)
            case "enum" | "flags", _:
                msg = f"Type {name!r}: {kind} body must be a list"
                raise WorldFormatError(msg)
            case _:
                msg = f"Type {name!r}: unknown kind {kind!r}"
                raise WorldFormatError(msg)

    def _named(self, name: str) -> TypeId:
        if name not in self.named_types:
            msg = f"Unknown type: {name!r}"
            raise WorldFormatError(msg)
        return self.named_types[name]

    def _type_expr(self, text: str) -> Type:
        tokens = _tokenize(text)
        ty, pos = self._parse_type(tokens, 0, text)
        if pos != len(tokens):
            msg = f"Trailing input in type {text!r}"
            raise WorldFormatError(msg)
        return ty

    def _parse_type(self, tokens: list[str], pos: int, text: str) -> tuple[Type, int]:
        if pos >= len(tokens) or tokens[pos] in "<>,":
            msg = f"Expected a type in {text!r}"
            raise WorldFormatError(msg)
        head = tokens[pos]
        pos += 1

        args: list[Type | None] = []
        if pos < len(tokens) and tokens[pos] == "<":
            pos += 1
            while True:
                if tokens[pos : pos + 1] == ["_"]:
                    args.append(None)
                    pos += 1
                else:
                    arg, pos = self._parse_type(tokens, pos, text)
                    args.append(arg)
                if pos >= len(tokens):
                    msg = f"Unterminated type arguments in {text!r}"
                    raise WorldFormatError(msg)
                if tokens[pos] == ">":
                    pos += 1
                    break
                if tokens[pos] != ",":
                    msg = f"Expected `,` or `>` in {text!r}"
                    raise WorldFormatError(msg)
                pos += 1

        return self._apply(head, args, text), pos

    def _apply(self, head: str, args: list[Type | None], text: str) -> Type:
        match head, args:
            case "tuple", _ if None not in args:
                elements = tuple(a for a in args if a is not None)
                return self.resolve.add_type(Tuple(elements))
            case "list", [Primitive() | TypeId() as element]:
                return self.resolve.add_type(List(element))
            case "option", [Primitive() | TypeId() as payload]:
                return self.resolve.add_type(Option(payload))
            case "result", []:
                return self.resolve.add_type(Result())
            case "result", [ok]:
                return self.resolve.add_type(Result(ok=ok))
            case "result", [ok, err]:
                return self.resolve.add_type(Result(ok=ok, err=err))
            case _, [] if head in _PRIMITIVES:
                return _PRIMITIVES[head]
            case _, [] if head in self.named_types:
                return self.named_types[head]
            case _:
                msg = f"Unknown type {head!r} in {text!r}"
                raise WorldFormatError(msg)


def _tokenize(text: str) -> list[str]:
    tokens = []
    pos = 0
    text = text.strip()
    while pos < len(text):
        m = _TOKEN.match(text, pos)
        if not m:
            msg = f"Invalid type expression: {text!r}"
            raise WorldFormatError(msg)
        tokens.append(m.group(1) or m.group(2))
        pos = m.end()
    return tokens
