"""Type graph for worlds, interfaces and functions.

These types mirror what an interface resolver hands to the generator:
an arena of type definitions addressed by id, packages, interfaces with
their functions, and worlds mapping keys to imported/exported items.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Primitive(Enum):
    """Built-in scalar and string types."""

    BOOL = "bool"
    S8 = "s8"
    U8 = "u8"
    S16 = "s16"
    U16 = "u16"
    S32 = "s32"
    U32 = "u32"
    S64 = "s64"
    U64 = "u64"
    F32 = "f32"
    F64 = "f64"
    CHAR = "char"
    STRING = "string"

    @property
    def is_integer(self) -> bool:
        return self.value[0] in "su" and self.value[1:].isdigit()

    @property
    def is_signed(self) -> bool:
        return self.value[0] == "s" and self.is_integer

    @property
    def is_float(self) -> bool:
        return self in {Primitive.F32, Primitive.F64}

    @property
    def bits(self) -> int:
        """Declared bit width (0 for string)."""
        match self:
            case Primitive.BOOL:
                return 1
            case Primitive.CHAR:
                return 21
            case Primitive.STRING:
                return 0
            case _:
                return int(self.value[1:])


@dataclass(frozen=True)
class TypeId:
    """Reference to a type definition in the resolve arena."""

    index: int


# A type is either a primitive or a reference to a type definition.
Type = Primitive | TypeId


@dataclass(frozen=True)
class Field:
    name: str
    type: Type


@dataclass(frozen=True)
class Case:
    name: str
    type: Type | None = None


@dataclass(frozen=True)
class Record:
    fields: tuple[Field, ...]


@dataclass(frozen=True)
class Tuple:
    types: tuple[Type, ...]


@dataclass(frozen=True)
class Variant:
    cases: tuple[Case, ...]


@dataclass(frozen=True)
class Enum_:
    """Enumeration (named to avoid clashing with ``enum.Enum``)."""

    cases: tuple[str, ...]


@dataclass(frozen=True)
class Flags:
    names: tuple[str, ...]


@dataclass(frozen=True)
class Option:
    payload: Type


@dataclass(frozen=True)
class Result:
    ok: Type | None = None
    err: Type | None = None


@dataclass(frozen=True)
class List:
    element: Type


@dataclass(frozen=True)
class Resource:
    pass


@dataclass(frozen=True)
class Alias:
    target: Type


TypeDefKind = (
    Record | Tuple | Variant | Enum_ | Flags | Option | Result | List | Resource | Alias
)


def kind_name(kind: TypeDefKind) -> str:
    """Human-readable kind tag (``Record``, ``Tuple``, ``Enum``...)."""
    return type(kind).__name__.rstrip("_")


@dataclass(frozen=True)
class TypeDef:
    kind: TypeDefKind
    name: str | None = None
    interface: int | None = None


@dataclass(frozen=True)
class Results:
    """Result shape of a function.

    Either nothing, a single anonymous type, or a list of named types.
    """

    anon: Type | None = None
    named: tuple[tuple[str, Type], ...] = ()

    @classmethod
    def none(cls) -> Results:
        return cls()

    @classmethod
    def single(cls, ty: Type) -> Results:
        return cls(anon=ty)

    @classmethod
    def of(cls, named: list[tuple[str, Type]]) -> Results:
        return cls(named=tuple(named))

    @property
    def is_named(self) -> bool:
        return self.anon is None and bool(self.named)

    def types(self) -> list[Type]:
        if self.anon is not None:
            return [self.anon]
        return [ty for _, ty in self.named]

    def __len__(self) -> int:
        return len(self.types())


@dataclass(frozen=True)
class Function:
    name: str
    params: tuple[tuple[str, Type], ...] = ()
    results: Results = field(default_factory=Results)


@dataclass(frozen=True)
class Package:
    namespace: str
    name: str
    version: str | None = None


@dataclass
class Interface:
    name: str | None
    package: int | None = None
    functions: dict[str, Function] = field(default_factory=dict)


@dataclass(frozen=True)
class NameKey:
    """World key for an inline (named) item."""

    name: str


@dataclass(frozen=True)
class InterfaceKey:
    """World key referring to an interface declared in a package."""

    interface: int


WorldKey = NameKey | InterfaceKey


@dataclass(frozen=True)
class InterfaceItem:
    interface: int


@dataclass(frozen=True)
class FunctionItem:
    function: Function


@dataclass(frozen=True)
class TypeItem:
    type: TypeId


WorldItem = InterfaceItem | FunctionItem | TypeItem


@dataclass
class World:
    name: str
    package: int | None = None
    imports: dict[WorldKey, WorldItem] = field(default_factory=dict)
    exports: dict[WorldKey, WorldItem] = field(default_factory=dict)


@dataclass
class Resolve:
    """Arena of everything the generator may look up by id."""

    types: list[TypeDef] = field(default_factory=list)
    packages: list[Package] = field(default_factory=list)
    interfaces: list[Interface] = field(default_factory=list)
    worlds: list[World] = field(default_factory=list)

    def add_type(self, kind: TypeDefKind, name: str | None = None) -> TypeId:
        self.types.append(TypeDef(kind=kind, name=name))
        return TypeId(len(self.types) - 1)

    def add_package(self, package: Package) -> int:
        self.packages.append(package)
        return len(self.packages) - 1

    def add_interface(self, interface: Interface) -> int:
        self.interfaces.append(interface)
        return len(self.interfaces) - 1

    def add_world(self, world: World) -> int:
        self.worlds.append(world)
        return len(self.worlds) - 1

    def typedef(self, ty: TypeId) -> TypeDef:
        return self.types[ty.index]

    def unalias(self, ty: Type) -> Type:
        """Follow alias definitions down to the aliased type."""
        while isinstance(ty, TypeId):
            kind = self.typedef(ty).kind
            if not isinstance(kind, Alias):
                break
            ty = kind.target
        return ty

    def name_world_key(self, key: WorldKey) -> str:
        """Link name of a world key (``ns:pkg/iface@1.0.0`` or plain name)."""
        match key:
            case NameKey(name=name):
                return name
            case InterfaceKey(interface=iface_id):
                iface = self.interfaces[iface_id]
                if iface.package is None or iface.name is None:
                    msg = f"Interface {iface_id} is not part of a package"
                    raise ValueError(msg)
                pkg = self.packages[iface.package]
                name = f"{pkg.namespace}:{pkg.name}/{iface.name}"
                if pkg.version:
                    name += f"@{pkg.version}"
                return name
