"""Mapping from interface types to Zig type spellings."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from wit2zig.compiler.names import to_zig_ident
from wit2zig.errors import UnsupportedType
from wit2zig.wit.types import List, Option, Primitive, Tuple, kind_name

if TYPE_CHECKING:
    from wit2zig.abi.instructions import WasmType
    from wit2zig.wit.types import Resolve, Results, Type

PRIMITIVE_SPELLINGS: Final[dict[Primitive, str]] = {
    Primitive.BOOL: "bool",
    Primitive.S8: "i8",
    Primitive.U8: "u8",
    Primitive.S16: "i16",
    Primitive.U16: "u16",
    Primitive.S32: "i32",
    Primitive.U32: "u32",
    Primitive.S64: "i64",
    Primitive.U64: "u64",
    Primitive.F32: "f32",
    Primitive.F64: "f64",
    Primitive.CHAR: "u21",
    Primitive.STRING: "[]const u8",
}


def slot_spelling(slot: WasmType) -> str:
    return slot.value


class TypeMapper:
    """Spells interface types as Zig types.

    Total over primitives and tuples of supported types. Every other
    composite raises ``UnsupportedType`` with the kind's name.
    """

    def __init__(self, resolve: Resolve) -> None:
        self.resolve = resolve

    def spelling(self, ty: Type) -> str:
        if isinstance(ty, Primitive):
            return PRIMITIVE_SPELLINGS[ty]
        match self.resolve.typedef(ty).kind:
            case Tuple(types=types):
                inner = ", ".join(self.spelling(t) for t in types)
                return f"struct {{ {inner} }}" if inner else "struct {}"
            case kind:
                raise UnsupportedType(kind_name(kind), ty.index)

    def result_spelling(self, results: Results) -> str:
        """Return type of a high-level function."""
        if results.anon is not None:
            return self.spelling(results.anon)
        if not results.named:
            return "void"
        fields = ", ".join(
            f"{to_zig_ident(name)}: {self.spelling(ty)}" for name, ty in results.named
        )
        return f"struct {{ {fields} }}"

    @staticmethod
    def widths(prim: Primitive) -> frozenset[int]:
        """Slot widths that carry a value of ``prim`` without loss.

        Args:
            prim: Primitive type.

        Returns:
            Subset of ``{32, 64}``; empty for strings.
        """
        match prim:
            case Primitive.STRING:
                return frozenset()
            case Primitive.S64 | Primitive.U64 | Primitive.F64:
                return frozenset({64})
            case Primitive.F32:
                return frozenset({32})
            case _:
                return frozenset({32, 64})

    def check(self, ty: Type) -> None:
        """Raise ``UnsupportedType`` unless values of ``ty`` can be marshalled.

        Wider than ``spelling``: options and lists have no spelling of their
        own but are lowered and lifted by the emitter's block handlers.
        """
        if isinstance(ty, Primitive):
            return
        match self.resolve.typedef(ty).kind:
            case Tuple(types=types):
                for t in types:
                    self.check(t)
            case Option(payload=inner) | List(element=inner):
                self.spelling(inner)
            case kind:
                raise UnsupportedType(kind_name(kind), ty.index)
