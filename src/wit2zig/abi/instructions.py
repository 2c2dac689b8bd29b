"""Abstract lowering/lifting instructions.

An instruction sequence describes, for one function and one direction,
how values cross the canonical ABI. Each instruction is a frozen
dataclass; the emitter dispatches on the concrete class.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from wit2zig.wit.types import Function, Primitive, Type, TypeId


class WasmType(Enum):
    """Machine-word slot kinds of the core calling convention."""

    I32 = "i32"
    I64 = "i64"
    F32 = "f32"
    F64 = "f64"

    @property
    def bits(self) -> int:
        return int(self.value[1:])

    @property
    def is_float(self) -> bool:
        return self.value[0] == "f"


class AbiVariant(Enum):
    """Direction of the crossing."""

    GUEST_IMPORT = "import"
    GUEST_EXPORT = "export"


class MemAccess(Enum):
    """Width and interpretation of a linear-memory access."""

    U8 = "u8"
    S8 = "i8"
    U16 = "u16"
    S16 = "i16"
    I32 = "i32"
    I64 = "i64"
    F32 = "f32"
    F64 = "f64"

    @property
    def size(self) -> int:
        return int(self.value[1:]) // 8

    @property
    def slot(self) -> WasmType:
        """Slot type that carries values of this access."""
        match self:
            case MemAccess.I64:
                return WasmType.I64
            case MemAccess.F32:
                return WasmType.F32
            case MemAccess.F64:
                return WasmType.F64
            case _:
                return WasmType.I32


@dataclass(frozen=True)
class WasmSignature:
    params: tuple[WasmType, ...] = ()
    results: tuple[WasmType, ...] = ()
    indirect_params: bool = False
    retptr: bool = False


@dataclass(frozen=True)
class Instruction:
    """Base class for all instructions."""

    @property
    def tag(self) -> str:
        return type(self).__name__


# =========================================================================
# Arguments, constants and stack shuffling
# =========================================================================


@dataclass(frozen=True)
class GetArg(Instruction):
    nth: int


@dataclass(frozen=True)
class I32Const(Instruction):
    value: int


@dataclass(frozen=True)
class ConstZero(Instruction):
    types: tuple[WasmType, ...]


@dataclass(frozen=True)
class Roll(Instruction):
    """Move the operand ``depth`` positions below the top to the top."""

    depth: int


# =========================================================================
# Numeric conversions
# =========================================================================


@dataclass(frozen=True)
class NumericWiden(Instruction):
    """Primitive value -> slot."""

    src: Primitive
    dst: WasmType


@dataclass(frozen=True)
class NumericNarrow(Instruction):
    """Slot -> primitive value."""

    src: WasmType
    dst: Primitive


@dataclass(frozen=True)
class Bitcasts(Instruction):
    """Slot-to-slot reinterpretation of the top ``len(casts)`` operands."""

    casts: tuple[tuple[WasmType, WasmType], ...]


# =========================================================================
# Strings and lists
# =========================================================================


@dataclass(frozen=True)
class StringLower(Instruction):
    pass


@dataclass(frozen=True)
class StringLift(Instruction):
    pass


@dataclass(frozen=True)
class ListCanonLower(Instruction):
    element: Type


@dataclass(frozen=True)
class ListCanonLift(Instruction):
    element: Type


@dataclass(frozen=True)
class ListLower(Instruction):
    """Lower a list whose elements are written by a loop body block."""

    element: Type
    size: int
    align: int


@dataclass(frozen=True)
class ListLift(Instruction):
    """Lift a list whose elements are read by a loop body block."""

    element: Type
    size: int


@dataclass(frozen=True)
class IterElem(Instruction):
    pass


@dataclass(frozen=True)
class IterBasePointer(Instruction):
    pass


# =========================================================================
# Aggregates
# =========================================================================


@dataclass(frozen=True)
class TupleLower(Instruction):
    ty: TypeId
    arity: int


@dataclass(frozen=True)
class TupleLift(Instruction):
    ty: TypeId
    arity: int


@dataclass(frozen=True)
class RecordLower(Instruction):
    ty: TypeId


@dataclass(frozen=True)
class RecordLift(Instruction):
    ty: TypeId


@dataclass(frozen=True)
class EnumLower(Instruction):
    ty: TypeId


@dataclass(frozen=True)
class EnumLift(Instruction):
    ty: TypeId


@dataclass(frozen=True)
class OptionLower(Instruction):
    payload: Type
    results: tuple[WasmType, ...] = ()


@dataclass(frozen=True)
class OptionLift(Instruction):
    payload: Type


@dataclass(frozen=True)
class VariantPayload(Instruction):
    pass


# =========================================================================
# Blocks
# =========================================================================


@dataclass(frozen=True)
class BlockBegin(Instruction):
    """Open a nested block; the top ``inputs`` operands move into it.

    ``loop`` marks the body of a list loop, which owns the element and
    base pointer seen by ``IterElem`` and ``IterBasePointer``.
    """

    inputs: int = 0
    loop: bool = False


@dataclass(frozen=True)
class BlockEnd(Instruction):
    results: int = 0


# =========================================================================
# Memory
# =========================================================================


@dataclass(frozen=True)
class Load(Instruction):
    access: MemAccess
    offset: int = 0


@dataclass(frozen=True)
class Store(Instruction):
    access: MemAccess
    offset: int = 0


@dataclass(frozen=True)
class ReturnPointer(Instruction):
    size: int
    align: int


@dataclass(frozen=True)
class ParamPointer(Instruction):
    size: int
    align: int


# =========================================================================
# Calls
# =========================================================================


@dataclass(frozen=True)
class CallWasm(Instruction):
    name: str
    sig: WasmSignature = field(default_factory=WasmSignature)


@dataclass(frozen=True)
class CallInterface(Instruction):
    func: Function


@dataclass(frozen=True)
class Return(Instruction):
    amt: int
