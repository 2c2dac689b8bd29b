"""Canonical ABI sizes, alignments and flattening."""

from __future__ import annotations

import math

from wit2zig.abi.instructions import WasmType
from wit2zig.wit.types import (
    Alias,
    Enum_,
    Flags,
    List,
    Option,
    Primitive,
    Record,
    Resolve,
    Resource,
    Result,
    Tuple,
    Type,
    TypeId,
    Variant,
)

_PRIMITIVE_SIZES: dict[Primitive, int] = {
    Primitive.BOOL: 1,
    Primitive.S8: 1,
    Primitive.U8: 1,
    Primitive.S16: 2,
    Primitive.U16: 2,
    Primitive.S32: 4,
    Primitive.U32: 4,
    Primitive.S64: 8,
    Primitive.U64: 8,
    Primitive.F32: 4,
    Primitive.F64: 8,
    Primitive.CHAR: 4,
    Primitive.STRING: 8,
}


def align_to(offset: int, alignment: int) -> int:
    return math.ceil(offset / alignment) * alignment


def discriminant_size(count: int) -> int:
    """Byte size of a variant discriminant with ``count`` cases."""
    if count <= 1 << 8:
        return 1
    if count <= 1 << 16:
        return 2
    return 4


def _variant_cases(resolve: Resolve, ty: TypeId) -> list[Type | None] | None:
    """Payload types of a sum type, or None if ``ty`` is not one."""
    match resolve.typedef(ty).kind:
        case Variant(cases=cases):
            return [c.type for c in cases]
        case Enum_(cases=names):
            return [None] * len(names)
        case Option(payload=payload):
            return [None, payload]
        case Result(ok=ok, err=err):
            return [ok, err]
        case _:
            return None


class SizeAlign:
    """Size/alignment table over the types of one resolve."""

    def __init__(self, resolve: Resolve) -> None:
        self.resolve = resolve

    def size(self, ty: Type) -> int:
        if isinstance(ty, Primitive):
            return _PRIMITIVE_SIZES[ty]
        match self.resolve.typedef(ty).kind:
            case Record(fields=fields):
                return self._record_size([f.type for f in fields])
            case Tuple(types=types):
                return self._record_size(list(types))
            case List():
                return 8
            case Flags(names=names):
                if len(names) <= 8:
                    return 1
                if len(names) <= 16:
                    return 2
                return 4 * math.ceil(len(names) / 32)
            case Resource():
                return 4
            case Alias(target=target):
                return self.size(target)
        cases = _variant_cases(self.resolve, ty)
        assert cases is not None
        payload = max((self.size(c) for c in cases if c is not None), default=0)
        return align_to(self.payload_offset(ty) + payload, self.align(ty))

    def align(self, ty: Type) -> int:
        if isinstance(ty, Primitive):
            return 4 if ty is Primitive.STRING else _PRIMITIVE_SIZES[ty]
        match self.resolve.typedef(ty).kind:
            case Record(fields=fields):
                return max((self.align(f.type) for f in fields), default=1)
            case Tuple(types=types):
                return max((self.align(t) for t in types), default=1)
            case List() | Resource():
                return 4
            case Flags(names=names):
                if len(names) <= 8:
                    return 1
                if len(names) <= 16:
                    return 2
                return 4
            case Alias(target=target):
                return self.align(target)
        cases = _variant_cases(self.resolve, ty)
        assert cases is not None
        return max(
            [discriminant_size(len(cases))]
            + [self.align(c) for c in cases if c is not None]
        )

    def _record_size(self, types: list[Type]) -> int:
        offsets = self.field_offsets(types)
        if not types:
            return 0
        end = offsets[-1] + self.size(types[-1])
        return align_to(end, max(self.align(t) for t in types))

    def field_offsets(self, types: list[Type]) -> list[int]:
        """Byte offset of each field laid out in order."""
        offsets = []
        offset = 0
        for ty in types:
            offset = align_to(offset, self.align(ty))
            offsets.append(offset)
            offset += self.size(ty)
        return offsets

    def record_layout(self, types: list[Type]) -> tuple[int, int]:
        """Size and alignment of an anonymous record of ``types``."""
        if not types:
            return 0, 1
        return self._record_size(types), max(self.align(t) for t in types)

    def payload_offset(self, ty: TypeId) -> int:
        """Offset of the payload of a sum type, past its discriminant."""
        cases = _variant_cases(self.resolve, ty)
        if cases is None:
            msg = f"Type {ty.index} has no payload"
            raise ValueError(msg)
        max_case_align = max(
            (self.align(c) for c in cases if c is not None), default=1
        )
        return align_to(discriminant_size(len(cases)), max_case_align)


def join(a: WasmType, b: WasmType) -> WasmType:
    """Common slot type of two flattened variant payload slots."""
    if a == b:
        return a
    if {a, b} == {WasmType.I32, WasmType.F32}:
        return WasmType.I32
    return WasmType.I64


def flatten(resolve: Resolve, ty: Type) -> list[WasmType]:
    """Flat slot types of a value of ``ty``."""
    if isinstance(ty, Primitive):
        match ty:
            case Primitive.S64 | Primitive.U64:
                return [WasmType.I64]
            case Primitive.F32:
                return [WasmType.F32]
            case Primitive.F64:
                return [WasmType.F64]
            case Primitive.STRING:
                return [WasmType.I32, WasmType.I32]
            case _:
                return [WasmType.I32]
    match resolve.typedef(ty).kind:
        case Record(fields=fields):
            return [w for f in fields for w in flatten(resolve, f.type)]
        case Tuple(types=types):
            return [w for t in types for w in flatten(resolve, t)]
        case List():
            return [WasmType.I32, WasmType.I32]
        case Flags(names=names):
            return [WasmType.I32] * math.ceil(len(names) / 32)
        case Resource():
            return [WasmType.I32]
        case Alias(target=target):
            return flatten(resolve, target)
    cases = _variant_cases(resolve, ty)
    assert cases is not None
    return [WasmType.I32, *flatten_payloads(resolve, cases)]


def flatten_payloads(resolve: Resolve, cases: list[Type | None]) -> list[WasmType]:
    """Joined slot types shared by all payloads of a sum type."""
    flat: list[WasmType] = []
    for case in cases:
        if case is None:
            continue
        for i, wasm in enumerate(flatten(resolve, case)):
            if i < len(flat):
                flat[i] = join(flat[i], wasm)
            else:
                flat.append(wasm)
    return flat
