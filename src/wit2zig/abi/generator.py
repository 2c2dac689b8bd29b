"""Canonical ABI signatures and instruction sequences.

Given a function and a direction, computes the core wasm signature and
the ordered instructions that move values across it. The sequences are
consumed by the Zig instruction emitter, which keeps its own operand
stack: every instruction below pops and pushes in the order the emitter
expects.
"""

from __future__ import annotations

from wit2zig.abi.instructions import (
    AbiVariant,
    Bitcasts,
    BlockBegin,
    BlockEnd,
    CallInterface,
    CallWasm,
    ConstZero,
    EnumLift,
    EnumLower,
    GetArg,
    I32Const,
    Instruction,
    IterBasePointer,
    IterElem,
    ListCanonLift,
    ListCanonLower,
    ListLift,
    ListLower,
    Load,
    MemAccess,
    NumericNarrow,
    NumericWiden,
    OptionLift,
    OptionLower,
    ParamPointer,
    RecordLift,
    RecordLower,
    Return,
    ReturnPointer,
    Roll,
    Store,
    StringLift,
    StringLower,
    TupleLift,
    TupleLower,
    VariantPayload,
    WasmSignature,
    WasmType,
)
from wit2zig.errors import UnsupportedType
from wit2zig.wit.sizes import (
    SizeAlign,
    discriminant_size,
    flatten,
    flatten_payloads,
)
from wit2zig.wit.types import (
    Enum_,
    Function,
    List,
    Option,
    Primitive,
    Record,
    Resolve,
    Tuple,
    Type,
    TypeId,
    kind_name,
)

MAX_FLAT_PARAMS = 16
MAX_FLAT_RESULTS = 1

_MEM_ACCESS: dict[Primitive, MemAccess] = {
    Primitive.BOOL: MemAccess.U8,
    Primitive.S8: MemAccess.S8,
    Primitive.U8: MemAccess.U8,
    Primitive.S16: MemAccess.S16,
    Primitive.U16: MemAccess.U16,
    Primitive.S32: MemAccess.I32,
    Primitive.U32: MemAccess.I32,
    Primitive.S64: MemAccess.I64,
    Primitive.U64: MemAccess.I64,
    Primitive.F32: MemAccess.F32,
    Primitive.F64: MemAccess.F64,
    Primitive.CHAR: MemAccess.I32,
}


def is_list_canonical(resolve: Resolve, element: Type) -> bool:
    """Whether a list's memory layout equals a Zig slice of its elements."""
    element = resolve.unalias(element)
    return isinstance(element, Primitive) and (
        element.is_integer or element.is_float
    )


def wasm_signature(
    resolve: Resolve, variant: AbiVariant, func: Function
) -> WasmSignature:
    """Core wasm signature of ``func`` for the given direction."""
    params = [w for _, ty in func.params for w in flatten(resolve, ty)]
    indirect_params = len(params) > MAX_FLAT_PARAMS
    if indirect_params:
        params = [WasmType.I32]

    results = [w for ty in func.results.types() for w in flatten(resolve, ty)]
    retptr = len(results) > MAX_FLAT_RESULTS
    if retptr:
        match variant:
            case AbiVariant.GUEST_IMPORT:
                params.append(WasmType.I32)
                results = []
            case AbiVariant.GUEST_EXPORT:
                results = [WasmType.I32]

    return WasmSignature(
        params=tuple(params),
        results=tuple(results),
        indirect_params=indirect_params,
        retptr=retptr,
    )


def call(
    resolve: Resolve,
    variant: AbiVariant,
    func: Function,
    sizes: SizeAlign | None = None,
) -> list[Instruction]:
    """Instruction sequence for calling across ``func`` in ``variant``."""
    gen = _Generator(resolve, sizes or SizeAlign(resolve))
    match variant:
        case AbiVariant.GUEST_IMPORT:
            gen.import_call(func)
        case AbiVariant.GUEST_EXPORT:
            gen.export_call(func)
    return gen.instructions


class _Generator:
    def __init__(self, resolve: Resolve, sizes: SizeAlign) -> None:
        self.resolve = resolve
        self.sizes = sizes
        self.instructions: list[Instruction] = []

    def emit(self, inst: Instruction) -> None:
        self.instructions.append(inst)

    # =====================================================================
    # Calls
    # =====================================================================

    def import_call(self, func: Function) -> None:
        sig = wasm_signature(self.resolve, AbiVariant.GUEST_IMPORT, func)

        if not sig.indirect_params:
            for i, (_, ty) in enumerate(func.params):
                self.emit(GetArg(i))
                self.lower(ty)
        else:
            types = [ty for _, ty in func.params]
            size, align = self.sizes.record_layout(types)
            area = ParamPointer(size, align)
            offsets = self.sizes.field_offsets(types)
            for i, (ty, offset) in enumerate(zip(types, offsets, strict=True)):
                self.emit(GetArg(i))
                self.write_to_memory(ty, area, offset)
            self.emit(area)

        results = func.results.types()
        retptr = None
        if sig.retptr:
            size, align = self.sizes.record_layout(results)
            retptr = ReturnPointer(size, align)
            self.emit(retptr)

        self.emit(CallWasm(func.name, sig))

        if retptr is None:
            for ty in results:
                self.lift(ty)
        else:
            offsets = self.sizes.field_offsets(results)
            for ty, offset in zip(results, offsets, strict=True):
                self.read_from_memory(ty, retptr, offset)

        self.emit(Return(len(results)))

    def export_call(self, func: Function) -> None:
        sig = wasm_signature(self.resolve, AbiVariant.GUEST_EXPORT, func)

        if not sig.indirect_params:
            nth = 0
            for _, ty in func.params:
                for _ in flatten(self.resolve, ty):
                    self.emit(GetArg(nth))
                    nth += 1
                self.lift(ty)
        else:
            types = [ty for _, ty in func.params]
            offsets = self.sizes.field_offsets(types)
            for ty, offset in zip(types, offsets, strict=True):
                self.read_from_memory(ty, GetArg(0), offset)

        self.emit(CallInterface(func))

        results = func.results.types()
        if not sig.retptr:
            for ty in results:
                self.lower(ty)
            self.emit(Return(len(sig.results)))
            return

        size, align = self.sizes.record_layout(results)
        retptr = ReturnPointer(size, align)
        offsets = self.sizes.field_offsets(results)
        # The last result is on top of the stack, so store back to front.
        for ty, offset in reversed(list(zip(results, offsets, strict=True))):
            self.write_to_memory(ty, retptr, offset)
        self.emit(retptr)
        self.emit(Return(1))

    # =====================================================================
    # Flat lowering and lifting
    # =====================================================================

    def lower(self, ty: Type) -> None:
        """Value on top of the stack -> its flat slots."""
        ty = self.resolve.unalias(ty)
        if isinstance(ty, Primitive):
            if ty is Primitive.STRING:
                self.emit(StringLower())
            else:
                self.emit(NumericWiden(ty, flatten(self.resolve, ty)[0]))
            return

        match self.resolve.typedef(ty).kind:
            case Tuple(types=types):
                self.emit(TupleLower(ty, len(types)))
                self._lower_fields(list(types))
            case Record(fields=fields):
                self.emit(RecordLower(ty))
                self._lower_fields([f.type for f in fields])
            case Enum_():
                self.emit(EnumLower(ty))
            case List(element=element):
                self._lower_list(element)
            case Option(payload=payload):
                self._lower_option(ty, payload)
            case kind:
                raise UnsupportedType(kind_name(kind), ty.index)

    def _lower_fields(self, types: list[Type]) -> None:
        # Fields sit on the stack in order; bring each to the top and lower
        # it, leaving the flattened slots in declaration order.
        lowered = 0
        for i, ty in enumerate(types):
            depth = len(types) - 1 - i + lowered
            if depth:
                self.emit(Roll(depth))
            self.lower(ty)
            lowered += len(flatten(self.resolve, ty))

    def _lower_list(self, element: Type) -> None:
        if is_list_canonical(self.resolve, element):
            self.emit(ListCanonLower(element))
            return
        self.emit(BlockBegin(loop=True))
        self.emit(IterElem())
        self.write_to_memory(element, IterBasePointer(), 0)
        self.emit(BlockEnd())
        self.emit(
            ListLower(element, self.sizes.size(element), self.sizes.align(element))
        )

    def _lower_option(self, ty: TypeId, payload: Type) -> None:
        joined = flatten_payloads(self.resolve, [payload])
        results = (WasmType.I32, *joined)

        self.emit(BlockBegin())
        self.emit(I32Const(0))
        if joined:
            self.emit(ConstZero(tuple(joined)))
        self.emit(BlockEnd(len(results)))

        self.emit(BlockBegin())
        self.emit(I32Const(1))
        self.emit(VariantPayload())
        self.lower(payload)
        casts = tuple(zip(flatten(self.resolve, payload), joined, strict=True))
        if any(src != dst for src, dst in casts):
            self.emit(Bitcasts(casts))
        self.emit(BlockEnd(len(results)))

        self.emit(OptionLower(payload, results))

    def lift(self, ty: Type) -> None:
        """Flat slots on top of the stack -> a value."""
        ty = self.resolve.unalias(ty)
        if isinstance(ty, Primitive):
            if ty is Primitive.STRING:
                self.emit(StringLift())
            else:
                self.emit(NumericNarrow(flatten(self.resolve, ty)[0], ty))
            return

        match self.resolve.typedef(ty).kind:
            case Tuple(types=types):
                self._lift_fields(list(types))
                self.emit(TupleLift(ty, len(types)))
            case Record(fields=fields):
                self._lift_fields([f.type for f in fields])
                self.emit(RecordLift(ty))
            case Enum_():
                self.emit(EnumLift(ty))
            case List(element=element):
                self._lift_list(element)
            case Option(payload=payload):
                self._lift_option(payload)
            case kind:
                raise UnsupportedType(kind_name(kind), ty.index)

    def _lift_fields(self, types: list[Type]) -> None:
        # All flat slots are on the stack; move each field's slots above the
        # fields lifted so far, then lift it.
        widths = [len(flatten(self.resolve, ty)) for ty in types]
        remaining = sum(widths)
        for i, (ty, width) in enumerate(zip(types, widths, strict=True)):
            for j in range(width):
                # Above the lowest unmoved slot: the other unmoved slots,
                # the ``i`` fields already lifted and the ``j`` slots moved.
                depth = remaining - 1 + i + j
                if depth:
                    self.emit(Roll(depth))
                remaining -= 1
            self.lift(ty)

    def _lift_list(self, element: Type) -> None:
        if is_list_canonical(self.resolve, element):
            self.emit(ListCanonLift(element))
            return
        self.emit(BlockBegin(loop=True))
        self.read_from_memory(element, IterBasePointer(), 0)
        self.emit(BlockEnd(1))
        self.emit(ListLift(element, self.sizes.size(element)))

    def _lift_option(self, payload: Type) -> None:
        joined = flatten_payloads(self.resolve, [payload])
        flat = flatten(self.resolve, payload)

        self.emit(BlockBegin())
        self.emit(BlockEnd())

        self.emit(BlockBegin(len(joined)))
        casts = tuple(zip(joined, flat, strict=True))
        if any(src != dst for src, dst in casts):
            self.emit(Bitcasts(casts))
        self.lift(payload)
        self.emit(BlockEnd(1))

        self.emit(OptionLift(payload))

    # =====================================================================
    # Linear memory
    # =====================================================================

    def write_to_memory(self, ty: Type, addr: Instruction, offset: int) -> None:
        """Store the value on top of the stack at ``addr + offset``."""
        ty = self.resolve.unalias(ty)
        if isinstance(ty, Primitive):
            if ty is Primitive.STRING:
                self.emit(StringLower())
                self._store_pointer_pair(addr, offset)
            else:
                access = _MEM_ACCESS[ty]
                self.emit(NumericWiden(ty, access.slot))
                self.emit(addr)
                self.emit(Store(access, offset))
            return

        match self.resolve.typedef(ty).kind:
            case Tuple(types=types):
                self.emit(TupleLower(ty, len(types)))
                self._write_fields(list(types), addr, offset)
            case Record(fields=fields):
                self.emit(RecordLower(ty))
                self._write_fields([f.type for f in fields], addr, offset)
            case Enum_():
                self.emit(EnumLower(ty))
                self.emit(addr)
                self.emit(Store(self._discriminant_access(ty), offset))
            case List(element=element):
                self._lower_list(element)
                self._store_pointer_pair(addr, offset)
            case Option(payload=payload):
                disc = self._discriminant_access(ty)
                payload_offset = offset + self.sizes.payload_offset(ty)

                self.emit(BlockBegin())
                self.emit(I32Const(0))
                self.emit(addr)
                self.emit(Store(disc, offset))
                self.emit(BlockEnd())

                self.emit(BlockBegin())
                self.emit(I32Const(1))
                self.emit(addr)
                self.emit(Store(disc, offset))
                self.emit(VariantPayload())
                self.write_to_memory(payload, addr, payload_offset)
                self.emit(BlockEnd())

                self.emit(OptionLower(payload))
            case kind:
                raise UnsupportedType(kind_name(kind), ty.index)

    def _write_fields(self, types: list[Type], addr: Instruction, offset: int) -> None:
        offsets = self.sizes.field_offsets(types)
        for ty, field_offset in reversed(list(zip(types, offsets, strict=True))):
            self.write_to_memory(ty, addr, offset + field_offset)

    def _store_pointer_pair(self, addr: Instruction, offset: int) -> None:
        # Stack holds [pointer, length]; the length is on top.
        self.emit(addr)
        self.emit(Store(MemAccess.I32, offset + 4))
        self.emit(addr)
        self.emit(Store(MemAccess.I32, offset))

    def read_from_memory(self, ty: Type, addr: Instruction, offset: int) -> None:
        """Load a value of ``ty`` from ``addr + offset`` onto the stack."""
        ty = self.resolve.unalias(ty)
        if isinstance(ty, Primitive):
            if ty is Primitive.STRING:
                self._load_pointer_pair(addr, offset)
                self.emit(StringLift())
            else:
                access = _MEM_ACCESS[ty]
                self.emit(addr)
                self.emit(Load(access, offset))
                self.emit(NumericNarrow(access.slot, ty))
            return

        match self.resolve.typedef(ty).kind:
            case Tuple(types=types):
                self._read_fields(list(types), addr, offset)
                self.emit(TupleLift(ty, len(types)))
            case Record(fields=fields):
                self._read_fields([f.type for f in fields], addr, offset)
                self.emit(RecordLift(ty))
            case Enum_():
                self.emit(addr)
                self.emit(Load(self._discriminant_access(ty), offset))
                self.emit(EnumLift(ty))
            case List(element=element):
                self._load_pointer_pair(addr, offset)
                self._lift_list(element)
            case Option(payload=payload):
                self.emit(addr)
                self.emit(Load(self._discriminant_access(ty), offset))

                self.emit(BlockBegin())
                self.emit(BlockEnd())

                self.emit(BlockBegin())
                self.read_from_memory(
                    payload, addr, offset + self.sizes.payload_offset(ty)
                )
                self.emit(BlockEnd(1))

                self.emit(OptionLift(payload))
            case kind:
                raise UnsupportedType(kind_name(kind), ty.index)

    def _read_fields(self, types: list[Type], addr: Instruction, offset: int) -> None:
        offsets = self.sizes.field_offsets(types)
        for ty, field_offset in zip(types, offsets, strict=True):
            self.read_from_memory(ty, addr, offset + field_offset)

    def _load_pointer_pair(self, addr: Instruction, offset: int) -> None:
        self.emit(addr)
        self.emit(Load(MemAccess.I32, offset))
        self.emit(addr)
        self.emit(Load(MemAccess.I32, offset + 4))

    def _discriminant_access(self, ty: TypeId) -> MemAccess:
        match self.resolve.typedef(ty).kind:
            case Option():
                count = 2
            case Enum_(cases=cases):
                count = len(cases)
            case kind:
                raise UnsupportedType(kind_name(kind), ty.index)
        match discriminant_size(count):
            case 1:
                return MemAccess.U8
            case 2:
                return MemAccess.U16
            case _:
                return MemAccess.I32
