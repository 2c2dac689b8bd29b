"""Unit tests for numeric conversion plans.

Plans are checked by interpreting their steps on Python values with
Zig's semantics for ``@as``, ``@bitCast``, ``@truncate`` and
``@floatCast``; a step that Zig would reject fails the test.
"""

from __future__ import annotations

import struct

import pytest

from wit2zig.abi.instructions import MemAccess, WasmType
from wit2zig.compiler.codegen.numeric import (
    Numeric,
    Step,
    convert,
    narrow,
    of_access,
    of_primitive,
    of_slot,
    plan_conversion,
    widen,
)
from wit2zig.compiler.types import TypeMapper
from wit2zig.wit.types import Primitive

_FLOAT_FORMATS = {32: "f", 64: "d"}
_UINT_FORMATS = {32: "I", 64: "Q"}


def _bounds(ty: Numeric) -> tuple[int, int]:
    if ty.signed:
        return -(1 << (ty.bits - 1)), (1 << (ty.bits - 1)) - 1
    return 0, (1 << ty.bits) - 1


def _to_bits(value: int | float, ty: Numeric) -> int:
    if ty.floating:
        packed = struct.pack(f"<{_FLOAT_FORMATS[ty.bits]}", value)
        return struct.unpack(f"<{_UINT_FORMATS[ty.bits]}", packed)[0]
    return int(value) & ((1 << ty.bits) - 1)


def _from_bits(bits: int, ty: Numeric) -> int | float:
    if ty.floating:
        packed = struct.pack(f"<{_UINT_FORMATS[ty.bits]}", bits)
        return struct.unpack(f"<{_FLOAT_FORMATS[ty.bits]}", packed)[0]
    if ty.signed and bits >> (ty.bits - 1):
        return bits - (1 << ty.bits)
    return bits


def _run(value: int | float, src: Numeric, steps: tuple[Step, ...]) -> int | float:
    ty = src
    for step in steps:
        dst = step.target
        match step.builtin:
            case None:
                # Coercion: the target must represent every source value.
                if ty.floating or dst.floating:
                    assert ty.floating and dst.floating and dst.bits >= ty.bits
                else:
                    lo, hi = _bounds(ty)
                    dlo, dhi = _bounds(dst)
                    assert dlo <= lo and hi <= dhi, ty.spelling
            case "bitCast":
                assert ty.bits == dst.bits
                value = _from_bits(_to_bits(value, ty), dst)
            case "truncate":
                assert not ty.floating and not dst.floating
                assert ty.signed == dst.signed and dst.bits < ty.bits
                value = _from_bits(_to_bits(value, dst), dst)
            case "floatCast":
                assert ty.floating and dst.floating and dst.bits < ty.bits
                value = _from_bits(_to_bits(value, dst), dst)
            case other:
                pytest.fail(f"unexpected builtin {other}")
        ty = dst
    return value


def _samples(prim: Primitive) -> list[int | float]:
    ty = of_primitive(prim)
    if ty.floating:
        return [0.0, -1.5, 3.25, 1e10 if ty.bits == 64 else 65536.0]
    lo, hi = _bounds(ty)
    return sorted({lo, hi, 0, 1, lo // 2, hi // 2})


_NUMBERS = [
    Primitive.S8,
    Primitive.U8,
    Primitive.S16,
    Primitive.U16,
    Primitive.S32,
    Primitive.U32,
    Primitive.S64,
    Primitive.U64,
    Primitive.F32,
    Primitive.F64,
]
_SLOTS = {32: WasmType.I32, 64: WasmType.I64}


def _slots_for(prim: Primitive) -> list[WasmType]:
    if prim.is_float:
        return [WasmType.F32 if prim is Primitive.F32 else WasmType.F64]
    return [_SLOTS[bits] for bits in sorted(TypeMapper.widths(prim))]


class TestRoundTrip:
    """Narrowing a widened value gives back the value."""

    @pytest.mark.parametrize("prim", _NUMBERS)
    def test_slot_round_trip(self, prim: Primitive) -> None:
        src = of_primitive(prim)
        for slot in _slots_for(prim):
            up = plan_conversion(src, of_slot(slot))
            down = plan_conversion(of_slot(slot), src)
            for value in _samples(prim):
                assert _run(_run(value, src, up), of_slot(slot), down) == value

    @pytest.mark.parametrize("prim", [Primitive.F32, Primitive.F64])
    def test_float_through_integer_slot(self, prim: Primitive) -> None:
        src = of_primitive(prim)
        slot = WasmType.I32 if prim is Primitive.F32 else WasmType.I64
        up = plan_conversion(src, of_slot(slot))
        down = plan_conversion(of_slot(slot), src)
        for value in _samples(prim):
            assert _run(_run(value, src, up), of_slot(slot), down) == value


class TestExtension:
    """Widening keeps the numeric value of the source."""

    def test_unsigned_zero_extends(self) -> None:
        steps = plan_conversion(of_primitive(Primitive.U8), of_slot(WasmType.I32))
        assert _run(255, of_primitive(Primitive.U8), steps) == 255

    def test_signed_sign_extends(self) -> None:
        steps = plan_conversion(of_primitive(Primitive.S16), of_slot(WasmType.I64))
        assert _run(-2, of_primitive(Primitive.S16), steps) == -2

    def test_same_width_reinterprets(self) -> None:
        steps = plan_conversion(of_primitive(Primitive.U32), of_slot(WasmType.I32))
        assert steps == (Step("bitCast", Numeric(32, signed=True)),)
        assert _run(0xFFFFFFFF, of_primitive(Primitive.U32), steps) == -1

    def test_signed_to_wider_unsigned(self) -> None:
        steps = plan_conversion(Numeric(8, signed=True), Numeric(32, signed=False))
        assert _run(-1, Numeric(8, signed=True), steps) == 0xFFFFFFFF


class TestPlans:
    """Tests for planned step sequences and their rendering."""

    def test_equal_types(self) -> None:
        assert plan_conversion(Numeric(32, True), Numeric(32, True)) == ()
        assert convert("x", Numeric(32, True), Numeric(32, True)) == "x"

    def test_narrow_changes_signedness_first(self) -> None:
        text = convert("ret", of_slot(WasmType.I32), of_primitive(Primitive.U8))
        assert text == "@as(u8, @truncate(@as(u32, @bitCast(ret))))"

    def test_narrow_same_signedness(self) -> None:
        text = convert("x", of_slot(WasmType.I64), of_primitive(Primitive.S8))
        assert text == "@as(i8, @truncate(x))"

    def test_float_promotion(self) -> None:
        assert convert("x", Numeric(32, True, True), Numeric(64, True, True)) == (
            "@as(f64, x)"
        )

    def test_float_demotion(self) -> None:
        assert convert("x", Numeric(64, True, True), Numeric(32, True, True)) == (
            "@as(f32, @floatCast(x))"
        )

    def test_float_to_integer_slot(self) -> None:
        text = convert("x", of_primitive(Primitive.F64), of_slot(WasmType.I64))
        assert text == "@as(i64, @bitCast(@as(u64, @bitCast(x))))"


class TestWidenNarrow:
    """Tests for bool and char, which are not plain integers."""

    def test_widen_bool(self) -> None:
        assert widen("b", Primitive.BOOL, WasmType.I32) == "@as(i32, @intFromBool(b))"

    def test_narrow_bool(self) -> None:
        assert narrow("x", WasmType.I32, Primitive.BOOL) == "(x != 0)"

    def test_widen_char(self) -> None:
        assert widen("c", Primitive.CHAR, WasmType.I32) == "@as(i32, c)"

    def test_narrow_char_checks_range(self) -> None:
        assert narrow("x", WasmType.I32, Primitive.CHAR) == "@as(u21, @intCast(x))"

    def test_widen_integer(self) -> None:
        assert widen("x", Primitive.U8, WasmType.I32) == "@as(i32, x)"


class TestNumericTypes:
    """Tests for the numeric views of slots, accesses and primitives."""

    def test_of_access(self) -> None:
        assert of_access(MemAccess.U8) == Numeric(8, signed=False)
        assert of_access(MemAccess.S16) == Numeric(16, signed=True)
        assert of_access(MemAccess.F64) == Numeric(64, signed=True, floating=True)

    def test_of_primitive(self) -> None:
        assert of_primitive(Primitive.BOOL) == Numeric(1, signed=False)
        assert of_primitive(Primitive.CHAR).spelling == "u21"
        assert of_primitive(Primitive.S64).spelling == "i64"

    def test_string_is_not_numeric(self) -> None:
        with pytest.raises(ValueError, match="not numeric"):
            of_primitive(Primitive.STRING)
