"""Numeric conversions between declared types and slots.

A conversion is planned as a sequence of steps, each an ``@as`` cast
optionally wrapping one Zig builtin (``@bitCast``, ``@truncate``,
``@floatCast``). Plans are pure data so that they can be checked
independently of the text they render to.

Rules:
- widening an unsigned value zero-extends, a signed value sign-extends
- narrowing reinterprets at the source width with the target's
  signedness, then truncates to the low bits
- same-width signedness changes reinterpret the bit pattern
- floats cross to integers through a same-width bit reinterpretation
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from wit2zig.wit.types import Primitive

if TYPE_CHECKING:
    from wit2zig.abi.instructions import MemAccess, WasmType


@dataclass(frozen=True)
class Numeric:
    """A Zig integer or float type."""

    bits: int
    signed: bool
    floating: bool = False

    @property
    def spelling(self) -> str:
        if self.floating:
            return f"f{self.bits}"
        return f"{'i' if self.signed else 'u'}{self.bits}"


@dataclass(frozen=True)
class Step:
    """``@as(target, @builtin(x))``, or ``@as(target, x)`` without a builtin."""

    builtin: str | None
    target: Numeric

    def apply(self, expr: str) -> str:
        if self.builtin is not None:
            expr = f"@{self.builtin}({expr})"
        return f"@as({self.target.spelling}, {expr})"


def of_slot(slot: WasmType) -> Numeric:
    return Numeric(slot.bits, signed=True, floating=slot.is_float)


def of_access(access: MemAccess) -> Numeric:
    bits = access.size * 8
    match access.value[0]:
        case "f":
            return Numeric(bits, signed=True, floating=True)
        case "u":
            return Numeric(bits, signed=False)
        case _:
            return Numeric(bits, signed=True)


def of_primitive(prim: Primitive) -> Numeric:
    """Numeric type of an integer, float, bool (``u1``) or char (``u21``)."""
    if prim.is_float:
        return Numeric(prim.bits, signed=True, floating=True)
    if prim.is_integer:
        return Numeric(prim.bits, signed=prim.is_signed)
    if prim in {Primitive.BOOL, Primitive.CHAR}:
        return Numeric(prim.bits, signed=False)
    msg = f"{prim.value} is not numeric"
    raise ValueError(msg)


def plan_conversion(src: Numeric, dst: Numeric) -> tuple[Step, ...]:
    """Steps converting a value of ``src`` to ``dst``.

    Args:
        src: Type of the input expression.
        dst: Type of the result.

    Returns:
        Steps to apply in order; empty when the types are equal.
    """
    if src == dst:
        return ()

    if src.floating and dst.floating:
        if src.bits < dst.bits:
            return (Step(None, dst),)
        return (Step("floatCast", dst),)

    if src.floating:
        bits = Numeric(src.bits, signed=False)
        return (Step("bitCast", bits), *plan_conversion(bits, dst))

    if dst.floating:
        bits = Numeric(dst.bits, signed=False)
        return (*plan_conversion(src, bits), Step("bitCast", dst))

    if src.bits == dst.bits:
        return (Step("bitCast", dst),)

    if src.bits < dst.bits:
        if src.signed and not dst.signed:
            # Sign-extend first; @as cannot change signedness.
            wide = Numeric(dst.bits, signed=True)
            return (Step(None, wide), Step("bitCast", dst))
        return (Step(None, dst),)

    steps: list[Step] = []
    if src.signed != dst.signed:
        steps.append(Step("bitCast", Numeric(src.bits, dst.signed)))
    steps.append(Step("truncate", dst))
    return tuple(steps)


def convert(expr: str, src: Numeric, dst: Numeric) -> str:
    for step in plan_conversion(src, dst):
        expr = step.apply(expr)
    return expr


def widen(expr: str, prim: Primitive, slot: WasmType) -> str:
    """Declared value -> slot expression."""
    if prim is Primitive.BOOL:
        expr = f"@intFromBool({expr})"
    return convert(expr, of_primitive(prim), of_slot(slot))


def narrow(expr: str, slot: WasmType, prim: Primitive) -> str:
    """Slot expression -> declared value."""
    match prim:
        case Primitive.BOOL:
            return f"({expr} != 0)"
        case Primitive.CHAR:
            # Out-of-range code points trap in safe builds.
            return f"@as(u21, @intCast({expr}))"
        case _:
            return convert(expr, of_slot(slot), of_primitive(prim))
