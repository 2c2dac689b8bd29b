"""Unit tests for option and list block handlers."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from wit2zig.abi.generator import call
from wit2zig.abi.instructions import (
    AbiVariant,
    BlockBegin,
    BlockEnd,
    GetArg,
    I32Const,
    Instruction,
    IterBasePointer,
    IterElem,
    ListLift,
    ListLower,
    Load,
    MemAccess,
    NumericNarrow,
    OptionLift,
    OptionLower,
    StringLift,
    VariantPayload,
    WasmType,
)
from wit2zig.compiler.codegen import emit_instruction
from wit2zig.compiler.codegen.blocks import ALLOCATOR, OUT_OF_MEMORY
from wit2zig.compiler.context import FunctionBindgen
from wit2zig.errors import StackMismatch
from wit2zig.wit.types import Function, List, Option, Primitive, Resolve

Factory = Callable[..., FunctionBindgen]
Body = Callable[[FunctionBindgen], str]


def _run(ctx: FunctionBindgen, instructions: list[Instruction]) -> None:
    for inst in instructions:
        emit_instruction(inst, ctx)


class TestOptionLower:
    """Tests for lowering options into a discriminant and payload slots."""

    def test_if_else(self, resolve: Resolve, make_bindgen: Factory, body: Body) -> None:
        opt = resolve.add_type(Option(Primitive.U32))
        func = Function("f", (("x", opt),))
        ctx = make_bindgen(resolve, func)
        _run(ctx, call(resolve, AbiVariant.GUEST_IMPORT, func)[:11])

        assert ctx.operands == ["option0_0", "option0_1"]
        assert body(ctx) == (
            "var option0_0: i32 = undefined;\n"
            "var option0_1: i32 = undefined;\n"
            "if (x) |payload0| {\n"
            "    option0_0 = @as(i32, 1);\n"
            "    option0_1 = @as(i32, @bitCast(payload0));\n"
            "} else {\n"
            "    option0_0 = @as(i32, 0);\n"
            "    option0_1 = @as(i32, 0);\n"
            "}\n"
        )

    def test_unused_payload(
        self, resolve: Resolve, make_bindgen: Factory, body: Body
    ) -> None:
        ctx = make_bindgen(resolve)
        ctx.push("x")
        _run(
            ctx,
            [
                BlockBegin(),
                I32Const(0),
                BlockEnd(1),
                BlockBegin(),
                I32Const(1),
                BlockEnd(1),
                OptionLower(Primitive.U32, (WasmType.I32,)),
            ],
        )
        assert "if (x) |_| {\n" in body(ctx)

    def test_result_count_mismatch(
        self, resolve: Resolve, make_bindgen: Factory
    ) -> None:
        ctx = make_bindgen(resolve)
        ctx.push("x")
        _run(ctx, [BlockBegin(), BlockEnd(), BlockBegin(), BlockEnd()])
        with pytest.raises(StackMismatch, match="OptionLower"):
            emit_instruction(OptionLower(Primitive.U32, (WasmType.I32,)), ctx)


class TestOptionLift:
    """Tests for lifting options with a switch on the discriminant."""

    def test_flat(self, resolve: Resolve, make_bindgen: Factory, body: Body) -> None:
        ctx = make_bindgen(resolve, params=["arg0", "arg1"])
        _run(
            ctx,
            [
                GetArg(0),
                GetArg(1),
                BlockBegin(),
                BlockEnd(),
                BlockBegin(1),
                NumericNarrow(WasmType.I32, Primitive.U8),
                BlockEnd(1),
                OptionLift(Primitive.U8),
            ],
        )
        assert ctx.operands == ["option0"]
        assert body(ctx) == (
            "const option0: ?u8 = switch (arg0) {\n"
            "    0 => null,\n"
            "    1 => @as(u8, @truncate(@as(u32, @bitCast(arg1)))),\n"
            "    else => unreachable,\n"
            "};\n"
        )

    def test_labeled_arm(
        self, resolve: Resolve, make_bindgen: Factory, body: Body
    ) -> None:
        ctx = make_bindgen(resolve, params=["d", "b"])
        _run(
            ctx,
            [
                GetArg(0),
                BlockBegin(),
                BlockEnd(),
                BlockBegin(),
                GetArg(1),
                Load(MemAccess.I32, 4),
                NumericNarrow(WasmType.I32, Primitive.U32),
                BlockEnd(1),
                OptionLift(Primitive.U32),
            ],
        )
        assert body(ctx) == (
            "const option0: ?u32 = switch (d) {\n"
            "    0 => null,\n"
            "    1 => option0_some: {\n"
            "        const load0: i32 = @as(*align(1) const i32, "
            "@ptrFromInt(@as(usize, @as(u32, @bitCast(b))) + 4)).*;\n"
            "        break :option0_some @as(u32, @bitCast(load0));\n"
            "    },\n"
            "    else => unreachable,\n"
            "};\n"
        )


class TestListLower:
    """Tests for lowering lists element by element."""

    def _lower_names(
        self, resolve: Resolve, make_bindgen: Factory, direction: AbiVariant
    ) -> FunctionBindgen:
        names = resolve.add_type(List(Primitive.STRING))
        func = Function("f", (("names", names),))
        ctx = make_bindgen(resolve, func, params=["names"])
        instructions = call(resolve, AbiVariant.GUEST_IMPORT, func)[:10]
        ctx.direction = direction
        _run(ctx, instructions)
        return ctx

    def test_import(self, resolve: Resolve, make_bindgen: Factory, body: Body) -> None:
        ctx = self._lower_names(resolve, make_bindgen, AbiVariant.GUEST_IMPORT)
        text = body(ctx)
        lines = text.splitlines()
        assert lines[0] == (
            f"const result0 = {ALLOCATOR}.alloc(u32, names.len * 2) {OUT_OF_MEMORY};"
        )
        assert lines[1] == f"defer {ALLOCATOR}.free(result0);"
        assert lines[2] == "for (names, 0..) |elem0, index0| {"
        assert lines[3] == (
            "    const base0: i32 = @as(i32, @bitCast(@as(u32, "
            "@intCast(@intFromPtr(result0.ptr) + index0 * 8))));"
        )
        assert lines[4].startswith("    @as(*align(1) i32, @ptrFromInt(")
        assert lines[4].endswith(
            "+ 4)).* = @as(i32, @bitCast(@as(u32, @intCast(elem0.len))));"
        )
        assert lines[-1] == "}"
        assert ctx.operands == [
            "@as(i32, @bitCast(@as(u32, @intCast(@intFromPtr(result0.ptr)))))",
            "@as(i32, @bitCast(@as(u32, @intCast(names.len))))",
        ]

    def test_export_hands_buffer_over(
        self, resolve: Resolve, make_bindgen: Factory, body: Body
    ) -> None:
        ctx = self._lower_names(resolve, make_bindgen, AbiVariant.GUEST_EXPORT)
        assert "defer" not in body(ctx)

    def test_body_must_not_leave_results(
        self, resolve: Resolve, make_bindgen: Factory
    ) -> None:
        ctx = make_bindgen(resolve, params=["v"])
        _run(ctx, [GetArg(0), BlockBegin(loop=True), IterElem(), BlockEnd(1)])
        with pytest.raises(StackMismatch):
            emit_instruction(ListLower(Primitive.STRING, 8, 4), ctx)


class TestListLift:
    """Tests for lifting lists into freshly allocated slices."""

    def test_strings(self, resolve: Resolve, make_bindgen: Factory, body: Body) -> None:
        ctx = make_bindgen(resolve, params=["arg0", "arg1"])
        _run(
            ctx,
            [
                GetArg(0),
                GetArg(1),
                BlockBegin(loop=True),
                IterBasePointer(),
                Load(MemAccess.I32, 0),
                IterBasePointer(),
                Load(MemAccess.I32, 4),
                StringLift(),
                BlockEnd(1),
                ListLift(Primitive.STRING, 8),
            ],
        )
        assert ctx.operands == ["result0"]
        lines = body(ctx).splitlines()
        assert lines[0] == (
            f"const result0 = {ALLOCATOR}.alloc([]const u8, "
            f"@as(usize, @as(u32, @bitCast(arg1)))) {OUT_OF_MEMORY};"
        )
        assert lines[1] == "for (result0, 0..) |*item0, index0| {"
        assert lines[2] == (
            "    const base0: i32 = @as(i32, @bitCast(@as(u32, @intCast("
            "@as(usize, @as(u32, @bitCast(arg0))) + index0 * 8))));"
        )
        assert lines[3].startswith("    const load0: i32 = ")
        assert lines[5].startswith("    const str0: []const u8 = ")
        assert lines[6] == "    item0.* = str0;"
        assert lines[7] == "}"


class TestBlockStructure:
    """Tests for block bookkeeping."""

    def test_block_end_without_begin(
        self, resolve: Resolve, make_bindgen: Factory
    ) -> None:
        ctx = make_bindgen(resolve)
        with pytest.raises(StackMismatch, match="without a matching"):
            emit_instruction(BlockEnd(), ctx)

    def test_block_inputs_move_inside(
        self, resolve: Resolve, make_bindgen: Factory
    ) -> None:
        ctx = make_bindgen(resolve)
        ctx.push("a", "b")
        emit_instruction(BlockBegin(1), ctx)
        assert ctx.operands == ["b"]
        emit_instruction(BlockEnd(1), ctx)
        assert ctx.operands == ["a"]
        assert ctx.blocks[-1].results == ["b"]

    def test_payload_requires_block(
        self, resolve: Resolve, make_bindgen: Factory
    ) -> None:
        ctx = make_bindgen(resolve)
        with pytest.raises(StackMismatch):
            emit_instruction(VariantPayload(), ctx)

    def test_element_requires_loop(
        self, resolve: Resolve, make_bindgen: Factory
    ) -> None:
        ctx = make_bindgen(resolve)
        emit_instruction(BlockBegin(), ctx)
        with pytest.raises(StackMismatch, match="list loop"):
            emit_instruction(IterElem(), ctx)

    def test_base_pointer_belongs_to_loop(
        self, resolve: Resolve, make_bindgen: Factory
    ) -> None:
        ctx = make_bindgen(resolve)
        _run(ctx, [BlockBegin(loop=True), BlockBegin(), IterBasePointer()])
        loop, inner = ctx.frames
        assert loop.base == "base0"
        assert loop.index == "index0"
        assert inner.base is None
        assert ctx.operands == ["base0"]

    def test_unfinished_walk(self, resolve: Resolve, make_bindgen: Factory) -> None:
        ctx = make_bindgen(resolve)
        emit_instruction(BlockBegin(), ctx)
        with pytest.raises(StackMismatch, match="left open"):
            ctx.check_finished()
