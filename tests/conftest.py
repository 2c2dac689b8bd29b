"""Shared fixtures for wit2zig tests."""

from __future__ import annotations

from collections.abc import Callable
from io import StringIO
from pathlib import Path

import pytest

from wit2zig.abi.generator import wasm_signature
from wit2zig.abi.instructions import AbiVariant
from wit2zig.compiler.context import FunctionBindgen
from wit2zig.compiler.types import TypeMapper
from wit2zig.emitter import ZigEmitter
from wit2zig.wit.sizes import SizeAlign
from wit2zig.wit.types import Function, Resolve

FIXTURES_DIR = Path(__file__).parent / "fixtures"

BindgenFactory = Callable[..., FunctionBindgen]


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def resolve() -> Resolve:
    return Resolve()


@pytest.fixture
def make_bindgen() -> BindgenFactory:
    """Factory for a FunctionBindgen with parameters already bound."""

    def factory(
        resolve: Resolve,
        func: Function | None = None,
        direction: AbiVariant = AbiVariant.GUEST_IMPORT,
        params: list[str] | None = None,
        scope_path: tuple[str, ...] = (),
        link_name: str = "$root",
    ) -> FunctionBindgen:
        func = func or Function("f")
        ctx = FunctionBindgen(
            resolve=resolve,
            mapper=TypeMapper(resolve),
            sizes=SizeAlign(resolve),
            func=func,
            direction=direction,
            sig=wasm_signature(resolve, direction, func),
            scope_path=scope_path,
            link_name=link_name,
            emitter=ZigEmitter(StringIO()),
        )
        ctx.bind_params(params if params is not None else [n for n, _ in func.params])
        return ctx

    return factory


def emitted(ctx: FunctionBindgen) -> str:
    """Text written so far to the bindgen's current stream."""
    stream = ctx.emitter.stream
    assert isinstance(stream, StringIO)
    return stream.getvalue()


@pytest.fixture
def body() -> Callable[[FunctionBindgen], str]:
    return emitted
