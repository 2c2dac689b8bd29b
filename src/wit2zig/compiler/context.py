"""Per-function state passed through instruction emission."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from io import StringIO
from typing import TYPE_CHECKING

from wit2zig.abi.instructions import AbiVariant
from wit2zig.compiler.scope import ScopeTree
from wit2zig.emitter import ZigEmitter
from wit2zig.errors import StackMismatch

if TYPE_CHECKING:
    from typing import TextIO

    from wit2zig.abi.instructions import WasmSignature
    from wit2zig.compiler.types import TypeMapper
    from wit2zig.config import GeneratorOptions
    from wit2zig.wit.sizes import SizeAlign
    from wit2zig.wit.types import Function, Resolve

_SIMPLE_OPERAND = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class BlockFrame:
    """An open nested block.

    Names of the payload, element and base pointer are allocated on first
    use; a name that is still None when the block is consumed was never
    referenced by its body.
    """

    outer: list[str]
    saved_stream: TextIO
    saved_indent: int
    loop: bool = False
    payload: str | None = None
    elem: str | None = None
    base: str | None = None
    index: str | None = None


@dataclass
class Block:
    """A closed block waiting for the instruction that consumes it."""

    body: str
    results: list[str]
    frame: BlockFrame


@dataclass
class MemoryArea:
    """Scratch memory declared in the function prologue."""

    name: str
    size: int
    align: int


@dataclass
class FunctionBindgen:
    """Shared state for emitting one function in one direction.

    Instruction handlers take this as their second argument. Nothing in
    it outlives the function being generated.
    """

    resolve: Resolve
    mapper: TypeMapper
    sizes: SizeAlign
    func: Function
    direction: AbiVariant
    sig: WasmSignature

    # Namespace segments the function is filed under
    scope_path: tuple[str, ...] = ()

    # Library name of extern declarations in the import direction
    link_name: str = "$root"

    # Name of the implementation type in the export direction
    impl_param: str = "Impl"

    emitter: ZigEmitter = field(default_factory=lambda: ZigEmitter(StringIO()))

    # Bound parameter names, in order
    params: list[str] = field(default_factory=list)

    # Operand stack of the innermost open block (or of the function body)
    operands: list[str] = field(default_factory=list)

    # Open blocks, innermost last
    frames: list[BlockFrame] = field(default_factory=list)

    # Closed blocks not yet consumed, most recent last
    blocks: list[Block] = field(default_factory=list)

    # Identifiers that locals must not reuse
    used_names: set[str] = field(default_factory=set)

    ret_area: MemoryArea | None = None
    param_area: MemoryArea | None = None

    _counters: dict[str, int] = field(default_factory=dict)

    @property
    def is_import(self) -> bool:
        return self.direction is AbiVariant.GUEST_IMPORT

    # =========================================================================
    # Names
    # =========================================================================

    def reserve(self, names: set[str] | frozenset[str]) -> None:
        self.used_names |= names

    def fresh(self, name: str) -> str:
        """Return ``name``, or ``name`` with a counter when already taken."""
        if name not in self.used_names:
            self.used_names.add(name)
            return name
        return self.tmp(name)

    def tmp(self, prefix: str) -> str:
        """Return a new numbered local name (``load0``, ``load1``...)."""
        while True:
            n = self._counters.get(prefix, 0)
            self._counters[prefix] = n + 1
            name = f"{prefix}{n}"
            if name not in self.used_names:
                self.used_names.add(name)
                return name

    def bind_params(self, names: list[str]) -> None:
        self.params = [self.fresh(name) for name in names]

    def materialize(self, expr: str, prefix: str) -> str:
        """Bind ``expr`` to a local unless it already is a plain name."""
        if _SIMPLE_OPERAND.match(expr):
            return expr
        name = self.tmp(prefix)
        self.emitter.line(f"const {name} = {expr};")
        return name

    # =========================================================================
    # Operand stack
    # =========================================================================

    def push(self, *exprs: str) -> None:
        self.operands.extend(exprs)

    def pop(self) -> str:
        if not self.operands:
            msg = "Operand stack is empty"
            raise StackMismatch(msg)
        return self.operands.pop()

    def pop_n(self, n: int) -> list[str]:
        """Pop ``n`` operands, returned in stack order (deepest first)."""
        if n > len(self.operands):
            msg = f"Expected {n} operands, found {len(self.operands)}"
            raise StackMismatch(msg)
        if n == 0:
            return []
        popped = self.operands[-n:]
        del self.operands[-n:]
        return popped

    # =========================================================================
    # Blocks
    # =========================================================================

    def begin_block(self, inputs: int, *, loop: bool) -> None:
        moved = self.pop_n(inputs)
        frame = BlockFrame(
            outer=self.operands,
            saved_stream=self.emitter.stream,
            saved_indent=self.emitter.indent,
            loop=loop,
        )
        self.frames.append(frame)
        self.operands = moved
        self.emitter.stream = StringIO()
        self.emitter.indent = 0

    def end_block(self, results: int) -> None:
        if not self.frames:
            msg = "Block end without a matching block begin"
            raise StackMismatch(msg)
        if len(self.operands) != results:
            msg = (
                f"Block must leave {results} operands, "
                f"found {len(self.operands)}"
            )
            raise StackMismatch(msg)
        frame = self.frames.pop()
        assert isinstance(self.emitter.stream, StringIO)
        body = self.emitter.stream.getvalue()
        self.emitter.stream = frame.saved_stream
        self.emitter.indent = frame.saved_indent
        self.blocks.append(Block(body, self.operands, frame))
        self.operands = frame.outer

    def pop_block(self) -> Block:
        if not self.blocks:
            msg = "No block available"
            raise StackMismatch(msg)
        return self.blocks.pop()

    def current_frame(self) -> BlockFrame:
        if not self.frames:
            msg = "Instruction requires an enclosing block"
            raise StackMismatch(msg)
        return self.frames[-1]

    def loop_frame(self) -> BlockFrame:
        for frame in reversed(self.frames):
            if frame.loop:
                return frame
        msg = "Instruction requires an enclosing list loop"
        raise StackMismatch(msg)

    # =========================================================================
    # Scratch memory
    # =========================================================================

    def return_area(self, size: int, align: int) -> MemoryArea:
        """Return area of the function, declared on first use."""
        if self.ret_area is None:
            self.ret_area = MemoryArea(self.fresh("ret_area"), size, align)
        return self.ret_area

    def parameter_area(self, size: int, align: int) -> MemoryArea:
        if self.param_area is None:
            self.param_area = MemoryArea(self.fresh("param_area"), size, align)
        return self.param_area

    def check_finished(self) -> None:
        """Verify that the walk left no operands or blocks behind."""
        if self.frames:
            msg = f"{len(self.frames)} block(s) left open"
            raise StackMismatch(msg)
        if self.blocks:
            msg = f"{len(self.blocks)} block(s) never consumed"
            raise StackMismatch(msg)
        if self.operands:
            msg = f"{len(self.operands)} operand(s) left on the stack"
            raise StackMismatch(msg)


@dataclass
class WorldContext:
    """State shared by all functions of one world.

    Functions are compiled independently; only the scope trees and the
    list of export symbols accumulate across them.
    """

    resolve: Resolve
    options: GeneratorOptions
    mapper: TypeMapper
    sizes: SizeAlign

    # Container-level identifiers that function locals must avoid
    reserved: set[str] = field(default_factory=set)

    imports: ScopeTree = field(default_factory=ScopeTree)
    exports: ScopeTree = field(default_factory=ScopeTree)

    # (scope path, symbol) of every export, in generation order
    export_symbols: list[tuple[tuple[str, ...], str]] = field(default_factory=list)
