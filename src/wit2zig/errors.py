"""Errors raised while generating bindings.

Generation is all-or-nothing: the first error aborts the world being
generated and no module text is returned.
"""

from __future__ import annotations


class GenerationError(Exception):
    """Base class for generation failures.

    ``function`` and ``direction`` are filled in by the per-function
    compiler once the error has propagated out of the emitter.
    """

    def __init__(self, msg: str) -> None:
        super().__init__(msg)
        self.function: str | None = None
        self.direction: str | None = None

    def locate(self, function: str, direction: str) -> None:
        if self.function is None:
            self.function = function
            self.direction = direction

    def __str__(self) -> str:
        msg = super().__str__()
        if self.function is None:
            return msg
        return f"{msg} (in {self.direction} of `{self.function}`)"


class UnsupportedType(GenerationError):
    """A composite kind that has no Zig spelling."""

    def __init__(self, kind: str, type_id: int | None = None) -> None:
        where = f" (type {type_id})" if type_id is not None else ""
        super().__init__(f"Unsupported type: {kind}{where}")
        self.kind = kind
        self.type_id = type_id


class UnsupportedInstruction(GenerationError):
    def __init__(self, tag: str) -> None:
        super().__init__(f"Unsupported instruction: {tag}")
        self.tag = tag


class MissingResultConvention(GenerationError):
    """Two or more results reached a point that can return only one."""

    def __init__(self, function: str, count: int) -> None:
        super().__init__(
            f"No result convention for {count} results of `{function}`"
        )
        self.count = count


class StackMismatch(GenerationError):
    """The operand stack did not hold what an instruction required."""


class UnreachableExport(GenerationError):
    def __init__(self, symbol: str) -> None:
        super().__init__(f"Exported symbol not reachable: {symbol}")
        self.symbol = symbol
