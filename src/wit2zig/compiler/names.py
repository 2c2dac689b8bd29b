"""Identifier conversion and escaping for generated Zig code."""

from __future__ import annotations

import re
from typing import Final

# Reserved words of the Zig language.
ZIG_KEYWORDS: Final[frozenset[str]] = frozenset({
    "addrspace",
    "align",
    "allowzero",
    "and",
    "anyframe",
    "anytype",
    "asm",
    "async",
    "await",
    "break",
    "callconv",
    "catch",
    "comptime",
    "const",
    "continue",
    "defer",
    "else",
    "enum",
    "errdefer",
    "error",
    "export",
    "extern",
    "fn",
    "for",
    "if",
    "inline",
    "linksection",
    "noalias",
    "noinline",
    "nosuspend",
    "opaque",
    "or",
    "orelse",
    "packed",
    "pub",
    "resume",
    "return",
    "struct",
    "suspend",
    "switch",
    "test",
    "threadlocal",
    "try",
    "union",
    "unreachable",
    "usingnamespace",
    "var",
    "volatile",
    "while",
})

# Names that are primitive types or values; declaring them shadows the
# builtin, which Zig rejects.
ZIG_PRIMITIVES: Final[frozenset[str]] = frozenset({
    "anyerror",
    "anyopaque",
    "bool",
    "c_char",
    "c_int",
    "c_long",
    "c_longdouble",
    "c_longlong",
    "c_short",
    "c_uint",
    "c_ulong",
    "c_ulonglong",
    "c_ushort",
    "comptime_float",
    "comptime_int",
    "f16",
    "f32",
    "f64",
    "f80",
    "f128",
    "false",
    "isize",
    "noreturn",
    "null",
    "true",
    "type",
    "undefined",
    "usize",
    "void",
})

_INT_TYPE = re.compile(r"^[iu]\d+$")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Boundaries between words: separators, lower->Upper, and the end of an
# acronym followed by a capitalized word (``HTTPServer`` -> ``HTTP Server``).
_SEPARATORS = re.compile(r"[-_\s.:/]+")
_LOWER_UPPER = re.compile(r"([a-z0-9])([A-Z])")
_ACRONYM = re.compile(r"([A-Z]+)([A-Z][a-z])")


def to_declaration_name(raw: str) -> str:
    """Normalize ``raw`` to snake_case.

    ``get-Value``, ``getValue`` and ``get_value`` all become ``get_value``.
    """
    name = _ACRONYM.sub(r"\1_\2", raw)
    name = _LOWER_UPPER.sub(r"\1_\2", name)
    words = [w for w in _SEPARATORS.split(name) if w]
    return "_".join(w.lower() for w in words)


def is_reserved(name: str) -> bool:
    return (
        name in ZIG_KEYWORDS
        or name in ZIG_PRIMITIVES
        or _INT_TYPE.match(name) is not None
    )


def to_keyword_safe(raw: str) -> str:
    """Return ``raw`` usable as a Zig identifier.

    Reserved words, primitive names and anything that is not a plain
    identifier are wrapped as ``@"raw"``.
    """
    if _IDENTIFIER.match(raw) and not is_reserved(raw):
        return raw
    escaped = raw.replace("\\", "\\\\").replace('"', '\\"')
    return f'@"{escaped}"'


def to_zig_ident(raw: str) -> str:
    """snake_case name that is also a valid Zig identifier."""
    return to_keyword_safe(to_declaration_name(raw))
