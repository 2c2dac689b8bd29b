"""Zig emitter for wit2zig.

Provides the ZigEmitter class that writes indented Zig source to a
stream. Code generators decide what to emit; the emitter only handles
layout.
"""

from __future__ import annotations

from typing import TextIO


class ZigEmitter:
    """Writes Zig source lines with automatic indentation.

    Handles:
    - Line and multi-line text emission at the current indentation
    - Line comments
    - Indentation levels of a configurable width
    """

    def __init__(self, stream: TextIO, width: int = 4) -> None:
        """Initialize the emitter.

        Args:
            stream: Output stream where Zig code is written.
            width: Number of spaces per indentation level.
        """
        self.stream = stream
        self.width = width
        self.indent = 0

    # =========================================================================
    # Core Emission
    # =========================================================================

    def line(self, code: str) -> None:
        """Emit a single line of Zig code with proper indentation."""
        self.stream.write(" " * self.indent + code + "\n")

    def blank(self) -> None:
        self.stream.write("\n")

    def text(self, code: str) -> None:
        """Emit multi-line Zig code, preserving internal structure.

        Empty lines are written without indentation.
        """
        for ln in code.strip("\n").split("\n"):
            if ln.strip():
                self.stream.write(" " * self.indent + ln + "\n")
            else:
                self.stream.write("\n")

    def comment(self, text: str) -> None:
        """Emit a Zig line comment."""
        self.line(f"// {text}")

    def indent_inc(self, levels: int = 1) -> None:
        """Increase indentation level."""
        self.indent += levels * self.width

    def indent_dec(self, levels: int = 1) -> None:
        """Decrease indentation level."""
        self.indent -= levels * self.width
