"""Generator options."""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path

import yaml


@dataclass(frozen=True)
class GeneratorOptions:
    """Options controlling the generated module.

    Attributes:
        indent: Spaces per indentation level.
        exports_type: Name of the generic function wrapping exports.
        impl_param: Name of its implementation type parameter.
        header: Whether to start the module with a generated-file comment.
    """

    indent: int = 4
    exports_type: str = "Exports"
    impl_param: str = "Impl"
    header: bool = True


def options_from_mapping(data: dict | None) -> GeneratorOptions:
    """Build options from a mapping, rejecting unknown keys."""
    data = data or {}
    known = {f.name for f in fields(GeneratorOptions)}
    unknown = sorted(set(data) - known)
    if unknown:
        msg = f"Unknown option(s): {', '.join(unknown)}"
        raise ValueError(msg)

    options = GeneratorOptions(**data)
    if not isinstance(options.indent, int) or options.indent < 1:
        msg = f"indent must be a positive integer, got {options.indent!r}"
        raise ValueError(msg)
    return options


def load_options(path: Path) -> GeneratorOptions:
    """Load generator options from YAML.

    Args:
        path: Path to a YAML mapping of option names to values.

    Returns:
        GeneratorOptions with defaults for missing keys.
    """
    with Path(path).open() as f:
        data = yaml.safe_load(f)
    if data is not None and not isinstance(data, dict):
        msg = f"{path}: expected a mapping of options"
        raise ValueError(msg)
    return options_from_mapping(data)
