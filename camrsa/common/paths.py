"""Common path utilities.

Inputs and outputs are declared in the config relative to the project root,
but restricted-use data (the ED-visit extract in particular) usually lives
on an encrypted volume, so absolute paths must pass through untouched.
"""

from __future__ import annotations

from pathlib import Path
from typing import Union


def resolve_path(root: Path, value: Union[str, Path]) -> Path:
    """Resolve a config path against `root`.

    Absolute paths are returned as-is; relative ones are joined to `root`.
    """
    path = Path(value).expanduser()
    if path.is_absolute():
        return path
    return Path(root) / path


def ensure_parent(path: Union[str, Path]) -> Path:
    """Create the parent directory of `path` and return it as a Path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path
