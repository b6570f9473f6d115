from __future__ import annotations

import os
from typing import Sequence

from .constants import ARCHIVE_EXT
from .errors import PathEscapeError


def arc_join(parent: str, name: str) -> str:
    """Join archive-relative path segments with forward slashes."""
    return f"{parent}/{name}" if parent else name


def canonical_root(outdir: str) -> str:
    return os.path.realpath(os.path.abspath(outdir))


def resolve_under(root: str, parts: Sequence[str]) -> str:
    """Resolve the entry names in `parts` against canonical `root`.

    Rules:
    - Names are joined as stored, so an absolute name or '..' takes effect
    - The result is normalized and symlinks already on disk are resolved
    - The result must be strictly inside `root`; otherwise PathEscapeError
    """
    candidate = os.path.realpath(os.path.join(root, *parts))
    try:
        common = os.path.commonpath([root, candidate])
    except ValueError:  # different drives on Windows
        common = ""
    if common != root or candidate == root:
        shown = "/".join(parts)
        raise PathEscapeError(f"Potentially malicious path: {shown!r} resolves to {candidate}")
    return candidate


def change_extension(path: str, ext: str) -> str:
    if not ext.startswith("."):
        raise ValueError("Extension must start with '.'")
    root, _old = os.path.splitext(path)
    return root + ext


def default_archive_path(input_dir: str) -> str:
    return os.path.abspath(input_dir).rstrip("/\\" + os.sep) + ARCHIVE_EXT


def default_extract_dir(archive: str) -> str:
    full = os.path.abspath(archive)
    root, _ext = os.path.splitext(full)
    if root == full:
        return full + "_extracted"
    return root
