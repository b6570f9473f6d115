from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from .constants import U32_MAX
from .errors import FormatLimitError
from .table import validate_name


@dataclass(frozen=True, eq=False)
class FileNode:
    name: str
    source_path: str
    size: int


@dataclass(frozen=True, eq=False)
class DirNode:
    name: str
    source_path: str
    subdirs: Tuple["DirNode", ...] = ()
    files: Tuple[FileNode, ...] = ()


@dataclass
class ScanItem:
    """One child reported by the filesystem: kind is "dir" or "file"."""

    name: str
    path: str
    kind: str
    size: int = 0


@dataclass
class ScanResult:
    root: DirNode
    skipped: List[str] = field(default_factory=list)


def list_children(path: str, skipped: Optional[List[str]] = None) -> List[ScanItem]:
    """Enumerate `path` into directories and regular files.

    Symlinks to files are followed. Directory symlinks and special files
    (sockets, FIFOs, devices) are left out and reported through `skipped`.
    Order is whatever the OS returns.
    """
    items: List[ScanItem] = []
    with os.scandir(path) as it:
        for de in it:
            if de.is_dir(follow_symlinks=False):
                items.append(ScanItem(de.name, de.path, "dir"))
            elif de.is_file(follow_symlinks=True):
                items.append(ScanItem(de.name, de.path, "file", de.stat(follow_symlinks=True).st_size))
            elif skipped is not None:
                skipped.append(de.path)
    return items


def _same_path(a: str, b: str) -> bool:
    return os.path.normcase(os.path.realpath(a)) == os.path.normcase(os.path.realpath(b))


@dataclass
class _Frame:
    path: str
    name: str
    pending: List[ScanItem]
    files: List[FileNode]
    built: List[DirNode] = field(default_factory=list)


def build_tree(path: str, name: str = "", *, exclude: Iterable[str] = (), skipped: Optional[List[str]] = None) -> DirNode:
    """Build a sorted, validated DirNode tree for the directory at `path`.

    Children are ordered by ordinal name comparison independent of the
    enumeration order. Every name is validated and every file size checked
    against the 32-bit limit here, before any layout or output happens.
    """
    excluded = [os.path.abspath(p) for p in exclude]
    stack = [_open_frame(path, name, excluded, skipped)]
    result: Optional[DirNode] = None
    while stack:
        frame = stack[-1]
        if frame.pending:
            item = frame.pending.pop()
            stack.append(_open_frame(item.path, item.name, excluded, skipped))
            continue
        stack.pop()
        node = DirNode(frame.name, frame.path, tuple(frame.built), tuple(frame.files))
        if stack:
            stack[-1].built.append(node)
        else:
            result = node
    assert result is not None
    return result


def _open_frame(path: str, name: str, excluded: List[str], skipped: Optional[List[str]]) -> _Frame:
    children = [
        item for item in list_children(path, skipped)
        if not any(_same_path(item.path, ex) for ex in excluded)
    ]
    for item in children:
        validate_name(item.name)
    # names are ASCII at this point, so str order is byte order
    children.sort(key=lambda it: it.name.encode("ascii"))
    files: List[FileNode] = []
    dirs: List[ScanItem] = []
    for item in children:
        if item.kind == "dir":
            dirs.append(item)
            continue
        if item.size > U32_MAX:
            raise FormatLimitError("file", f"File '{item.path}' exceeds 4GB ({item.size} bytes).")
        files.append(FileNode(item.name, item.path, item.size))
    # popped from the end, so keep it reversed
    dirs.reverse()
    return _Frame(path=path, name=name, pending=dirs, files=files)


def scan_directory(path: str, *, exclude: Iterable[str] = ()) -> ScanResult:
    if not os.path.isdir(path):
        raise NotADirectoryError(f"Not a directory: {path}")
    skipped: List[str] = []
    root = build_tree(os.path.abspath(path), "", exclude=exclude, skipped=skipped)
    return ScanResult(root=root, skipped=skipped)
