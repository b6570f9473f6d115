from __future__ import annotations

import os
import struct
import time
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, List, Optional, Tuple

from . import bufpool
from .constants import ARCHIVE_MAGIC, DEFAULT_CHUNK_SIZE
from .errors import SourceChangedError
from .layout import LayoutPlan, file_offsets, iter_preorder, plan_layout
from .pathutil import arc_join
from .scan import DirNode, FileNode, scan_directory
from .table import DirEntry, FileEntry, encode_table


# Header (fixed 8 bytes)
# struct: <4s I
#  - magic[4] "PACK"
#  - data base offset u32
_HEADER_STRUCT = struct.Struct("<4sI")


def pack_header(data_base: int) -> bytes:
    return _HEADER_STRUCT.pack(ARCHIVE_MAGIC, data_base)


@dataclass
class PackSummary:
    archive: str
    files: int = 0
    dirs: int = 0
    table_bytes: int = 0
    data_bytes: int = 0
    archive_bytes: int = 0
    elapsed: float = 0.0
    skipped: List[str] = field(default_factory=list)


class ArchiveWriter:
    """Writes a tree to disk following a precomputed LayoutPlan.

    Phases run strictly in order: header, every directory table in
    pre-order, then every directory's file data in the same pre-order.
    """

    def __init__(self, out_path: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.out_path = out_path
        self.chunk_size = chunk_size
        self.f: Optional[BinaryIO] = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        if self.f is not None:
            return
        parent = os.path.dirname(os.path.abspath(self.out_path))
        os.makedirs(parent, exist_ok=True)
        self.f = open(self.out_path, "wb")

    def close(self):
        if self.f is not None:
            self.f.close()
            self.f = None

    def write(
        self,
        plan: LayoutPlan,
        *,
        on_file: Optional[Callable[[str, FileNode], None]] = None,
    ) -> int:
        """Write the whole archive for `plan`. Returns the archive length."""
        if self.f is None:
            self.open()
        assert self.f is not None
        self.f.write(pack_header(plan.data_base))
        self._write_tables(plan)
        self._write_data(plan, on_file)
        self.f.flush()
        return self.f.tell()

    def _write_tables(self, plan: LayoutPlan) -> None:
        assert self.f is not None
        for node in iter_preorder(plan.root):
            expected = plan.placement(node).table_offset
            if self.f.tell() != expected:
                raise RuntimeError(f"Table for '{node.source_path}' at {self.f.tell()}, layout expects {expected}")
            subdirs = []
            for sub in node.subdirs:
                p = plan.placement(sub)
                subdirs.append(DirEntry(sub.name, p.table_offset, p.data_offset))
            files = [
                FileEntry(fn.name, rel, fn.size)
                for fn, rel in zip(node.files, file_offsets(node))
            ]
            self.f.write(encode_table(subdirs, files))
        if self.f.tell() != plan.data_base:
            raise RuntimeError(f"Table region ends at {self.f.tell()}, layout expects {plan.data_base}")

    def _write_data(self, plan: LayoutPlan, on_file: Optional[Callable[[str, FileNode], None]]) -> None:
        assert self.f is not None
        paths = {plan.root: ""}
        for node in iter_preorder(plan.root):
            here = paths[node]
            for sub in node.subdirs:
                paths[sub] = arc_join(here, sub.name)
            expected = plan.placement(node).data_offset
            if self.f.tell() != expected:
                raise RuntimeError(f"Data for '{node.source_path}' at {self.f.tell()}, layout expects {expected}")
            for fn in node.files:
                if on_file:
                    on_file(arc_join(here, fn.name), fn)
                self._copy_file(fn)

    def _copy_file(self, fn: FileNode) -> None:
        assert self.f is not None
        remaining = fn.size
        with bufpool.borrow(self.chunk_size) as buf, open(fn.source_path, "rb") as src:
            view = memoryview(buf)
            try:
                while remaining > 0:
                    n = src.readinto(view[: min(remaining, len(view))])
                    if not n:
                        raise SourceChangedError(
                            f"File '{fn.source_path}' shrank while packing ({fn.size - remaining} of {fn.size} bytes read)"
                        )
                    self.f.write(view[:n])
                    remaining -= n
                if src.read(1):
                    raise SourceChangedError(f"File '{fn.source_path}' grew while packing (expected {fn.size} bytes)")
            finally:
                view.release()


def count_nodes(root: DirNode) -> Tuple[int, int]:
    dirs = files = 0
    for node in iter_preorder(root):
        dirs += 1
        files += len(node.files)
    return dirs - 1, files


def pack_tree(
    root: DirNode,
    output: str,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    on_file: Optional[Callable[[str, FileNode], None]] = None,
) -> Tuple[LayoutPlan, int]:
    """Lay out an already scanned tree, then write it to `output`."""
    plan = plan_layout(root)
    with ArchiveWriter(output, chunk_size=chunk_size) as w:
        total = w.write(plan, on_file=on_file)
    return plan, total


def pack_directory(
    input_dir: str,
    output: str,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    on_file: Optional[Callable[[str, FileNode], None]] = None,
) -> PackSummary:
    """Pack `input_dir` into the archive `output`.

    Names, file sizes and offsets are all checked before `output` is
    created, so InvalidNameError/NameTooLongError/FormatLimitError leave
    no file behind. I/O errors during the write phase may leave a partial
    archive in place.
    """
    t0 = time.time()
    scan = scan_directory(input_dir, exclude=[output])
    plan, total = pack_tree(scan.root, output, chunk_size=chunk_size, on_file=on_file)
    n_dirs, n_files = count_nodes(scan.root)
    return PackSummary(
        archive=os.path.abspath(output),
        files=n_files,
        dirs=n_dirs,
        table_bytes=plan.table_bytes,
        data_bytes=plan.data_bytes,
        archive_bytes=total,
        elapsed=max(0.000001, time.time() - t0),
        skipped=scan.skipped,
    )
