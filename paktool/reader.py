from __future__ import annotations

import os
import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Iterator, List, Optional, Tuple, Union

from . import bufpool
from .constants import ARCHIVE_MAGIC, DEFAULT_CHUNK_SIZE, HEADER_SIZE
from .errors import DestinationExistsError, FormatError, TruncatedArchiveError
from .pathutil import arc_join, canonical_root, resolve_under
from .table import read_table


_HEADER_STRUCT = struct.Struct("<4sI")

EXISTS_POLICIES = ("overwrite", "skip", "fail")


@dataclass
class DirRecord:
    path: str  # archive-relative, '/' separated
    parts: Tuple[str, ...]
    table_offset: int
    data_offset: int
    dest: Optional[str] = None


@dataclass
class FileRecord:
    path: str
    parts: Tuple[str, ...]
    offset: int  # absolute archive offset
    size: int
    dest: Optional[str] = None  # filled in by plan_extraction


@dataclass
class ExtractionPlan:
    root: str
    dirs: List[DirRecord] = field(default_factory=list)
    files: List[FileRecord] = field(default_factory=list)


@dataclass
class ExtractSummary:
    root: str
    files: int = 0
    dirs: int = 0
    bytes: int = 0
    skipped: int = 0


class ArchiveReader:
    def __init__(self, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.path = path
        self.chunk_size = chunk_size
        self.f: Optional[BinaryIO] = None
        self.size: int = 0
        self.data_base: int = 0

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        if self.f is not None:
            return
        self.f = open(self.path, "rb")
        try:
            self.size = os.fstat(self.f.fileno()).st_size
            self.data_base = self.read_header()
        except BaseException:
            self.close()
            raise

    def close(self):
        if self.f is not None:
            self.f.close()
            self.f = None

    def read_header(self) -> int:
        assert self.f is not None
        self.f.seek(0)
        raw = self.f.read(HEADER_SIZE)
        if len(raw) != HEADER_SIZE:
            raise FormatError("Invalid PACK header: file too short")
        magic, data_base = _HEADER_STRUCT.unpack(raw)
        if magic != ARCHIVE_MAGIC:
            raise FormatError("Invalid PACK header.")
        return data_base

    def walk(self) -> Iterator[Union[DirRecord, FileRecord]]:
        """Yield every directory (except the root) and file record.

        Offsets come straight from the tables; nothing is re-derived. A
        table reached a second time means the archive links back into
        itself and is rejected.
        """
        assert self.f is not None
        seen = set()
        stack: List[Tuple[int, int, Tuple[str, ...]]] = [(HEADER_SIZE, self.data_base, ())]
        while stack:
            table_offset, data_offset, parts = stack.pop()
            if table_offset in seen:
                raise FormatError(f"Directory table at offset {table_offset} is referenced more than once")
            seen.add(table_offset)
            table = read_table(self.f, table_offset, self.size)
            here = "/".join(parts)
            for fe in table.files:
                yield FileRecord(
                    path=arc_join(here, fe.name),
                    parts=parts + (fe.name,),
                    offset=data_offset + fe.relative_offset,
                    size=fe.size,
                )
            children = []
            for de in table.subdirs:
                sub_parts = parts + (de.name,)
                rec = DirRecord(arc_join(here, de.name), sub_parts, de.table_offset, de.data_offset)
                yield rec
                children.append((de.table_offset, de.data_offset, sub_parts))
            stack.extend(reversed(children))

    def list(self) -> List[FileRecord]:
        files = [r for r in self.walk() if isinstance(r, FileRecord)]
        files.sort(key=lambda r: r.offset)
        return files

    def list_dirs(self) -> List[DirRecord]:
        return [r for r in self.walk() if isinstance(r, DirRecord)]

    def verify(self) -> List[str]:
        """Return structural problems; an empty list means the archive looks sound."""
        problems: List[str] = []
        if self.data_base < HEADER_SIZE or self.data_base > self.size:
            problems.append(f"data base offset {self.data_base} outside archive ({self.size} bytes)")
        try:
            records = list(self.walk())
        except (FormatError, TruncatedArchiveError) as exc:
            problems.append(str(exc))
            return problems
        for rec in records:
            if isinstance(rec, DirRecord):
                if rec.table_offset < HEADER_SIZE or rec.table_offset >= self.data_base:
                    problems.append(f"{rec.path}/: table offset {rec.table_offset} outside table region")
                continue
            if rec.offset < self.data_base:
                problems.append(f"{rec.path}: data offset {rec.offset} inside table region")
            if rec.offset + rec.size > self.size:
                problems.append(f"{rec.path}: {rec.size} bytes at {rec.offset} run past end of archive")
        return problems

    def plan_extraction(self, outdir: str) -> ExtractionPlan:
        """Collect every record and resolve its destination under `outdir`.

        Files are ordered by archive offset so the copy reads forward. Every
        destination is checked before returning, so a PathEscapeError
        means nothing has been written yet.
        """
        plan = ExtractionPlan(root=canonical_root(outdir))
        for rec in self.walk():
            if isinstance(rec, DirRecord):
                plan.dirs.append(rec)
            else:
                plan.files.append(rec)
        plan.files.sort(key=lambda r: r.offset)
        for d in plan.dirs:
            d.dest = resolve_under(plan.root, d.parts)
        for rec in plan.files:
            rec.dest = resolve_under(plan.root, rec.parts)
        return plan

    def extract_all(
        self,
        outdir: str,
        *,
        exists: str = "overwrite",
        on_file: Optional[Callable[[int, int, FileRecord], None]] = None,
    ) -> ExtractSummary:
        if exists not in EXISTS_POLICIES:
            raise ValueError(f"Unknown exists policy: {exists}")
        plan = self.plan_extraction(outdir)
        if exists == "fail":
            for rec in plan.files:
                if os.path.lexists(rec.dest):
                    raise DestinationExistsError(f"Destination exists: {rec.dest}")

        summary = ExtractSummary(root=plan.root)
        os.makedirs(plan.root, exist_ok=True)
        for d in plan.dirs:
            assert d.dest is not None
            os.makedirs(d.dest, exist_ok=True)
            summary.dirs += 1

        created = set()
        total = len(plan.files)
        with bufpool.borrow(self.chunk_size) as buf:
            for i, rec in enumerate(plan.files, 1):
                assert rec.dest is not None
                if exists == "skip" and os.path.lexists(rec.dest):
                    summary.skipped += 1
                    continue
                parent = os.path.dirname(rec.dest)
                if parent not in created:
                    os.makedirs(parent, exist_ok=True)
                    created.add(parent)
                if on_file:
                    on_file(i, total, rec)
                self.extract(rec, rec.dest, buf)
                summary.files += 1
                summary.bytes += rec.size
        return summary

    def extract(self, rec: FileRecord, out_path: str, buf: Optional[bytearray] = None) -> None:
        """Copy exactly `rec.size` bytes at `rec.offset` into `out_path`."""
        if buf is None:
            with bufpool.borrow(self.chunk_size) as tmp:
                return self.extract(rec, out_path, tmp)
        assert self.f is not None
        if self.f.tell() != rec.offset:
            self.f.seek(rec.offset)
        remaining = rec.size
        view = memoryview(buf)
        try:
            with open(out_path, "wb") as out:
                while remaining > 0:
                    n = self.f.readinto(view[: min(remaining, len(view))])
                    if not n:
                        raise TruncatedArchiveError(
                            f"Unexpected end of archive in '{rec.path}' "
                            f"({rec.size - remaining} of {rec.size} bytes at offset {rec.offset})"
                        )
                    out.write(view[:n])
                    remaining -= n
        finally:
            view.release()


def extract_archive(archive: str, outdir: str, **kwargs) -> ExtractSummary:
    with ArchiveReader(archive) as r:
        return r.extract_all(outdir, **kwargs)
