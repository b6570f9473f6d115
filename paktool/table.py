from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import BinaryIO, List, Sequence

from .constants import (
    ENTRY_SIZE,
    MAX_NAME_LENGTH,
    NAME_FIELD_SIZE,
    U32_MAX,
    table_size,
)
from .errors import InvalidNameError, NameTooLongError, TruncatedArchiveError


# Entry (fixed 40 bytes)
# struct: <32s I I
#  - name[32]  ASCII, zero padded
#  - offset u32
#  - info u32
_ENTRY_STRUCT = struct.Struct("<32sII")
_COUNT_STRUCT = struct.Struct("<I")


@dataclass
class TableEntry:
    """Raw on-wire entry; `offset`/`info` meaning depends on the table section."""

    name: str
    offset: int
    info: int


@dataclass
class DirEntry:
    name: str
    table_offset: int
    data_offset: int

    def to_table_entry(self) -> TableEntry:
        return TableEntry(self.name, self.table_offset, self.data_offset)


@dataclass
class FileEntry:
    name: str
    relative_offset: int
    size: int

    def to_table_entry(self) -> TableEntry:
        return TableEntry(self.name, self.relative_offset, self.size)


@dataclass
class DirectoryTable:
    subdirs: List[DirEntry] = field(default_factory=list)
    files: List[FileEntry] = field(default_factory=list)

    @property
    def size(self) -> int:
        return table_size(len(self.subdirs), len(self.files))


def validate_name(name: str) -> None:
    """Check that `name` can be stored in a 32-byte name field.

    Raises:
        InvalidNameError: empty, contains NUL or a character above 127.
        NameTooLongError: longer than 31 characters.
    """
    if not name:
        raise InvalidNameError("Entry name may not be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise NameTooLongError(
            f"Name '{name}' is too long ({len(name)} chars). Format limit is {MAX_NAME_LENGTH}."
        )
    for ch in name:
        if ord(ch) > 127:
            raise InvalidNameError(f"Name '{name}' contains non-ASCII characters, which are not supported.")
        if ch == "\x00":
            raise InvalidNameError(f"Name {name!r} contains a NUL byte")


def encode_entry(entry: TableEntry) -> bytes:
    validate_name(entry.name)
    for label, val in (("offset", entry.offset), ("info", entry.info)):
        if not 0 <= val <= U32_MAX:
            raise ValueError(f"{label} {val} does not fit in 32 bits")
    # struct zero-pads the name field
    return _ENTRY_STRUCT.pack(entry.name.encode("ascii"), entry.offset, entry.info)


def decode_entry(raw: bytes) -> TableEntry:
    if len(raw) != ENTRY_SIZE:
        raise ValueError(f"Table entry must be {ENTRY_SIZE} bytes, got {len(raw)}")
    name_field, offset, info = _ENTRY_STRUCT.unpack(raw)
    nul = name_field.find(b"\x00")
    if nul != -1:
        name_field = name_field[:nul]
    # latin-1 keeps whatever byte values a malformed archive carries
    return TableEntry(name_field.decode("latin-1"), offset, info)


def decode_dir_entry(raw: bytes) -> DirEntry:
    e = decode_entry(raw)
    return DirEntry(e.name, table_offset=e.offset, data_offset=e.info)


def decode_file_entry(raw: bytes) -> FileEntry:
    e = decode_entry(raw)
    return FileEntry(e.name, relative_offset=e.offset, size=e.info)


def encode_table(subdirs: Sequence[DirEntry], files: Sequence[FileEntry]) -> bytes:
    out = bytearray()
    out += _COUNT_STRUCT.pack(len(subdirs))
    for d in subdirs:
        out += encode_entry(d.to_table_entry())
    out += _COUNT_STRUCT.pack(len(files))
    for fe in files:
        out += encode_entry(fe.to_table_entry())
    return bytes(out)


def read_exact(f: BinaryIO, n: int, what: str = "data") -> bytes:
    b = f.read(n)
    if len(b) != n:
        raise TruncatedArchiveError(f"Unexpected end of archive while reading {what}")
    return b


def _read_count(f: BinaryIO, archive_size: int, what: str) -> int:
    (count,) = _COUNT_STRUCT.unpack(read_exact(f, _COUNT_STRUCT.size, f"{what} count"))
    # Refuse counts whose entries cannot possibly be present
    if f.tell() + count * ENTRY_SIZE > archive_size:
        raise TruncatedArchiveError(
            f"Directory table at offset {f.tell() - _COUNT_STRUCT.size} declares {count} {what} "
            f"entries, which runs past the end of the archive ({archive_size} bytes)"
        )
    return count


def read_table(f: BinaryIO, offset: int, archive_size: int) -> DirectoryTable:
    """Read the directory table located at absolute `offset`."""
    f.seek(offset)
    table = DirectoryTable()
    n_dirs = _read_count(f, archive_size, "subdirectory")
    raw = read_exact(f, n_dirs * ENTRY_SIZE, "subdirectory entries")
    for i in range(n_dirs):
        table.subdirs.append(decode_dir_entry(raw[i * ENTRY_SIZE : (i + 1) * ENTRY_SIZE]))
    n_files = _read_count(f, archive_size, "file")
    raw = read_exact(f, n_files * ENTRY_SIZE, "file entries")
    for i in range(n_files):
        table.files.append(decode_file_entry(raw[i * ENTRY_SIZE : (i + 1) * ENTRY_SIZE]))
    return table
