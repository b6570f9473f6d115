from __future__ import annotations

import io
import struct
import unittest

from paktool.constants import ENTRY_SIZE
from paktool.errors import InvalidNameError, NameTooLongError, TruncatedArchiveError
from paktool.table import (
    DirEntry,
    FileEntry,
    TableEntry,
    decode_dir_entry,
    decode_entry,
    decode_file_entry,
    encode_entry,
    encode_table,
    read_table,
    validate_name,
)


class TableCodecTests(unittest.TestCase):
    def test_entry_layout(self):
        raw = encode_entry(TableEntry("readme.txt", 0x01020304, 0xA0B0C0D0))
        self.assertEqual(len(raw), ENTRY_SIZE)
        self.assertEqual(raw[:10], b"readme.txt")
        self.assertEqual(raw[10:32], b"\x00" * 22)
        self.assertEqual(raw[32:36], bytes([4, 3, 2, 1]))
        self.assertEqual(raw[36:40], bytes([0xD0, 0xC0, 0xB0, 0xA0]))

    def test_decode_back(self):
        e = decode_entry(encode_entry(TableEntry("a", 7, 9)))
        self.assertEqual((e.name, e.offset, e.info), ("a", 7, 9))

    def test_name_boundary(self):
        ok = "n" * 31
        raw = encode_entry(TableEntry(ok, 0, 0))
        self.assertEqual(decode_entry(raw).name, ok)
        self.assertEqual(raw[31], 0)
        for bad in ("n" * 32, "n" * 40):
            with self.assertRaises(NameTooLongError):
                encode_entry(TableEntry(bad, 0, 0))

    def test_invalid_names(self):
        with self.assertRaises(InvalidNameError):
            validate_name("")
        with self.assertRaises(InvalidNameError):
            validate_name("café.txt")
        with self.assertRaises(InvalidNameError):
            validate_name("a\x00b")
        # NameTooLongError is an InvalidNameError too
        with self.assertRaises(InvalidNameError):
            validate_name("x" * 32)
        validate_name("plain-ASCII_name.1")

    def test_decode_without_terminator_uses_full_field(self):
        raw = b"B" * 32 + struct.pack("<II", 1, 2)
        self.assertEqual(decode_entry(raw).name, "B" * 32)

    def test_decode_keeps_non_ascii_bytes(self):
        raw = b"\xffx\x00garbage".ljust(32, b"\x00") + struct.pack("<II", 0, 0)
        self.assertEqual(decode_entry(raw).name, "\xffx")

    def test_decode_rejects_wrong_length(self):
        with self.assertRaises(ValueError):
            decode_entry(b"\x00" * 39)

    def test_tagged_variants(self):
        raw = encode_entry(TableEntry("sub", 100, 200))
        d = decode_dir_entry(raw)
        self.assertEqual((d.table_offset, d.data_offset), (100, 200))
        f = decode_file_entry(raw)
        self.assertEqual((f.relative_offset, f.size), (100, 200))

    def test_table_read_back(self):
        subdirs = [DirEntry("d1", 88, 300), DirEntry("d2", 128, 310)]
        files = [FileEntry("f1", 0, 10), FileEntry("f2", 10, 5)]
        blob = encode_table(subdirs, files)
        self.assertEqual(len(blob), 4 + 2 * 40 + 4 + 2 * 40)
        pad = b"\x00" * 8
        fh = io.BytesIO(pad + blob)
        table = read_table(fh, 8, len(pad) + len(blob))
        self.assertEqual(table.subdirs, subdirs)
        self.assertEqual(table.files, files)
        self.assertEqual(table.size, len(blob))

    def test_empty_table(self):
        blob = encode_table([], [])
        self.assertEqual(blob, b"\x00" * 8)
        table = read_table(io.BytesIO(blob), 0, len(blob))
        self.assertEqual((table.subdirs, table.files), ([], []))

    def test_oversized_count_is_truncation(self):
        blob = struct.pack("<I", 0xFFFFFFFF)
        with self.assertRaises(TruncatedArchiveError):
            read_table(io.BytesIO(blob), 0, len(blob))

    def test_short_table_is_truncation(self):
        blob = encode_table([], [FileEntry("f", 0, 1)])[:-5]
        with self.assertRaises(TruncatedArchiveError):
            read_table(io.BytesIO(blob), 0, len(blob) + 100)

    def test_offsets_must_fit_u32(self):
        with self.assertRaises(ValueError):
            encode_entry(TableEntry("a", 1 << 32, 0))
        with self.assertRaises(ValueError):
            encode_entry(TableEntry("a", 0, -1))


if __name__ == "__main__":
    unittest.main()
