"""
paktool: PACK archive tooling plus the .hse byte obfuscation.

Features:

- Two-pass layout of directory tables and file data at fixed 32-bit offsets,
  checked against the 4GB format limits before anything is written.
- 40-byte directory entries (32-byte ASCII name, offset, info), little-endian.
- Extraction that validates every destination against the output root before
  writing, then copies files in archive order.
- Streaming, self-inverse byte negation used for both "encrypt" and "decrypt".

See paktool.writer/paktool.reader for the programmatic API and paktool.cli for
the command line (pack, extract, encrypt, decrypt, list, info, verify).
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "table",
    "layout",
    "writer",
    "reader",
    "transform",
]
