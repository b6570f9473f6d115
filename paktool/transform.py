from __future__ import annotations

import os
import tempfile
from typing import BinaryIO, Optional

from . import bufpool
from .constants import DEFAULT_CHUNK_SIZE, OBFUSCATED_EXT, PLAIN_EXT
from .pathutil import change_extension


def transform_byte(b: int) -> int:
    """Two's-complement negation of one byte; applying it twice is the identity."""
    return (0 - b) & 0xFF


# 256-entry table derived from the scalar definition; bytes.translate
# applies it over a whole chunk in C.
_NEGATE_TABLE = bytes(transform_byte(b) for b in range(256))


def transform_bytes(data: bytes) -> bytes:
    return data.translate(_NEGATE_TABLE)


def transform_stream(src: BinaryIO, dst: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """Copy `src` to `dst`, transforming every byte. Returns the byte count."""
    total = 0
    with bufpool.borrow(chunk_size) as buf:
        view = memoryview(buf)
        try:
            while True:
                n = src.readinto(view)
                if not n:
                    break
                view[:n] = view[:n].tobytes().translate(_NEGATE_TABLE)
                dst.write(view[:n])
                total += n
        finally:
            view.release()
    return total


def _same_file(a: str, b: str) -> bool:
    if os.path.exists(a) and os.path.exists(b):
        return os.path.samefile(a, b)
    return os.path.normcase(os.path.realpath(a)) == os.path.normcase(os.path.realpath(b))


def transform_file(src: str, dst: str, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """Apply the byte transform to the file at `src`, writing `dst`.

    When both name the same file the output goes to a temporary sibling
    which then replaces the original, so a failure never leaves a
    half-transformed file under the original name.
    """
    src = os.path.abspath(src)
    dst = os.path.abspath(dst)
    if _same_file(src, dst):
        # replace the file a symlink points at, not the link
        dst = os.path.realpath(dst)
        out_dir = os.path.dirname(dst)
        fd, tmp_path = tempfile.mkstemp(prefix=os.path.basename(dst) + ".", suffix=".tmp", dir=out_dir)
        try:
            with os.fdopen(fd, "wb") as outf, open(src, "rb") as inf:
                total = transform_stream(inf, outf, chunk_size)
            # mkstemp creates 0600; keep the original file's mode
            os.chmod(tmp_path, os.stat(src).st_mode & 0o7777)
            os.replace(tmp_path, dst)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        return total

    os.makedirs(os.path.dirname(dst) or ".", exist_ok=True)
    with open(src, "rb") as inf, open(dst, "wb") as outf:
        return transform_stream(inf, outf, chunk_size)


def encrypt_file(src: str, dst: Optional[str] = None, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Obfuscate `src` (default output: same path with the `.hse` extension)."""
    out = dst if dst else change_extension(src, OBFUSCATED_EXT)
    transform_file(src, out, chunk_size=chunk_size)
    return os.path.abspath(out)


def decrypt_file(src: str, dst: Optional[str] = None, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Reverse `encrypt_file` (default output: same path with the `.png` extension)."""
    out = dst if dst else change_extension(src, PLAIN_EXT)
    transform_file(src, out, chunk_size=chunk_size)
    return os.path.abspath(out)
