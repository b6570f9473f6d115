from __future__ import annotations

import argparse
import sys
import time
from typing import List, Optional

from paktool.constants import HEADER_SIZE
from paktool.errors import EXIT_OK, EXIT_OS_ERROR, PakError
from paktool.pathutil import default_archive_path, default_extract_dir
from paktool.reader import EXISTS_POLICIES, ArchiveReader, FileRecord
from paktool.scan import FileNode
from paktool.transform import decrypt_file, encrypt_file
from paktool.writer import pack_directory


def cmd_pack(input_dir: str, output: Optional[str] = None, *, quiet: bool = False) -> bool:
    """Pack a directory into a .pak archive.

    Args:
        input_dir: Directory whose contents become the archive root.
        output: Archive path; defaults to `<input_dir>.pak`.
        quiet: Suppress per-file lines.
    """
    out = output or default_archive_path(input_dir)
    print(f"Packing {input_dir} into {out}")

    def _progress(path: str, node: FileNode) -> None:
        if not quiet:
            print(f"   packing: {path} ({node.size} bytes)")

    summary = pack_directory(input_dir, out, on_file=_progress)
    for skipped in summary.skipped:
        print(f"Warning: skipped {skipped} (not a regular file or directory)", file=sys.stderr)
    mib = summary.data_bytes / (1024.0 * 1024.0)
    print(
        f"Done: {summary.files} files, {summary.dirs} dirs; "
        f"tables={summary.table_bytes} B data={mib:.2f} MiB; "
        f"{mib / summary.elapsed:.2f} MiB/s"
    )
    return True


def cmd_extract(archive: str, output: Optional[str] = None, *, exists: str = "overwrite", quiet: bool = False) -> bool:
    """Extract every file of an archive below `output`.

    Args:
        archive: Path to a .pak file.
        output: Destination directory; defaults to the archive path without extension.
        exists: overwrite, skip or fail when a destination file is already present.
        quiet: Suppress per-file lines.
    """
    outdir = output or default_extract_dir(archive)
    print(f"Extracting files from {archive} to {outdir}")

    def _progress(i: int, total: int, rec: FileRecord) -> None:
        if not quiet:
            print(f"extracting: {i:>4}/{total:<4} {rec.path}")

    t0 = time.time()
    with ArchiveReader(archive) as r:
        summary = r.extract_all(outdir, exists=exists, on_file=_progress)
    dt = max(0.000001, time.time() - t0)
    mib = summary.bytes / (1024.0 * 1024.0)
    print(
        f"Done: extracted {summary.files} files ({mib:.2f} MiB) in {dt:.1f}s; "
        f"{mib / dt:.2f} MiB/s; dirs={summary.dirs} skipped={summary.skipped}"
    )
    return True


def cmd_encrypt(input_path: str, output: Optional[str] = None) -> bool:
    out = encrypt_file(input_path, output)
    print(f"Encrypted {input_path} -> {out}")
    return True


def cmd_decrypt(input_path: str, output: Optional[str] = None) -> bool:
    out = decrypt_file(input_path, output)
    print(f"Decrypted {input_path} -> {out}")
    return True


def cmd_list(archive: str) -> bool:
    """List archive files in data order: size, absolute offset, path."""
    with ArchiveReader(archive) as r:
        for rec in r.list():
            print(f"{rec.size}\t{rec.offset}\t{rec.path}")
    return True


def cmd_info(archive: str) -> bool:
    with ArchiveReader(archive) as r:
        files = r.list()
        dirs = r.list_dirs()
        print(f"Archive: {archive}")
        print(f"  Size: {r.size}")
        print(f"  Data base offset: {r.data_base}")
        print(f"  Table bytes: {r.data_base - HEADER_SIZE}")
        print(f"  Directories: {len(dirs)}")
        print(f"  Files: {len(files)}")
        print(f"  Data bytes: {sum(f.size for f in files)}")
    return True


def cmd_verify(archive: str) -> bool:
    """Check every table and file extent against the archive bounds.

    Prints:
        "OK" when sound, otherwise one line per problem followed by "FAIL".
    """
    with ArchiveReader(archive) as r:
        problems = r.verify()
    for p in problems:
        print(f"  {p}")
    print("OK" if not problems else "FAIL")
    return not problems


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="paktool",
        description="PACK archive and .hse obfuscation tool",
        epilog="Exit status: 0 ok, 1 verify failed, 2 usage error, 3 bad format, 4 invalid name, 5 name too long, "
        "6 4GB format limit, 7 path escape, 8 truncated archive, 9 filesystem error, "
        "10 destination exists, 11 source changed while packing.",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_pack = sub.add_parser("pack", help="Pack a directory into an archive")
    ap_pack.add_argument("input", help="Input directory")
    ap_pack.add_argument("output", nargs="?", help="Output .pak path (default: <input>.pak)")
    ap_pack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_extract = sub.add_parser("extract", help="Extract an archive into a directory")
    ap_extract.add_argument("input", help="Archive path")
    ap_extract.add_argument("output", nargs="?", help="Output directory (default: archive path without extension)")
    ap_extract.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")
    ap_extract.add_argument(
        "--exists",
        choices=list(EXISTS_POLICIES),
        default="overwrite",
        help=(
            "What to do if a destination file exists: overwrite (default), "
            "skip (leave it and do not extract that entry), or fail (abort before writing anything)"
        ),
    )

    ap_encrypt = sub.add_parser("encrypt", help="Obfuscate a file (e.g. .png -> .hse)")
    ap_encrypt.add_argument("input", help="Input file")
    ap_encrypt.add_argument("output", nargs="?", help="Output path (default: input with .hse extension); an explicit path is used as given, no extension is forced")

    ap_decrypt = sub.add_parser("decrypt", help="Restore an obfuscated file (e.g. .hse -> .png)")
    ap_decrypt.add_argument("input", help="Input file")
    ap_decrypt.add_argument("output", nargs="?", help="Output path (default: input with .png extension); an explicit path is used as given, no extension is forced")

    ap_list = sub.add_parser("list", help="List archive contents")
    ap_list.add_argument("input", help="Archive path")

    ap_info = sub.add_parser("info", help="Show archive information")
    ap_info.add_argument("input", help="Archive path")

    ap_verify = sub.add_parser("verify", help="Check archive structure")
    ap_verify.add_argument("input", help="Archive path")

    args = ap.parse_args(argv)
    try:
        if args.cmd == "pack":
            cmd_pack(args.input, args.output, quiet=args.quiet)
        elif args.cmd == "extract":
            cmd_extract(args.input, args.output, exists=args.exists, quiet=args.quiet)
        elif args.cmd == "encrypt":
            cmd_encrypt(args.input, args.output)
        elif args.cmd == "decrypt":
            cmd_decrypt(args.input, args.output)
        elif args.cmd == "list":
            cmd_list(args.input)
        elif args.cmd == "info":
            cmd_info(args.input)
        elif args.cmd == "verify":
            ok = cmd_verify(args.input)
            sys.exit(EXIT_OK if ok else 1)
        else:
            raise RuntimeError("Unknown command")
    except PakError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(e.exit_code)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_OS_ERROR)
    except (ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
