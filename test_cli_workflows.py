from __future__ import annotations

import os
import struct
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from typing import Dict

from paktool.constants import ARCHIVE_MAGIC, HEADER_SIZE
from paktool.table import FileEntry, encode_table


def _build_fixture_tree(root: Path) -> Dict[str, bytes]:
    files: Dict[str, bytes] = {}
    (root / "docs" / "notes").mkdir(parents=True)
    content = b"hello world\n" * 20
    (root / "docs" / "readme.txt").write_bytes(content)
    files["docs/readme.txt"] = content

    bin_data = os.urandom(2048)
    (root / "docs" / "notes" / "binary.bin").write_bytes(bin_data)
    files["docs/notes/binary.bin"] = bin_data

    (root / "docs" / "notes" / "empty.txt").write_bytes(b"")
    files["docs/notes/empty.txt"] = b""

    (root / "top.dat").write_bytes(b"\x00\x01\x02")
    files["top.dat"] = b"\x00\x01\x02"
    return files


def _compare_trees(src: Path, dst: Path):
    for root_src, dirs_src, files_src in os.walk(src):
        rel = os.path.relpath(root_src, src)
        root_dst = os.path.join(dst, rel) if rel != "." else str(dst)
        assert os.path.isdir(root_dst), f"Missing directory: {root_dst}"
        dirs_dst = sorted(d for d in os.listdir(root_dst) if os.path.isdir(os.path.join(root_dst, d)))
        files_dst = sorted(f for f in os.listdir(root_dst) if os.path.isfile(os.path.join(root_dst, f)))
        assert dirs_dst == sorted(dirs_src), f"Directory mismatch under {root_src}: {dirs_dst} != {sorted(dirs_src)}"
        assert files_dst == sorted(files_src), f"File mismatch under {root_src}: {files_dst} != {sorted(files_src)}"
        for fname in files_src:
            with open(os.path.join(root_src, fname), "rb") as sf, open(os.path.join(root_dst, fname), "rb") as df:
                assert sf.read() == df.read(), f"File contents differ: {fname}"


class CLIIntegrationTests(unittest.TestCase):
    def run_cli(self, args, *, expect: int | None = 0, cwd: Path | None = None):
        cmd = [sys.executable, "-m", "paktool.cli"] + list(args)
        env = os.environ.copy()
        repo_root = Path(__file__).resolve().parent
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(repo_root) if not existing else f"{repo_root}{os.pathsep}{existing}"
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
            )
        return proc

    def test_pack_extract_roundtrip(self):
        tmp_src = tempfile.TemporaryDirectory()
        tmp_workspace = tempfile.TemporaryDirectory()
        self.addCleanup(tmp_src.cleanup)
        self.addCleanup(tmp_workspace.cleanup)

        src_root = Path(tmp_src.name)
        workspace = Path(tmp_workspace.name)
        _build_fixture_tree(src_root)

        archive = workspace / "archive.pak"
        pack_proc = self.run_cli(["pack", str(src_root), str(archive)])
        self.assertIn("packing: docs/readme.txt", pack_proc.stdout)
        self.assertIn("Done: 4 files, 2 dirs", pack_proc.stdout)

        verify_proc = self.run_cli(["verify", str(archive)])
        self.assertIn("OK", verify_proc.stdout)

        list_proc = self.run_cli(["list", str(archive)])
        listed = [line.split("\t")[2] for line in list_proc.stdout.splitlines()]
        self.assertEqual(listed, ["top.dat", "docs/readme.txt", "docs/notes/binary.bin", "docs/notes/empty.txt"])

        info_proc = self.run_cli(["info", str(archive)])
        self.assertIn("Files: 4", info_proc.stdout)
        self.assertIn("Directories: 2", info_proc.stdout)

        extract_dir = workspace / "extract"
        extract_proc = self.run_cli(["extract", str(archive), str(extract_dir), "--quiet"])
        self.assertNotIn("extracting:", extract_proc.stdout)
        self.assertIn("Done: extracted 4 files", extract_proc.stdout)
        _compare_trees(src_root, extract_dir)

    def test_default_output_paths(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "assets"
            src.mkdir()
            (src / "one.txt").write_text("1")
            self.run_cli(["pack", str(src)])
            archive = root / "assets.pak"
            self.assertTrue(archive.is_file())
            # default extraction target is the archive path minus its extension
            src_renamed = root / "original"
            src.rename(src_renamed)
            self.run_cli(["extract", str(archive)])
            self.assertEqual((root / "assets" / "one.txt").read_text(), "1")

    def test_encrypt_decrypt(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            png = root / "sprite.png"
            payload = os.urandom(1500)
            png.write_bytes(payload)
            enc = self.run_cli(["encrypt", str(png)])
            hse = root / "sprite.hse"
            self.assertIn(str(hse), enc.stdout)
            self.assertNotEqual(hse.read_bytes(), payload)
            restored = root / "restored.png"
            self.run_cli(["decrypt", str(hse), str(restored)])
            self.assertEqual(restored.read_bytes(), payload)
            # in place, twice, is the identity
            self.run_cli(["encrypt", str(restored), str(restored)])
            self.run_cli(["decrypt", str(restored), str(restored)])
            self.assertEqual(restored.read_bytes(), payload)

    def test_exit_statuses(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            bad_magic = root / "bad.pak"
            bad_magic.write_bytes(b"NOPE\x00\x00\x00\x00")
            proc = self.run_cli(["extract", str(bad_magic), str(root / "o1")], expect=3)
            self.assertIn("Error:", proc.stderr)

            src = root / "long"
            src.mkdir()
            (src / ("x" * 40)).write_text("x")
            self.run_cli(["pack", str(src), str(root / "long.pak")], expect=5)
            self.assertFalse((root / "long.pak").exists())

            table = encode_table([], [FileEntry("../up.txt", 0, 1)])
            evil = root / "evil.pak"
            evil.write_bytes(struct.pack("<4sI", ARCHIVE_MAGIC, HEADER_SIZE + len(table)) + table + b"!")
            self.run_cli(["extract", str(evil), str(root / "o2")], expect=7)
            self.assertFalse((root / "up.txt").exists())

            table = encode_table([], [FileEntry("big.bin", 0, 1000)])
            short = root / "short.pak"
            short.write_bytes(struct.pack("<4sI", ARCHIVE_MAGIC, HEADER_SIZE + len(table)) + table + b"tiny")
            self.run_cli(["extract", str(short), str(root / "o3")], expect=8)
            verify_proc = self.run_cli(["verify", str(short)], expect=1)
            self.assertIn("FAIL", verify_proc.stdout)

            self.run_cli(["extract", str(root / "missing.pak")], expect=9)
            self.run_cli(["bogus"], expect=2)

    def test_exists_fail(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            src = root / "src"
            src.mkdir()
            (src / "file.txt").write_text("alpha")
            archive = root / "a.pak"
            self.run_cli(["pack", str(src), str(archive)])
            out = root / "out"
            out.mkdir()
            (out / "file.txt").write_text("beta")
            self.run_cli(["extract", str(archive), str(out), "--exists", "fail"], expect=10)
            skip_proc = self.run_cli(["extract", str(archive), str(out), "--exists", "skip"])
            self.assertIn("skipped=1", skip_proc.stdout)
            self.assertEqual((out / "file.txt").read_text(), "beta")


if __name__ == "__main__":
    unittest.main()
