import os
import stat
import subprocess
import tempfile
import time
import unittest
from pathlib import Path
from unittest.mock import patch

from lazybucket.effects import clipboard_commands, copy_to_clipboard, write_local_file
from lazybucket.errors import ClipboardError, LocalIOError


class TestWriteLocalFile(unittest.TestCase):
    def test_writes_and_overwrites(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = write_local_file("readme.txt", b"first", Path(temp_dir))
            self.assertEqual(path, Path(temp_dir) / "readme.txt")
            write_local_file("readme.txt", b"second", Path(temp_dir))
            self.assertEqual(path.read_bytes(), b"second")

    def test_uses_leaf_name_only(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = write_local_file("logs/app.log", b"x", Path(temp_dir))
            self.assertEqual(path, Path(temp_dir) / "app.log")

    def test_rejects_empty_name(self) -> None:
        with self.assertRaises(LocalIOError):
            write_local_file("", b"x")
        with self.assertRaises(LocalIOError):
            write_local_file("..", b"x")

    def test_missing_directory(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            with self.assertRaises(LocalIOError):
                write_local_file("a.txt", b"x", Path(temp_dir) / "missing")


class TestClipboard(unittest.TestCase):
    def test_linux_commands(self) -> None:
        with patch("lazybucket.effects.sys.platform", "linux"), patch(
            "lazybucket.effects.os.name", "posix"
        ):
            commands = clipboard_commands()
        self.assertEqual(commands[0], ["wl-copy"])
        self.assertIn(["xclip", "-selection", "clipboard"], commands)

    def test_darwin_uses_pbcopy(self) -> None:
        with patch("lazybucket.effects.sys.platform", "darwin"):
            self.assertEqual(clipboard_commands(), [["pbcopy"]])

    def test_copy_uses_first_available_command(self) -> None:
        completed = subprocess.CompletedProcess(["xclip"], 0)
        with patch(
            "lazybucket.effects.clipboard_commands",
            return_value=[["wl-copy"], ["xclip", "-selection", "clipboard"]],
        ), patch(
            "lazybucket.effects.shutil.which",
            side_effect=lambda name: "/usr/bin/xclip" if name == "xclip" else None,
        ), patch(
            "lazybucket.effects.subprocess.run", return_value=completed
        ) as run:
            copy_to_clipboard("s3://alpha/readme.txt")

        run.assert_called_once()
        args, kwargs = run.call_args
        self.assertEqual(args[0], ["xclip", "-selection", "clipboard"])
        self.assertEqual(kwargs["input"], "s3://alpha/readme.txt")

    def test_no_command_available(self) -> None:
        with patch("lazybucket.effects.shutil.which", return_value=None):
            with self.assertRaises(ClipboardError) as ctx:
                copy_to_clipboard("s3://alpha/readme.txt")
        self.assertIn("no clipboard command", str(ctx.exception))

    def test_failed_command(self) -> None:
        failed = subprocess.CompletedProcess(["pbcopy"], 1)
        with patch(
            "lazybucket.effects.clipboard_commands", return_value=[["pbcopy"]]
        ), patch(
            "lazybucket.effects.shutil.which", return_value="/usr/bin/pbcopy"
        ), patch(
            "lazybucket.effects.subprocess.run", return_value=failed
        ):
            with self.assertRaises(ClipboardError) as ctx:
                copy_to_clipboard("s3://alpha/readme.txt")
        self.assertIn("pbcopy", str(ctx.exception))

    @unittest.skipUnless(os.name == "posix", "needs a POSIX shell")
    def test_returns_while_clipboard_owner_keeps_running(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            script = Path(temp_dir) / "xclip"
            script.write_text("#!/bin/sh\ncat >/dev/null\n(sleep 5) &\nexit 0\n")
            script.chmod(script.stat().st_mode | stat.S_IEXEC)
            with patch(
                "lazybucket.effects.clipboard_commands", return_value=[[str(script)]]
            ):
                started = time.monotonic()
                copy_to_clipboard("s3://alpha/readme.txt")
                elapsed = time.monotonic() - started
        self.assertLess(elapsed, 2.0)

    def test_empty_text(self) -> None:
        with self.assertRaises(ClipboardError):
            copy_to_clipboard("")


if __name__ == "__main__":
    unittest.main()
