"""Local side effects: writing downloads and copying to the clipboard."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Optional

from .errors import ClipboardError, LocalIOError

logger = logging.getLogger(__name__)


def write_local_file(
    name: str, content: bytes, directory: Optional[Path] = None
) -> Path:
    """Create or overwrite ``name`` in ``directory`` (the working directory by default)."""
    base = Path(directory) if directory is not None else Path.cwd()
    leaf = Path(name).name
    if not leaf or leaf in {".", ".."}:
        raise LocalIOError(f"invalid file name: {name!r}")
    destination = base / leaf
    try:
        destination.write_bytes(content)
    except OSError as exc:
        raise LocalIOError(f"cannot write {destination}: {exc}") from exc
    return destination


def clipboard_commands() -> list[list[str]]:
    if sys.platform == "darwin":
        return [["pbcopy"]]
    if os.name == "nt":
        return [["clip"]]
    return [
        ["wl-copy"],
        ["xclip", "-selection", "clipboard"],
        ["xsel", "--clipboard", "--input"],
    ]


def copy_to_clipboard(text: str) -> None:
    if not text:
        raise ClipboardError("nothing to copy")
    tried: list[str] = []
    for command in clipboard_commands():
        if shutil.which(command[0]) is None:
            continue
        tried.append(command[0])
        try:
            proc = subprocess.run(
                command,
                input=text,
                text=True,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except OSError as exc:
            logger.warning("clipboard command %s failed: %s", command[0], exc)
            continue
        if proc.returncode == 0:
            return
        logger.warning(
            "clipboard command %s exited with %s", command[0], proc.returncode
        )
    if not tried:
        raise ClipboardError("no clipboard command available")
    raise ClipboardError(f"clipboard copy failed ({', '.join(tried)})")
