"""Small helpers for reading kernel-exposed files and running helper tools."""

from __future__ import annotations

import os
import signal
import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

# Whitespace as understood by the C locale's isspace().
_C_WHITESPACE = " \t\n\v\f\r"

_FIRST_LINE_LIMIT = 4095
_DEFAULT_TEXT_LIMIT = 64 * 1024
_EXEC_NOT_FOUND = 127


@dataclass
class ExecResult:
    """Outcome of running an external program.

    ``exit_code`` is -1 when the program could not be started at all, 127 when
    it was not found or not executable, and 128 + signal number when it was
    killed by a signal.
    """

    exit_code: int = -1
    stdout: str = ""
    stderr: str = ""


def trim(text: str) -> str:
    """Strip leading and trailing ASCII whitespace."""
    return text.strip(_C_WHITESPACE)


def contains_icase(haystack: str, needle: str) -> bool:
    """Return True if ``needle`` occurs in ``haystack``, ignoring case."""
    return needle.lower() in haystack.lower()


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def read_text(path: str | os.PathLike[str], max_bytes: int = _DEFAULT_TEXT_LIMIT) -> Optional[str]:
    """Read at most ``max_bytes`` bytes of a file as text, or None if it cannot be opened."""
    try:
        with open(path, "rb") as handle:
            data = handle.read(max_bytes)
    except OSError:
        return None
    return _decode(data)


def read_first_line(path: str | os.PathLike[str]) -> Optional[str]:
    """Return the trimmed first line of a file.

    Returns None when the file cannot be opened or is empty.
    """
    try:
        with open(path, "rb") as handle:
            data = handle.read(_FIRST_LINE_LIMIT)
    except OSError:
        return None
    if not data:
        return None
    line, _, _ = data.partition(b"\n")
    return trim(_decode(line))


def read_all(path: str | os.PathLike[str]) -> Optional[str]:
    """Return the whole content of a file, or None if it cannot be read."""
    try:
        with open(path, "rb") as handle:
            data = handle.read()
    except OSError:
        return None
    return _decode(data)


def path_exists(path: str | os.PathLike[str]) -> bool:
    """Return True if something exists at ``path``."""
    return os.path.exists(path)


def _exit_code(returncode: int) -> int:
    if returncode < 0:
        return 128 - returncode
    return returncode


def exec_capture(argv: Sequence[str], timeout: Optional[float] = None) -> ExecResult:
    """Run ``argv`` without a shell, capturing stdout and stderr.

    If ``timeout`` seconds pass before the program ends, it is killed and the
    output gathered so far is returned.
    """
    if not argv:
        return ExecResult()

    try:
        process = subprocess.Popen(
            list(argv),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError, NotADirectoryError):
        return ExecResult(exit_code=_EXEC_NOT_FOUND)
    except OSError:
        return ExecResult()

    with process:
        try:
            out, err = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            out, err = process.communicate()
            code = process.returncode
            if code is None or code >= 0:
                code = -int(getattr(signal, "SIGKILL", 9))
            return ExecResult(_exit_code(code), _decode(out or b""), _decode(err or b""))

    return ExecResult(_exit_code(process.returncode), _decode(out), _decode(err))