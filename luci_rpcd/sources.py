"""Access to the live files and commands the handlers read from.

Failures to open a source are raised as ``RpcError`` carrying the
classified status; nothing here retries.
"""
from __future__ import annotations

from collections.abc import Sequence
import logging
import os
from pathlib import Path
import subprocess
import tempfile
import threading

from luci_rpcd.errors import RpcError
from luci_rpcd.logging_utils import TRACE_LEVEL
from luci_rpcd.logread import LogBlob, read_tail

logger = logging.getLogger(__name__)


def read_lines(path: str | Path) -> list[str]:
    try:
        with open(path, encoding="utf-8", errors="replace") as handle:
            return handle.readlines()
    except OSError as exc:
        logger.debug("Failed to read %s: %s", path, exc)
        raise RpcError.from_os_error(exc) from exc


def read_lines_optional(path: str | Path) -> list[str] | None:
    """Like ``read_lines`` but a missing file yields ``None``."""
    try:
        return read_lines(path)
    except RpcError as exc:
        if isinstance(exc.__cause__, FileNotFoundError):
            return None
        raise


def read_text_optional(path: str | Path) -> str | None:
    try:
        return Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError:
        logger.debug("Optional source %s not readable.", path)
        return None


def read_file_tail(path: str | Path) -> LogBlob:
    try:
        with open(path, "rb") as handle:
            size = os.fstat(handle.fileno()).st_size
            return read_tail(handle, size, source_size=size)
    except OSError as exc:
        logger.debug("Failed to read log file %s: %s", path, exc)
        raise RpcError.from_os_error(exc) from exc


def command_lines(command: Sequence[str]) -> list[str]:
    """Run a command and return its standard output split into lines."""
    try:
        with subprocess.Popen(
            list(command),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            errors="replace",
        ) as proc:
            lines = proc.stdout.readlines()
    except OSError as exc:
        logger.debug("Command failed to start: %s", " ".join(command))
        raise RpcError.from_os_error(exc) from exc
    if proc.returncode:
        logger.debug("Command failed (%s): %s", proc.returncode, " ".join(command))
    logger.log(TRACE_LEVEL, "stdout: %s", "".join(lines).strip())
    return lines


def command_tail(command: Sequence[str], requested_size: int) -> LogBlob:
    """Run a command and keep the tail of its output."""
    try:
        with subprocess.Popen(
            list(command),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
        ) as proc:
            # Output is drained to EOF; only the newest bytes are kept.
            return read_tail(proc.stdout, requested_size)
    except OSError as exc:
        logger.debug("Command failed to start: %s", " ".join(command))
        raise RpcError.from_os_error(exc) from exc


def spawn_detached(command: Sequence[str]) -> int:
    """Start a command in its own session with its standard streams on /dev/null."""
    try:
        proc = subprocess.Popen(
            list(command),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            cwd="/",
            close_fds=True,
            start_new_session=True,
        )
    except OSError as exc:
        logger.debug("Failed to spawn %s: %s", " ".join(command), exc)
        raise RpcError.from_os_error(exc) from exc
    # Reap the child in the background; the caller does not wait for it.
    threading.Thread(target=proc.wait, name=f"reap-{proc.pid}", daemon=True).start()
    return proc.pid


def write_atomic(path: str | Path, content: str, default_mode: int = 0o600) -> None:
    """Replace ``path`` with ``content`` so readers never see a partial file."""
    target = Path(path)
    try:
        mode = target.stat().st_mode & 0o7777
    except FileNotFoundError:
        mode = default_mode
    except OSError as exc:
        raise RpcError.from_os_error(exc) from exc

    try:
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
    except OSError as exc:
        raise RpcError.from_os_error(exc) from exc

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, target)
    except OSError as exc:
        Path(tmp_name).unlink(missing_ok=True)
        logger.debug("Failed to write %s: %s", target, exc)
        raise RpcError.from_os_error(exc) from exc
