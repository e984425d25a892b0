from __future__ import annotations

from dataclasses import dataclass
import io
import logging
from typing import BinaryIO

DEFAULT_LOGSIZE = 16 * 1024
MAX_LOGSIZE = 128 * 1024

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogBlob:
    data: bytes

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


def _read_exactly(source: BinaryIO, size: int) -> bytes:
    # Pipes may return short reads before EOF.
    chunks: list[bytes] = []
    remaining = size
    while remaining > 0:
        chunk = source.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _discard(source: BinaryIO, size: int) -> None:
    if source.seekable():
        source.seek(size, io.SEEK_CUR)
        return
    while size > 0:
        chunk = _read_exactly(source, min(size, MAX_LOGSIZE))
        if not chunk:
            return
        size -= len(chunk)


def _read_window(source: BinaryIO, window: int) -> bytes:
    # Consume to EOF keeping only the newest ``window`` bytes.
    buffer = bytearray()
    while True:
        chunk = source.read(MAX_LOGSIZE)
        if not chunk:
            break
        buffer += chunk
        if len(buffer) > window:
            del buffer[:-window]
    return bytes(buffer)


def read_tail(
    source: BinaryIO, requested_size: int = 0, source_size: int | None = None
) -> LogBlob:
    """Read the trailing part of a log without loading all of it.

    ``source`` is consumed strictly forward so a live process pipe works as
    well as a file. A ``requested_size`` of 0 selects ``DEFAULT_LOGSIZE`` and
    at most ``MAX_LOGSIZE`` bytes are ever returned.

    When ``source_size`` is known the surplus in front of the tail is skipped
    and sizes above the cap are discarded in cap sized chunks until only the
    final chunk is left. Without it the stream is read to EOF through a
    rolling window of the newest bytes.
    """
    size = requested_size if requested_size > 0 else DEFAULT_LOGSIZE
    if source_size is None:
        data = _read_window(source, min(size, MAX_LOGSIZE))
    else:
        if source_size > size:
            _discard(source, source_size - size)
        while size > MAX_LOGSIZE:
            chunk = size % MAX_LOGSIZE or MAX_LOGSIZE
            _discard(source, chunk)
            size -= chunk
        data = _read_exactly(source, size)

    logger.debug("Read %s log bytes (requested %s).", len(data), requested_size)
    # The wire carries a C string; anything after a NUL is dropped.
    return LogBlob(data.split(b"\0", 1)[0])
