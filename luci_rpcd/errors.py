from __future__ import annotations

import errno
from enum import IntEnum


class Status(IntEnum):
    """Status codes understood by the bus."""

    OK = 0
    INVALID_COMMAND = 1
    INVALID_ARGUMENT = 2
    METHOD_NOT_FOUND = 3
    NOT_FOUND = 4
    NO_DATA = 5
    PERMISSION_DENIED = 6
    TIMEOUT = 7
    NOT_SUPPORTED = 8
    UNKNOWN_ERROR = 9
    CONNECTION_FAILED = 10


_ERRNO_STATUS = {
    errno.EACCES: Status.PERMISSION_DENIED,
    errno.ENOTDIR: Status.INVALID_ARGUMENT,
    errno.ENOENT: Status.NOT_FOUND,
    errno.EINVAL: Status.INVALID_ARGUMENT,
}


def classify_errno(code: int | None) -> Status:
    """Map an OS error number to a bus status."""
    if code is None:
        return Status.UNKNOWN_ERROR
    return _ERRNO_STATUS.get(code, Status.UNKNOWN_ERROR)


class RpcError(Exception):
    def __init__(self, status: Status, message: str | None = None) -> None:
        super().__init__(message or status.name)
        self.status = status

    @classmethod
    def from_os_error(cls, exc: OSError) -> RpcError:
        return cls(classify_errno(exc.errno), str(exc))
