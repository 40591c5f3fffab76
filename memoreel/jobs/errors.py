"""Error taxonomy for submission and rendering."""

from __future__ import annotations

import errno


class MemoreelError(Exception):
    """Base class for all errors raised by memoreel."""


class ValidationError(MemoreelError):
    """Submission rejected before a job was created."""


class RenderError(MemoreelError):
    """A render backend failed to produce the output file."""


class ResourceError(MemoreelError):
    """Disk or permission failure while preparing or writing output."""

    @classmethod
    def from_os_error(cls, exc: OSError, action: str = "") -> ResourceError:
        where = f" while {action}" if action else ""
        target = f": {exc.filename}" if exc.filename else ""
        if exc.errno == errno.ENOSPC:
            msg = f"Server storage is full{where}"
        elif exc.errno in (errno.EACCES, errno.EPERM):
            msg = f"Permission denied{where}{target}"
        elif exc.errno == errno.ENOENT:
            msg = f"File not found{where}{target}"
        else:
            msg = f"{exc.strerror or exc}{where}{target}"
        return cls(msg)


def failure_message(exc: BaseException) -> str:
    """Non-empty, user-facing message for a failed job."""
    if isinstance(exc, OSError) and not isinstance(exc, MemoreelError):
        exc = ResourceError.from_os_error(exc)
    msg = str(exc).strip()
    return msg or type(exc).__name__
