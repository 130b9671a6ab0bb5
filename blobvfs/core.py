"""Backend registry, path rules and copy helpers shared by every storage backend."""

from __future__ import annotations

import io
import threading
from typing import Any, Callable, Optional

TOUCH_COPY_MIN_BUFFER_SIZE = 262144

ERR_BAD_ABS_FILE_PATH = (
    "absolute file path is invalid - must include leading slash and may not include trailing slash"
)
ERR_BAD_ABS_LOCATION_PATH = (
    "absolute location path is invalid - must include leading and trailing slashes"
)
ERR_BAD_REL_FILE_PATH = (
    "relative file path is invalid - may not include leading or trailing slashes"
)
ERR_BAD_REL_LOCATION_PATH = (
    "relative location path is invalid - may not include leading slash but must include trailing slash"
)

Retry = Callable[[Callable[[], Any]], Any]


class VfsError(Exception):
    """Base class for errors raised by the file system backends."""


class CopyToNotPossibleError(VfsError):
    """Raised when a file cannot be copied because its cursor is not at the start."""

    def __init__(self, message: str = "current cursor offset is not 0 as required for this operation"):
        super().__init__(message)


class InvalidPathError(VfsError, ValueError):
    """Raised when a path does not follow the slash rules of its kind."""


_lock = threading.RLock()
_backends: dict[str, Any] = {}


def register(name: str, file_system: Any) -> None:
    """Register a file system under the given name."""
    with _lock:
        _backends[name] = file_system


def unregister(name: str) -> None:
    """Remove the file system registered under the given name, if any."""
    with _lock:
        _backends.pop(name, None)


def unregister_all() -> None:
    """Remove every registered file system."""
    with _lock:
        _backends.clear()


def backend(name: str) -> Optional[Any]:
    """Return the file system registered under the name, or None."""
    with _lock:
        return _backends.get(name)


def registered_backends() -> list[str]:
    """Return the sorted names of all registered file systems."""
    with _lock:
        return sorted(_backends)


def validate_copy_seek_position(file: Any) -> None:
    """Raise CopyToNotPossibleError unless the file's cursor is at offset 0."""
    try:
        offset = file.seek(0, io.SEEK_CUR)
    except Exception as exc:
        raise VfsError(f"failed to determine current cursor offset: {exc}") from exc
    if offset != 0:
        raise CopyToNotPossibleError()


def default_retryer() -> Retry:
    """Return a retry function that runs the wrapped call exactly once."""

    def retry(wrapped: Callable[[], Any]) -> Any:
        return wrapped()

    return retry


def ensure_leading_slash(path: str) -> str:
    return path if path.startswith("/") else "/" + path


def ensure_trailing_slash(path: str) -> str:
    return path if path.endswith("/") else path + "/"


def remove_leading_slash(path: str) -> str:
    return path[1:] if path.startswith("/") else path


def validate_absolute_file_path(path: str) -> str:
    """Return the path if it starts with a slash and does not end with one."""
    if not path.startswith("/") or path.endswith("/"):
        raise InvalidPathError(ERR_BAD_ABS_FILE_PATH)
    return path


def validate_absolute_location_path(path: str) -> str:
    """Return the path if it both starts and ends with a slash."""
    if not path.startswith("/") or not path.endswith("/"):
        raise InvalidPathError(ERR_BAD_ABS_LOCATION_PATH)
    return path


def validate_relative_file_path(path: str) -> str:
    """Return the path if it is non-empty and neither starts nor ends with a slash."""
    if not path or path.startswith("/") or path.endswith("/"):
        raise InvalidPathError(ERR_BAD_REL_FILE_PATH)
    return path


def validate_relative_location_path(path: str) -> str:
    """Return the path if it does not start with a slash but ends with one."""
    if path.startswith("/") or not path.endswith("/"):
        raise InvalidPathError(ERR_BAD_REL_LOCATION_PATH)
    return path


def touch_copy_buffered(target: Any, source: Any, buffer_size: int = 0) -> int:
    """Copy source into target in chunks; touch the target when nothing was copied.

    Returns the number of bytes copied.
    """
    chunk_size = buffer_size if buffer_size > 0 else TOUCH_COPY_MIN_BUFFER_SIZE
    copied = 0
    while chunk := source.read(chunk_size):
        target.write(chunk)
        copied += len(chunk)
    if copied == 0:
        target.touch()
    return copied