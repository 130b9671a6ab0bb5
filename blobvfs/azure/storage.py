"""Files and locations on Azure Blob Storage."""

from __future__ import annotations

import io
import posixpath
import re
import shutil
import tempfile
import time
from datetime import datetime
from typing import IO, Any, Optional, Pattern, Union

from blobvfs.azure.client import StorageError
from blobvfs.core import (
    TOUCH_COPY_MIN_BUFFER_SIZE,
    ensure_leading_slash,
    ensure_trailing_slash,
    remove_leading_slash,
    touch_copy_buffered,
    validate_copy_seek_position,
    validate_relative_file_path,
    validate_relative_location_path,
)


def _clean(path: str) -> str:
    """Lexically normalise a slash-separated path ("" becomes ".")."""
    if not path:
        return "."
    cleaned = posixpath.normpath(path)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def _join(*parts: str) -> str:
    """Join the non-empty parts with slashes and normalise; "" if all are empty."""
    kept = [part for part in parts if part]
    if not kept:
        return ""
    return _clean("/".join(kept))


def _dir(path: str) -> str:
    """Everything but the last element of the path, normalised."""
    return _clean(path[: path.rfind("/") + 1])


def _base(path: str) -> str:
    """The last element of the path, ignoring trailing slashes."""
    if not path:
        return "."
    stripped = path.rstrip("/")
    if not stripped:
        return "/"
    return stripped.rsplit("/", 1)[-1]


class File:
    """A blob in an Azure container.

    Reads, writes and seeks work on a local temporary copy, which is uploaded
    on close() when it has been written to.
    """

    def __init__(self, file_system: Any = None, container: str = "", name: str = ""):
        self._file_system = file_system
        self._container = container
        self._name = name
        self._temp_file: Optional[IO[bytes]] = None
        self._dirty = False

    def __enter__(self) -> "File":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __str__(self) -> str:
        return self.uri()

    def _container_url(self) -> str:
        return self.location().container_url()

    def close(self) -> None:
        """Upload pending writes and drop the local temporary copy."""
        if self._temp_file is None:
            return
        try:
            client = self._file_system.client()
            self._temp_file.seek(0)
            if self._dirty:
                client.upload(self, self._temp_file)
        finally:
            self._temp_file.close()
            self._temp_file = None
            self._dirty = False

    def read(self, size: int = -1) -> bytes:
        self._check_temp_file()
        return self._temp_file.read(size)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        try:
            self._check_temp_file()
        except Exception:
            return 0
        return self._temp_file.seek(offset, whence)

    def write(self, data: bytes) -> int:
        self._check_temp_file()
        written = self._temp_file.write(data)
        self._dirty = True
        return written

    def exists(self) -> bool:
        client = self._file_system.client()
        try:
            client.properties(self._container_url(), self.path())
        except StorageError as exc:
            if exc.service_code != "BlobNotFound":
                raise
            return False
        return True

    def location(self) -> "Location":
        return Location(self._file_system, self._container, _dir(self._name))

    def copy_to_location(self, location: Any) -> Any:
        """Copy this file, under its own name, into the location and return the copy."""
        new_file = location.new_file(remove_leading_slash(self.name()))
        self.copy_to_file(new_file)
        return new_file

    def copy_to_file(self, file: Any) -> None:
        """Copy the contents into the file; uses a server-side copy where the auth matches."""
        validate_copy_seek_position(self)

        if isinstance(file, File) and self._is_same_auth(file):
            self._file_system.client().copy(self, file)
            return

        buffer_size = self._file_system.options.file_buffer_size
        touch_copy_buffered(file, self, buffer_size)
        file.close()
        self.close()

    def move_to_location(self, location: Any) -> Any:
        new_file = self.copy_to_location(location)
        self.delete()
        return new_file

    def move_to_file(self, file: Any) -> None:
        self.copy_to_file(file)
        self.delete()

    def delete(self) -> None:
        self.close()
        self._file_system.client().delete(self)

    def last_modified(self) -> Optional[datetime]:
        client = self._file_system.client()
        return client.properties(self._container_url(), self.path()).last_modified

    def size(self) -> int:
        client = self._file_system.client()
        return client.properties(self._container_url(), self.path()).size

    def path(self) -> str:
        return self._name

    def name(self) -> str:
        return _base(self._name)

    def touch(self) -> None:
        """Create an empty blob, or bump the last-modified time of an existing one."""
        exists = self.exists()
        client = self._file_system.client()
        if not exists:
            client.upload(self, b"")
            return

        props = client.properties(self._container_url(), self.path())
        client.set_metadata(self, {"updated": "true"})
        client.set_metadata(self, props.metadata)

    def uri(self) -> str:
        fs = self._file_system
        return f"{fs.scheme()}://{ensure_trailing_slash(fs.host())}{_join(self._container, self._name)}"

    def _check_temp_file(self) -> None:
        if self._temp_file is not None:
            return
        client = self._file_system.client()
        exists = self.exists()
        prefix = f"{_base(self.name())}.{time.time_ns()}"
        if not exists:
            self._temp_file = tempfile.TemporaryFile(mode="w+b", prefix=prefix)
            return

        reader = client.download(self)
        temp = tempfile.TemporaryFile(mode="w+b", prefix=prefix)
        try:
            shutil.copyfileobj(reader, temp, TOUCH_COPY_MIN_BUFFER_SIZE)
            temp.seek(0)
        except BaseException:
            temp.close()
            raise
        finally:
            close = getattr(reader, "close", None)
            if close is not None:
                close()
        self._temp_file = temp

    def _is_same_auth(self, target: "File") -> bool:
        return self._file_system.options.account_key == target._file_system.options.account_key


class Location:
    """A virtual directory inside an Azure container."""

    def __init__(self, file_system: Any = None, container: str = "", path: str = ""):
        self._file_system = file_system
        self._container = container
        self._path = path

    def __str__(self) -> str:
        return self.uri()

    def list(self) -> list[str]:
        """Return the base names of the blobs directly under this location."""
        return [_base(item) for item in self._file_system.client().list(self)]

    def list_by_prefix(self, prefix: str) -> list[str]:
        """Return base names starting with the prefix, which may name a subdirectory."""
        if "/" in prefix:
            list_loc = self.new_location(ensure_trailing_slash(_dir(prefix)))
            return list_loc._list_by_name_prefix(_base(prefix))
        return self._list_by_name_prefix(prefix)

    def _list_by_name_prefix(self, prefix: str) -> list[str]:
        return [_base(item) for item in self.list() if item.startswith(prefix)]

    def list_by_regex(self, regex: Union[str, Pattern[str]]) -> list[str]:
        pattern = re.compile(regex) if isinstance(regex, str) else regex
        return [_base(item) for item in self.list() if pattern.search(item)]

    def volume(self) -> str:
        return self._container

    def path(self) -> str:
        return ensure_trailing_slash(ensure_leading_slash(self._path))

    def exists(self) -> bool:
        """Whether the container exists; lookup failures count as absent."""
        client = self._file_system.client()
        try:
            client.properties(self.container_url(), "")
        except Exception:
            return False
        return True

    def new_location(self, rel_loc_path: str) -> "Location":
        validate_relative_location_path(rel_loc_path)
        return Location(self._file_system, self._container, _join(self._path, rel_loc_path))

    def change_dir(self, rel_loc_path: str) -> None:
        validate_relative_location_path(rel_loc_path)
        self._path = _join(self._path, rel_loc_path)

    def file_system(self) -> Any:
        return self._file_system

    def new_file(self, rel_file_path: str) -> File:
        validate_relative_file_path(rel_file_path)
        return File(
            self._file_system,
            self._container,
            ensure_leading_slash(_join(self._path, rel_file_path)),
        )

    def delete_file(self, rel_file_path: str) -> None:
        self.new_file(remove_leading_slash(rel_file_path)).delete()

    def uri(self) -> str:
        fs = self._file_system
        return (
            f"{fs.scheme()}://{ensure_trailing_slash(fs.host())}"
            f"{ensure_trailing_slash(_join(self._container, self._path))}"
        )

    def container_url(self) -> str:
        fs = self._file_system
        return f"{fs.scheme()}://{ensure_trailing_slash(fs.host())}{ensure_trailing_slash(self._container)}"