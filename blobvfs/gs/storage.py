"""Files and locations on Google Cloud Storage."""

from __future__ import annotations

import io
import posixpath
import re
import tempfile
import time
from datetime import datetime
from typing import IO, Any, Optional, Pattern, Union

from blobvfs.core import (
    InvalidPathError,
    ensure_leading_slash,
    ensure_trailing_slash,
    remove_leading_slash,
    touch_copy_buffered,
    validate_copy_seek_position,
    validate_relative_file_path,
    validate_relative_location_path,
)
from blobvfs.gs.handles import (
    BucketNotExistError,
    ObjectAttrs,
    ObjectNotExistError,
    RetryBucketHandler,
    RetryObjectHandler,
)
from blobvfs.gs.options import Options


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


def _gs_options(file_system: Any) -> Optional[Options]:
    options = getattr(file_system, "options", None)
    return options if isinstance(options, Options) else None


class File:
    """An object in a GCS bucket.

    Reads and seeks work on a local temporary copy of the object; writes are
    buffered in memory and sent to GCS on close().
    """

    def __init__(self, file_system: Any = None, bucket: str = "", key: str = ""):
        self._file_system = file_system
        self._bucket = bucket
        self._key = key
        self._temp_file: Optional[IO[bytes]] = None
        self._write_buffer: Optional[bytearray] = None

    def __enter__(self) -> "File":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __str__(self) -> str:
        return self.uri()

    def close(self) -> None:
        """Drop the local temporary copy and flush any buffered writes to GCS."""
        if self._temp_file is not None:
            temp, self._temp_file = self._temp_file, None
            temp.close()

        if self._write_buffer is not None:
            data = bytes(self._write_buffer)
            self._object_handle().write(data)
        self._write_buffer = None

    def read(self, size: int = -1) -> bytes:
        self._check_temp_file()
        return self._temp_file.read(size)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        self._check_temp_file()
        return self._temp_file.seek(offset, whence)

    def write(self, data: bytes) -> int:
        if self._write_buffer is None:
            self._write_buffer = bytearray()
        self._write_buffer.extend(data)
        return len(data)

    def exists(self) -> bool:
        try:
            self._object_attrs()
        except ObjectNotExistError:
            return False
        return True

    def location(self) -> "Location":
        prefix = ensure_trailing_slash(ensure_leading_slash(_clean(_dir(self._key))))
        return Location(self._file_system, self._bucket, prefix)

    def copy_to_location(self, location: Any) -> Any:
        """Copy this file, under its own name, into the location and return the copy."""
        dest = location.new_file(self.name())
        self.copy_to_file(dest)
        return dest

    def copy_to_file(self, file: Any) -> None:
        """Copy the contents into the file; uses a server-side copy where the auth matches.

        The cursor of this file must be at the start.
        """
        validate_copy_seek_position(self)

        if isinstance(file, File):
            target_options = _gs_options(file._file_system)
            if target_options is not None and self._is_same_auth(target_options):
                self._copy_within_gcs_to_file(file)
                return

        own_options = _gs_options(self._file_system)
        buffer_size = own_options.file_buffer_size if own_options is not None else 0
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
        """Discard pending writes and local state, then delete the object."""
        self._write_buffer = None
        self.close()
        self._object_handle().delete()

    def touch(self) -> None:
        """Create an empty object, or bump the last-modified time of an existing one."""
        if not self.exists():
            self._object_handle().write(b"")
            return

        # With versioning enabled, metadata changes do not move the update time.
        if self._is_bucket_versioning_enabled():
            self._update_last_modified_by_moving()
        else:
            self._update_last_modified_by_attr_update()

    def _update_last_modified_by_attr_update(self) -> None:
        old_metadata = self._object_attrs().metadata
        handle = self._object_handle()
        handle.update({"updateMe": "true"})
        handle.update(old_metadata)

    def _update_last_modified_by_moving(self) -> None:
        temp = self.location().new_file(f"{self.name()}.{time.time_ns()}.touch")
        self.copy_to_file(temp)
        self.delete()
        temp.move_to_file(self)

    def _is_bucket_versioning_enabled(self) -> bool:
        return self._file_system.client().bucket_attrs(self._bucket).versioning_enabled

    def _is_same_auth(self, options: Optional[Options]) -> bool:
        own = _gs_options(self._file_system)
        if options is None and getattr(self._file_system, "options", None) is None:
            return True
        if options is None or own is None:
            return False
        if options.credential_file and options.credential_file == own.credential_file:
            return True
        if options.api_key and options.api_key == own.api_key:
            return True
        return False

    def last_modified(self) -> Optional[datetime]:
        return self._object_attrs().updated

    def size(self) -> int:
        return self._object_attrs().size

    def path(self) -> str:
        return self._key

    def name(self) -> str:
        return _base(self._key)

    def uri(self) -> str:
        return f"{self._file_system.scheme()}://{self._bucket}{self.path()}"

    def _check_temp_file(self) -> None:
        if self._temp_file is not None:
            return
        data = self._object_handle().read()
        temp = tempfile.TemporaryFile(mode="w+b", prefix=f"{self.name()}.{time.time_ns()}")
        try:
            temp.write(data)
            temp.seek(0)
        except BaseException:
            temp.close()
            raise
        self._temp_file = temp

    def _object_handle(self) -> RetryObjectHandler:
        fs = self._file_system
        return RetryObjectHandler(fs.client(), self._bucket, remove_leading_slash(self._key), fs.retry())

    def _object_attrs(self) -> ObjectAttrs:
        return self._object_handle().attrs()

    def _copy_within_gcs_to_file(self, target: "File") -> None:
        copier = target._object_handle().copier_from(self._object_handle())
        copier.content_type = self._object_attrs().content_type
        copier.run()


class Location:
    """A virtual directory inside a GCS bucket."""

    def __init__(self, file_system: Any = None, bucket: str = "", prefix: str = ""):
        self._file_system = file_system
        self._bucket = bucket
        self._prefix = prefix
        self._bucket_handle: Optional[RetryBucketHandler] = None

    def __str__(self) -> str:
        return self.uri()

    def list(self) -> list[str]:
        """Return the names of the objects directly under this location."""
        return self.list_by_prefix("")

    def list_by_prefix(self, filename_prefix: str) -> list[str]:
        """Return names of objects matching the prefix, which may name a subdirectory."""
        prefix = remove_leading_slash(_join(self._prefix, filename_prefix))
        # A directory-level search keeps its trailing slash; a file-name prefix does not.
        if filename_prefix == "" or filename_prefix.endswith("/"):
            prefix = ensure_trailing_slash(prefix)
        if prefix == "/":
            prefix = ""
        directory = _dir(prefix)
        strip = ensure_trailing_slash(directory)

        names: list[str] = []
        for attrs in self._get_bucket_handle().objects(prefix, "/"):
            if attrs.prefix or attrs.name == directory or attrs.name.endswith("/"):
                continue
            names.append(attrs.name.removeprefix(strip))
        return names

    def list_by_regex(self, regex: Union[str, Pattern[str]]) -> list[str]:
        pattern = re.compile(regex) if isinstance(regex, str) else regex
        return [key for key in self.list() if pattern.search(key)]

    def volume(self) -> str:
        return self._bucket

    def path(self) -> str:
        return ensure_leading_slash(ensure_trailing_slash(self._prefix))

    def exists(self) -> bool:
        """Whether the bucket exists."""
        try:
            self._get_bucket_handle().attrs()
        except BucketNotExistError:
            return False
        return True

    def new_location(self, relative_path: str) -> "Location":
        """Return a new location relative to this one, leaving this one unchanged."""
        new = Location(self._file_system, self._bucket, self._prefix)
        new._bucket_handle = self._bucket_handle
        new.change_dir(relative_path)
        return new

    def change_dir(self, relative_path: str) -> None:
        if relative_path == "":
            raise InvalidPathError("non-empty string relativePath is required")
        validate_relative_location_path(relative_path)
        self._prefix = ensure_trailing_slash(ensure_leading_slash(_join(self._prefix, relative_path)))

    def file_system(self) -> Any:
        return self._file_system

    def new_file(self, file_path: str) -> File:
        if file_path == "":
            raise InvalidPathError("non-empty string filePath is required")
        validate_relative_file_path(file_path)
        return File(self._file_system, self._bucket, ensure_leading_slash(_join(self._prefix, file_path)))

    def delete_file(self, file_name: str) -> None:
        self.new_file(file_name).delete()

    def uri(self) -> str:
        return f"{self._file_system.scheme()}://{self._bucket}{self.path()}"

    def _get_bucket_handle(self) -> RetryBucketHandler:
        if self._bucket_handle is None:
            fs = self._file_system
            self._bucket_handle = RetryBucketHandler(fs.client(), self._bucket, fs.retry())
        return self._bucket_handle