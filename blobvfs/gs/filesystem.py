"""The Google Cloud Storage file system."""

from __future__ import annotations

from typing import Any, Optional

from blobvfs.core import (
    InvalidPathError,
    Retry,
    default_retryer,
    ensure_trailing_slash,
    register,
    validate_absolute_file_path,
    validate_absolute_location_path,
)
from blobvfs.gs.handles import JsonApiClient, StorageClient
from blobvfs.gs.options import Options, parse_client_options
from blobvfs.gs.storage import File, Location, _clean

SCHEME = "gs"
NAME = "Google Cloud Storage"


class FileSystem:
    """Entry point for files and locations in Google Cloud Storage."""

    def __init__(self, options: Any = None, client: Optional[StorageClient] = None):
        self.options = options
        self._client = client

    def retry(self) -> Retry:
        """Return the retry function from the options, or one that runs the call once."""
        if isinstance(self.options, Options) and self.options.retry is not None:
            return self.options.retry
        return default_retryer()

    def new_file(self, volume: str, name: str) -> File:
        if not volume or not name:
            raise InvalidPathError("non-empty strings for Bucket and Key are required")
        validate_absolute_file_path(name)
        return File(self, volume, _clean(name))

    def new_location(self, volume: str, name: str) -> Location:
        if not volume or not name:
            raise InvalidPathError("non-empty strings for bucket and key are required")
        validate_absolute_location_path(name)
        return Location(self, volume, ensure_trailing_slash(_clean(name)))

    def name(self) -> str:
        return NAME

    def scheme(self) -> str:
        return SCHEME

    def client(self) -> StorageClient:
        """Return the storage client, creating one from the options on first use."""
        if self._client is None:
            self._client = JsonApiClient(**parse_client_options(self.options))
        return self._client

    def with_options(self, options: Any) -> "FileSystem":
        """Set the options; the client is rebuilt from them on next use."""
        self.options = options
        self._client = None
        return self

    def with_client(self, client: StorageClient) -> "FileSystem":
        self._client = client
        return self


register(SCHEME, FileSystem())