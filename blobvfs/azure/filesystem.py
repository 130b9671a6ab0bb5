"""The Azure Blob Storage file system."""

from __future__ import annotations

import re
from typing import Any, Optional, Union
from urllib.parse import SplitResult, ParseResult, urlsplit

from blobvfs.azure.client import Client, new_client
from blobvfs.azure.options import Options, new_options
from blobvfs.azure.storage import File, Location, _clean, _join
from blobvfs.core import (
    Retry,
    default_retryer,
    ensure_leading_slash,
    ensure_trailing_slash,
    InvalidPathError,
    register,
    validate_absolute_file_path,
    validate_absolute_location_path,
)

SCHEME = "https"
NAME = "azure"

_HOST_PATTERN = re.compile(r".*\.blob\.core\.windows\.net")


class FileSystem:
    """Entry point for files and locations in Azure Blob Storage."""

    def __init__(self, options: Optional[Options] = None, client: Optional[Client] = None):
        self.options = options if options is not None else new_options()
        self._client = client

    def with_options(self, options: Any) -> "FileSystem":
        """Replace the options; anything other than azure Options gives empty ones."""
        self.options = options if isinstance(options, Options) else Options()
        return self

    def with_client(self, client: Client) -> "FileSystem":
        self._client = client
        return self

    def client(self) -> Client:
        """Return the client, creating one from the options on first use."""
        if self._client is None:
            self._client = new_client(self.options)
        return self._client

    def new_file(self, volume: str, abs_file_path: str) -> File:
        if not volume or not abs_file_path:
            raise InvalidPathError("non-empty strings for container and path are required")
        validate_absolute_file_path(abs_file_path)
        return File(self, volume, _clean(abs_file_path))

    def new_location(self, volume: str, abs_loc_path: str) -> Location:
        if not volume or not abs_loc_path:
            raise InvalidPathError("non-empty strings for container and path are required")
        validate_absolute_location_path(abs_loc_path)
        return Location(self, volume, _clean(abs_loc_path))

    def name(self) -> str:
        return NAME

    def scheme(self) -> str:
        return SCHEME

    def host(self) -> str:
        return f"{self.options.account_name}.blob.core.windows.net"

    def retry(self) -> Retry:
        if self.options.retry_func is not None:
            return self.options.retry_func
        return default_retryer()


def parse_path(p: str) -> tuple[str, str]:
    """Split a URI path into its container and the path within it."""
    if p == "/":
        raise ValueError("no container specified for Azure path")
    parts = p.split("/")
    if len(parts) < 2:
        raise ValueError(f"no container specified for Azure path: {p!r}")
    path = ensure_leading_slash(_join(*parts[2:]))
    if p.endswith("/"):
        path = ensure_trailing_slash(path)
    return parts[1], path


def is_valid_uri(url: Union[str, SplitResult, ParseResult]) -> bool:
    """Whether the URL uses https and a *.blob.core.windows.net host."""
    parsed = urlsplit(url) if isinstance(url, str) else url
    return parsed.scheme == SCHEME and bool(_HOST_PATTERN.search(parsed.netloc))


register(SCHEME, FileSystem())