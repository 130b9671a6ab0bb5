"""Client for the Azure Blob Storage REST API."""

from __future__ import annotations

import abc
import io
import time
import xml.etree.ElementTree as ET
from typing import Any, BinaryIO, Mapping, Optional, Union
from urllib.parse import quote, urlencode

import requests

from blobvfs.azure.options import BlobProperties, Credential, Options
from blobvfs.core import TOUCH_COPY_MIN_BUFFER_SIZE, remove_leading_slash

API_VERSION = "2020-04-08"
COPY_POLL_INTERVAL = 2.0

Content = Union[bytes, str, BinaryIO]


class StorageError(Exception):
    """An error response from Azure Blob Storage."""

    def __init__(self, message: str, service_code: str = "", status_code: int = 0):
        super().__init__(message)
        self.service_code = service_code
        self.status_code = status_code


class Client(abc.ABC):
    """Operations the Azure backend performs against Blob Storage."""

    @abc.abstractmethod
    def properties(self, container_uri: str, file_path: str) -> Optional[BlobProperties]:
        """Return the blob's properties; with an empty path, only check the container."""

    @abc.abstractmethod
    def set_metadata(self, file: Any, metadata: Mapping[str, str]) -> None:
        """Replace the metadata of the blob behind the file."""

    @abc.abstractmethod
    def upload(self, file: Any, content: Content) -> None:
        """Create or overwrite the blob behind the file with the content."""

    @abc.abstractmethod
    def download(self, file: Any) -> BinaryIO:
        """Return a reader over the blob behind the file."""

    @abc.abstractmethod
    def copy(self, src_file: Any, tgt_file: Any) -> None:
        """Copy one blob to another."""

    @abc.abstractmethod
    def list(self, location: Any) -> list[str]:
        """Return the full names of the blobs directly under the location."""

    @abc.abstractmethod
    def delete(self, file: Any) -> None:
        """Delete the blob behind the file."""


def _read_all(content: Content) -> bytes:
    if isinstance(content, bytes):
        return content
    if isinstance(content, str):
        return content.encode("utf-8")
    chunks = []
    while chunk := content.read(TOUCH_COPY_MIN_BUFFER_SIZE):
        chunks.append(chunk.encode("utf-8") if isinstance(chunk, str) else chunk)
    return b"".join(chunks)


def _error_code(response: Any) -> str:
    code = response.headers.get("x-ms-error-code", "")
    if code or not response.content:
        return code
    try:
        return ET.fromstring(response.content).findtext("Code") or ""
    except ET.ParseError:
        return ""


class DefaultClient(Client):
    """Talks to Blob Storage over HTTPS, signing each request with a credential."""

    def __init__(
        self,
        credential: Credential,
        session: Optional[Any] = None,
        poll_interval: float = COPY_POLL_INTERVAL,
        timeout: float = 60.0,
    ):
        self._credential = credential
        self._session = session if session is not None else requests.Session()
        self._poll_interval = poll_interval
        self._timeout = timeout

    def _send(
        self,
        method: str,
        url: str,
        params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
        data: Optional[bytes] = None,
    ) -> Any:
        if params:
            url = f"{url}?{urlencode(params, quote_via=quote)}"
        request_headers = {"x-ms-version": API_VERSION, **(headers or {})}
        if data is not None:
            request_headers["Content-Length"] = str(len(data))
        signed = self._credential.apply(method, url, request_headers)
        response = self._session.request(method, url, headers=signed, data=data, timeout=self._timeout)
        if response.status_code >= 300:
            code = _error_code(response)
            raise StorageError(
                f"{method} {url} failed: {response.status_code} {code}".rstrip(),
                service_code=code,
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _blob_url(container_url: str, blob_path: str) -> str:
        base = container_url if container_url.endswith("/") else container_url + "/"
        return base + quote(remove_leading_slash(blob_path), safe="/")

    def _file_url(self, file: Any) -> str:
        return self._blob_url(file.location().container_url(), file.path())

    def properties(self, container_uri: str, file_path: str) -> Optional[BlobProperties]:
        if file_path == "":
            # Only the container's existence matters here.
            self._send("HEAD", container_uri.rstrip("/"), params={"restype": "container"})
            return None
        response = self._send("HEAD", self._blob_url(container_uri, file_path))
        return BlobProperties.from_headers(response.headers)

    def set_metadata(self, file: Any, metadata: Mapping[str, str]) -> None:
        headers = {f"x-ms-meta-{key}": value for key, value in metadata.items()}
        self._send("PUT", self._file_url(file), params={"comp": "metadata"}, headers=headers, data=b"")

    def upload(self, file: Any, content: Content) -> None:
        self._send(
            "PUT",
            self._file_url(file),
            headers={"x-ms-blob-type": "BlockBlob"},
            data=_read_all(content),
        )

    def download(self, file: Any) -> BinaryIO:
        response = self._send("GET", self._file_url(file))
        return io.BytesIO(response.content)

    def copy(self, src_file: Any, tgt_file: Any) -> None:
        # Encoded characters such as %20 in the source name must survive as-is.
        source = src_file.uri().replace("%", "%25")
        target_url = self._file_url(tgt_file)
        response = self._send("PUT", target_url, headers={"x-ms-copy-source": source}, data=b"")
        status = response.headers.get("x-ms-copy-status", "")
        while status == "pending":
            time.sleep(self._poll_interval)
            response = self._send("HEAD", target_url)
            status = response.headers.get("x-ms-copy-status", "")
        if status == "success":
            return
        code = response.headers.get("x-ms-error-code", "")
        raise StorageError(f"copy failed ERROR[{code}]", service_code=code, status_code=response.status_code)

    def list(self, location: Any) -> list[str]:
        container = location.container_url().rstrip("/")
        prefix = remove_leading_slash(location.path())
        names: list[str] = []
        marker = ""
        while True:
            params = {"restype": "container", "comp": "list", "delimiter": "/", "prefix": prefix}
            if marker:
                params["marker"] = marker
            response = self._send("GET", container, params=params)
            root = ET.fromstring(response.content)
            names.extend(element.text or "" for element in root.iterfind("./Blobs/Blob/Name"))
            marker = root.findtext("NextMarker") or ""
            if not marker:
                return names

    def delete(self, file: Any) -> None:
        self._send("DELETE", self._file_url(file))


def new_client(options: Options) -> DefaultClient:
    """Create a DefaultClient authenticated as the options describe."""
    return DefaultClient(options.credential())