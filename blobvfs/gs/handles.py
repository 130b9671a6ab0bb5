"""Google Cloud Storage client and the retrying bucket and object handles."""

from __future__ import annotations

import abc
import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterator, Mapping, Optional, TypeVar
from urllib.parse import quote

import requests

from blobvfs.core import Retry, default_retryer

DEFAULT_ENDPOINT = "https://storage.googleapis.com"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"

T = TypeVar("T")


class ObjectNotExistError(Exception):
    """Raised when the requested object does not exist."""

    def __init__(self, message: str = "storage: object doesn't exist"):
        super().__init__(message)


class BucketNotExistError(Exception):
    """Raised when the requested bucket does not exist."""

    def __init__(self, message: str = "storage: bucket doesn't exist"):
        super().__init__(message)


_FRACTION = re.compile(r"\.(\d+)")


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    text = value.replace("Z", "+00:00")
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    return datetime.fromisoformat(text)


@dataclass
class ObjectAttrs:
    """Attributes of an object; listing prefixes carry only bucket and prefix."""

    bucket: str = ""
    name: str = ""
    prefix: str = ""
    size: int = 0
    content_type: str = ""
    updated: Optional[datetime] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_json(cls, resource: Mapping[str, Any]) -> "ObjectAttrs":
        return cls(
            bucket=resource.get("bucket", ""),
            name=resource.get("name", ""),
            size=int(resource.get("size") or 0),
            content_type=resource.get("contentType", ""),
            updated=_parse_time(resource.get("updated")),
            metadata=dict(resource.get("metadata") or {}),
        )


@dataclass
class BucketAttrs:
    """Attributes of a bucket."""

    name: str = ""
    versioning_enabled: bool = False


class StorageClient(abc.ABC):
    """The storage operations the backend needs."""

    @abc.abstractmethod
    def bucket_attrs(self, bucket: str) -> BucketAttrs:
        """Return the bucket's attributes or raise BucketNotExistError."""

    @abc.abstractmethod
    def list_objects(self, bucket: str, prefix: str, delimiter: str) -> Iterator[ObjectAttrs]:
        """Iterate over objects (and, with a delimiter, prefixes) under the prefix."""

    @abc.abstractmethod
    def object_attrs(self, bucket: str, name: str) -> ObjectAttrs:
        """Return the object's attributes or raise ObjectNotExistError."""

    @abc.abstractmethod
    def read_object(self, bucket: str, name: str) -> bytes:
        """Return the object's contents."""

    @abc.abstractmethod
    def write_object(self, bucket: str, name: str, data: bytes) -> ObjectAttrs:
        """Create or replace the object with the data."""

    @abc.abstractmethod
    def delete_object(self, bucket: str, name: str) -> None:
        """Delete the object."""

    @abc.abstractmethod
    def update_metadata(self, bucket: str, name: str, metadata: Mapping[str, str]) -> ObjectAttrs:
        """Set the object's custom metadata."""

    @abc.abstractmethod
    def copy_object(
        self, src_bucket: str, src_name: str, dst_bucket: str, dst_name: str, content_type: str
    ) -> ObjectAttrs:
        """Copy an object server-side, setting the content type when given."""


class _ObjectPager:
    """Iterator over a listing that survives a failed page request.

    A page is only consumed once it has been fetched successfully, so calling
    next() again after an error repeats the same request.
    """

    def __init__(self, client: "JsonApiClient", bucket: str, prefix: str, delimiter: str):
        self._client = client
        self._bucket = bucket
        self._prefix = prefix
        self._delimiter = delimiter
        self._buffer: list[ObjectAttrs] = []
        self._page_token = ""
        self._done = False

    def __iter__(self) -> "_ObjectPager":
        return self

    def __next__(self) -> ObjectAttrs:
        while not self._buffer:
            if self._done:
                raise StopIteration
            self._fetch_page()
        return self._buffer.pop(0)

    def _fetch_page(self) -> None:
        params = {"prefix": self._prefix, "versions": "false"}
        if self._delimiter:
            params["delimiter"] = self._delimiter
        if self._page_token:
            params["pageToken"] = self._page_token
        payload = self._client._request(
            "GET", f"/storage/v1/b/{quote(self._bucket, safe='')}/o", params=params, missing=BucketNotExistError
        ).json()
        page = [ObjectAttrs.from_json(item) for item in payload.get("items", [])]
        page.extend(ObjectAttrs(bucket=self._bucket, prefix=p) for p in payload.get("prefixes", []))
        self._buffer.extend(page)
        self._page_token = payload.get("nextPageToken", "")
        self._done = not self._page_token


class JsonApiClient(StorageClient):
    """Storage client speaking the Cloud Storage JSON API over HTTP."""

    def __init__(
        self,
        api_key: str = "",
        token: str = "",
        endpoint: str = "",
        credentials_file: str = "",
        scopes: Optional[list[str]] = None,
        session: Optional[Any] = None,
        timeout: float = 60.0,
    ):
        self._api_key = api_key
        self._token = token
        self._base = (endpoint or DEFAULT_ENDPOINT).rstrip("/")
        self._credentials_file = credentials_file
        self._scopes = list(scopes or [])
        self._session = session if session is not None else requests.Session()
        self._timeout = timeout

    def _load_token(self) -> str:
        with open(self._credentials_file, encoding="utf-8") as handle:
            info = json.load(handle)
        kind = info.get("type", "")
        if kind != "authorized_user":
            raise ValueError(f"unsupported credential file type {kind!r}")
        form = {
            "grant_type": "refresh_token",
            "client_id": info["client_id"],
            "client_secret": info["client_secret"],
            "refresh_token": info["refresh_token"],
        }
        if self._scopes:
            form["scope"] = " ".join(self._scopes)
        response = self._session.request(
            "POST", info.get("token_uri", DEFAULT_TOKEN_URI), data=form, timeout=self._timeout
        )
        if response.status_code >= 300:
            raise requests.HTTPError(f"token request failed: {response.status_code}", response=response)
        return response.json()["access_token"]

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, str]] = None,
        data: Optional[bytes] = None,
        json_body: Optional[Any] = None,
        headers: Optional[dict[str, str]] = None,
        missing: Optional[Callable[[], Exception]] = None,
    ) -> Any:
        query = dict(params or {})
        if self._api_key:
            query["key"] = self._api_key
        request_headers = dict(headers or {})
        if not self._token and self._credentials_file:
            self._token = self._load_token()
        if self._token:
            request_headers["Authorization"] = f"Bearer {self._token}"
        response = self._session.request(
            method,
            self._base + path,
            params=query,
            headers=request_headers,
            data=data,
            json=json_body,
            timeout=self._timeout,
        )
        if response.status_code == 404 and missing is not None:
            raise missing()
        if response.status_code >= 300:
            raise requests.HTTPError(
                f"{method} {path} failed: {response.status_code}", response=response
            )
        return response

    @staticmethod
    def _object_path(bucket: str, name: str) -> str:
        return f"/storage/v1/b/{quote(bucket, safe='')}/o/{quote(name, safe='')}"

    def bucket_attrs(self, bucket: str) -> BucketAttrs:
        payload = self._request(
            "GET", f"/storage/v1/b/{quote(bucket, safe='')}", missing=BucketNotExistError
        ).json()
        return BucketAttrs(
            name=payload.get("name", bucket),
            versioning_enabled=bool((payload.get("versioning") or {}).get("enabled", False)),
        )

    def list_objects(self, bucket: str, prefix: str, delimiter: str) -> Iterator[ObjectAttrs]:
        return _ObjectPager(self, bucket, prefix, delimiter)

    def object_attrs(self, bucket: str, name: str) -> ObjectAttrs:
        payload = self._request("GET", self._object_path(bucket, name), missing=ObjectNotExistError).json()
        return ObjectAttrs.from_json(payload)

    def read_object(self, bucket: str, name: str) -> bytes:
        response = self._request(
            "GET", self._object_path(bucket, name), params={"alt": "media"}, missing=ObjectNotExistError
        )
        return response.content

    def write_object(self, bucket: str, name: str, data: bytes) -> ObjectAttrs:
        payload = self._request(
            "POST",
            f"/upload/storage/v1/b/{quote(bucket, safe='')}/o",
            params={"uploadType": "media", "name": name},
            data=bytes(data),
            headers={"Content-Type": "application/octet-stream"},
            missing=BucketNotExistError,
        ).json()
        return ObjectAttrs.from_json(payload)

    def delete_object(self, bucket: str, name: str) -> None:
        self._request("DELETE", self._object_path(bucket, name), missing=ObjectNotExistError)

    def update_metadata(self, bucket: str, name: str, metadata: Mapping[str, str]) -> ObjectAttrs:
        payload = self._request(
            "PATCH",
            self._object_path(bucket, name),
            json_body={"metadata": dict(metadata)},
            missing=ObjectNotExistError,
        ).json()
        return ObjectAttrs.from_json(payload)

    def copy_object(
        self, src_bucket: str, src_name: str, dst_bucket: str, dst_name: str, content_type: str
    ) -> ObjectAttrs:
        path = (
            self._object_path(src_bucket, src_name)
            + f"/rewriteTo/b/{quote(dst_bucket, safe='')}/o/{quote(dst_name, safe='')}"
        )
        body = {"contentType": content_type} if content_type else {}
        params: dict[str, str] = {}
        while True:
            payload = self._request(
                "POST", path, params=params, json_body=body, missing=ObjectNotExistError
            ).json()
            if payload.get("done", True):
                return ObjectAttrs.from_json(payload.get("resource") or {})
            params = {"rewriteToken": payload["rewriteToken"]}


def _retry_call(retry: Retry, func: Callable[[], T]) -> T:
    """Run func under the retry function and return its last result."""
    results: list[T] = []

    def attempt() -> None:
        results[:] = [func()]

    retry(attempt)
    if not results:
        raise RuntimeError("retry function returned without running the operation")
    return results[0]


def _object_attribute_retry(retry: Retry, func: Callable[[], T]) -> T:
    """Try func once; if it fails, hand it to the retry function."""
    try:
        return func()
    except Exception as first_error:
        error = first_error
    results: list[T] = []

    def attempt() -> None:
        results[:] = [func()]

    retry(attempt)
    if not results:
        raise error
    return results[0]


_DONE = object()


class RetryBucketHandler:
    """Bucket operations with the file system's retry applied."""

    def __init__(self, client: StorageClient, bucket: str, retry: Optional[Retry] = None):
        self.client = client
        self.bucket = bucket
        self.retry = retry if retry is not None else default_retryer()

    def attrs(self) -> BucketAttrs:
        return _retry_call(self.retry, lambda: self.client.bucket_attrs(self.bucket))

    def objects(self, prefix: str = "", delimiter: str = "") -> Iterator[ObjectAttrs]:
        """Iterate over the listing, retrying each step that fails."""
        iterator = iter(self.client.list_objects(self.bucket, prefix, delimiter))
        while True:
            item = _object_attribute_retry(self.retry, lambda: next(iterator, _DONE))
            if item is _DONE:
                return
            yield item


class RetryObjectHandler:
    """Object operations with the file system's retry applied."""

    def __init__(self, client: StorageClient, bucket: str, name: str, retry: Optional[Retry] = None):
        self.client = client
        self.bucket = bucket
        self.name = name
        self.retry = retry if retry is not None else default_retryer()

    def write(self, data: bytes) -> ObjectAttrs:
        return self.client.write_object(self.bucket, self.name, data)

    def read(self) -> bytes:
        return _retry_call(self.retry, lambda: self.client.read_object(self.bucket, self.name))

    def attrs(self) -> ObjectAttrs:
        return _object_attribute_retry(self.retry, lambda: self.client.object_attrs(self.bucket, self.name))

    def update(self, metadata: Mapping[str, str]) -> ObjectAttrs:
        return _object_attribute_retry(
            self.retry, lambda: self.client.update_metadata(self.bucket, self.name, metadata)
        )

    def delete(self) -> None:
        _retry_call(self.retry, lambda: self.client.delete_object(self.bucket, self.name))

    def copier_from(self, src: "RetryObjectHandler") -> "Copier":
        """Return a copier that copies src onto this object."""
        return Copier(self.client, src, self, self.retry)


class Copier:
    """A server-side copy of one object onto another; set content_type before run()."""

    def __init__(
        self,
        client: StorageClient,
        src: RetryObjectHandler,
        dst: RetryObjectHandler,
        retry: Optional[Retry] = None,
    ):
        self.client = client
        self.src = src
        self.dst = dst
        self.retry = retry if retry is not None else default_retryer()
        self.content_type = ""

    def run(self) -> ObjectAttrs:
        return _object_attribute_retry(
            self.retry,
            lambda: self.client.copy_object(
                self.src.bucket, self.src.name, self.dst.bucket, self.dst.name, self.content_type
            ),
        )