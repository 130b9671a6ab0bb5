from urllib.parse import urlsplit

import pytest

from blobvfs.azure.client import Client, DefaultClient
from blobvfs.azure.filesystem import FileSystem, is_valid_uri, parse_path
from blobvfs.azure.options import Options
from blobvfs.core import ERR_BAD_ABS_FILE_PATH, ERR_BAD_ABS_LOCATION_PATH, InvalidPathError


def make_fs():
    return FileSystem().with_options(Options(account_name="test-container"))


@pytest.mark.parametrize("volume, path", [("", ""), ("temp", ""), ("", "/blah/blah.txt")])
def test_new_file_requires_volume_and_path(volume, path):
    with pytest.raises(InvalidPathError) as info:
        make_fs().new_file(volume, path)
    assert str(info.value) == "non-empty strings for container and path are required"


def test_new_file_relative_path_rejected():
    with pytest.raises(InvalidPathError) as info:
        make_fs().new_file("temp", "blah/blah.txt")
    assert str(info.value) == ERR_BAD_ABS_FILE_PATH


def test_new_file():
    f = make_fs().new_file("temp", "/foo/bar/test.txt")
    assert str(f) == "https://test-container.blob.core.windows.net/temp/foo/bar/test.txt"


@pytest.mark.parametrize("volume, path", [("", ""), ("", "/foo/bar/"), ("temp", "")])
def test_new_location_requires_volume_and_path(volume, path):
    with pytest.raises(InvalidPathError) as info:
        make_fs().new_location(volume, path)
    assert str(info.value) == "non-empty strings for container and path are required"


@pytest.mark.parametrize("path", ["foo/bar/", "/foo/bar"])
def test_new_location_invalid_path(path):
    with pytest.raises(InvalidPathError) as info:
        make_fs().new_location("temp", path)
    assert str(info.value) == ERR_BAD_ABS_LOCATION_PATH


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/foo/bar/", "https://test-container.blob.core.windows.net/temp/foo/bar/"),
        ("/path/../to/", "https://test-container.blob.core.windows.net/temp/to/"),
        ("/path/./to/", "https://test-container.blob.core.windows.net/temp/path/to/"),
    ],
)
def test_new_location(path, expected):
    assert str(make_fs().new_location("temp", path)) == expected


def test_name_and_scheme():
    fs = make_fs()
    assert fs.name() == "azure"
    assert fs.scheme() == "https"


def test_host():
    assert make_fs().host() == "test-container.blob.core.windows.net"


def test_retry_default_calls_wrapped():
    assert make_fs().retry()(lambda: 42) == 42


def test_retry_from_options():
    def error_retry(wrapped):
        raise RuntimeError("i always error")

    fs = FileSystem().with_options(Options(retry_func=error_retry))
    with pytest.raises(RuntimeError, match="i always error"):
        fs.retry()(lambda: None)


def test_with_options():
    fs = FileSystem().with_options(Options(account_name="foo-account"))
    assert fs.options.account_name == "foo-account"
    fs = FileSystem().with_options("Not Azure Options...")
    assert fs.options.account_name == ""


class NullClient(Client):
    def properties(self, container_uri, file_path):
        return None

    def set_metadata(self, file, metadata):
        pass

    def upload(self, file, content):
        pass

    def download(self, file):
        raise FileNotFoundError(file.path())

    def copy(self, src_file, tgt_file):
        pass

    def list(self, location):
        return []

    def delete(self, file):
        pass


def test_with_client():
    client = NullClient()
    fs = FileSystem().with_client(client)
    assert fs.client() is client


def test_client_created_on_demand_and_cached():
    fs = FileSystem().with_options(Options(account_name="acct"))
    first = fs.client()
    assert isinstance(first, DefaultClient)
    assert fs.client() is first


@pytest.mark.parametrize(
    "uri, volume, path",
    [
        ("https://my-account.blob.core.windows.net/my_container/foo/bar/baz/", "my_container", "/foo/bar/baz/"),
        ("https://my-account.blob.core.windows.net/my_container/", "my_container", "/"),
        ("https://my-account.blob.core.windows.net/my_container/foo/bar/baz.txt", "my_container", "/foo/bar/baz.txt"),
    ],
)
def test_parse_path(uri, volume, path):
    assert parse_path(urlsplit(uri).path) == (volume, path)


def test_parse_path_requires_container():
    with pytest.raises(ValueError):
        parse_path(urlsplit("https://my-account.blob.core.windows.net/").path)


@pytest.mark.parametrize(
    "uri, expected",
    [
        ("https://my-account.blob.core.windows.net/my_container/foo/bar/baz/", True),
        ("foo://my-account.blob.core.windows.net/my_container/foo/bar/baz/", False),
        ("https://yadda.yadda.yadda/my_container/foo/bar/baz/", False),
        ("foo://yadda.yadda.yadda/my_container/foo/bar/baz/", False),
    ],
)
def test_is_valid_uri(uri, expected):
    assert is_valid_uri(urlsplit(uri)) is expected
    assert is_valid_uri(uri) is expected