import pytest

from blobvfs.gs.options import Options, parse_client_options


def test_api_key_wins_over_everything():
    opts = Options(
        api_key="placeholder",
        credential_file="/tmp/creds.json",
        endpoint="http://localhost:4443",
        scopes=["read"],
    )
    assert parse_client_options(opts) == {"api_key": "placeholder"}


def test_credential_file_wins_over_endpoint_and_scopes():
    opts = Options(credential_file="/tmp/creds.json", endpoint="http://localhost:4443", scopes=["read"])
    assert parse_client_options(opts) == {"credentials_file": "/tmp/creds.json"}


def test_endpoint_wins_over_scopes():
    opts = Options(endpoint="http://localhost:4443", scopes=["read"])
    assert parse_client_options(opts) == {"endpoint": "http://localhost:4443"}


def test_scopes_alone():
    opts = Options(scopes=["read", "write"])
    assert parse_client_options(opts) == {"scopes": ["read", "write"]}


def test_scopes_are_copied():
    opts = Options(scopes=["read"])
    result = parse_client_options(opts)
    result["scopes"].append("write")
    assert opts.scopes == ["read"]


def test_empty_options_give_nothing():
    assert parse_client_options(Options()) == {}


@pytest.mark.parametrize("value", [None, "Not gs options", {"api_key": "placeholder"}, 42])
def test_other_types_are_ignored(value):
    assert parse_client_options(value) == {}


def test_retry_and_buffer_size_do_not_become_client_options():
    opts = Options(retry=lambda wrapped: wrapped(), file_buffer_size=1024)
    assert parse_client_options(opts) == {}