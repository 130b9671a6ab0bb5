import base64
from unittest import mock

import pytest

from blobvfs.azure.options import (
    AnonymousCredential,
    BlobProperties,
    DefaultTokenCredentialFactory,
    Options,
    SharedKeyCredential,
    TokenCredential,
    new_options,
)

FIXED_DATE = "Mon, 01 Jan 2024 00:00:00 GMT"
ACCOUNT_URL = "https://foo.blob.core.windows.net/cont/file.txt"


class MockTokenCredentialFactory:
    def __init__(self):
        self.calls = []

    def new(self, tenant_id, client_id, client_secret, azure_env_name):
        self.calls.append((tenant_id, client_id, client_secret, azure_env_name))
        return TokenCredential("token")


ENV_VARS = [
    "VFS_AZURE_STORAGE_ACCOUNT",
    "VFS_AZURE_STORAGE_ACCESS_KEY",
    "VFS_AZURE_TENANT_ID",
    "VFS_AZURE_CLIENT_ID",
    "VFS_AZURE_CLIENT_SECRET",
    "VFS_AZURE_ENV_NAME",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_new_options_reads_environment(clean_env):
    clean_env.setenv("VFS_AZURE_STORAGE_ACCOUNT", "foo")
    clean_env.setenv("VFS_AZURE_STORAGE_ACCESS_KEY", "password")
    options = new_options()
    assert options.account_name == "foo"
    assert options.account_key == "password"
    assert options.tenant_id == ""
    assert isinstance(options.token_credential_factory, DefaultTokenCredentialFactory)


def test_credentials_service_account():
    factory = MockTokenCredentialFactory()
    options = Options(
        account_name="foo",
        tenant_id="foo",
        client_id="foo",
        client_secret="secret",
        token_credential_factory=factory,
    )
    credential = options.credential()
    assert isinstance(credential, TokenCredential)
    assert factory.calls == [("foo", "foo", "secret", "")]


def test_credentials_storage_account():
    account_key = base64.b64encode(b"bar").decode()
    options = Options(
        account_name="foo",
        account_key=account_key,
        token_credential_factory=MockTokenCredentialFactory(),
    )
    credential = options.credential()
    assert isinstance(credential, SharedKeyCredential)
    assert credential.account_name == "foo"


def test_credentials_anon():
    factory = MockTokenCredentialFactory()
    options = Options(account_name="foo", token_credential_factory=factory)
    credential = options.credential()
    assert isinstance(credential, AnonymousCredential)
    assert not isinstance(credential, (TokenCredential, SharedKeyCredential))
    assert credential.apply("GET", ACCOUNT_URL, {"x-ms-version": "2020-04-08"}) == {
        "x-ms-version": "2020-04-08"
    }
    assert factory.calls == []


def test_credential_fills_in_default_factory():
    options = Options(account_name="foo")
    credential = options.credential()
    assert isinstance(credential, AnonymousCredential)
    assert credential.apply("GET", ACCOUNT_URL, {"a": "b"}) == {"a": "b"}
    assert isinstance(options.token_credential_factory, DefaultTokenCredentialFactory)


def test_shared_key_rejects_invalid_base64():
    with pytest.raises(ValueError):
        SharedKeyCredential("foo", "secret")


def test_shared_key_signature_is_deterministic():
    credential = SharedKeyCredential("foo", "password")
    headers = {"x-ms-date": FIXED_DATE, "x-ms-version": "2020-04-08"}
    first = credential.apply("GET", ACCOUNT_URL, headers)
    second = credential.apply("GET", ACCOUNT_URL, headers)
    assert first["Authorization"] == second["Authorization"]
    assert first["Authorization"].startswith("SharedKey foo:")
    signature = first["Authorization"].split(":", 1)[1]
    assert len(base64.b64decode(signature)) == 32
    assert "Authorization" not in headers


def test_shared_key_signature_depends_on_request():
    credential = SharedKeyCredential("foo", "password")
    headers = {"x-ms-date": FIXED_DATE}
    base = credential.apply("GET", ACCOUNT_URL, headers)["Authorization"]
    other_path = credential.apply("GET", ACCOUNT_URL + "x", headers)["Authorization"]
    other_method = credential.apply("DELETE", ACCOUNT_URL, headers)["Authorization"]
    other_query = credential.apply("GET", ACCOUNT_URL + "?comp=metadata", headers)["Authorization"]
    assert len({base, other_path, other_method, other_query}) == 4


def test_shared_key_adds_date_header():
    signed = SharedKeyCredential("foo", "password").apply("GET", ACCOUNT_URL, {})
    assert signed["x-ms-date"].endswith("GMT")


def test_anonymous_credential_leaves_headers():
    headers = {"x-ms-version": "2020-04-08"}
    assert AnonymousCredential().apply("GET", ACCOUNT_URL, headers) == headers


def test_token_credential_sets_bearer():
    signed = TokenCredential("token").apply("GET", ACCOUNT_URL, {})
    assert signed["Authorization"] == "Bearer token"


def test_token_credential_refreshes_when_due():
    calls = []

    def refresher(credential):
        calls.append(credential)
        credential.token = "token"
        return 3600.0

    credential = TokenCredential("placeholder", refresher, 0.0)
    first = credential.apply("GET", ACCOUNT_URL, {})
    second = credential.apply("GET", ACCOUNT_URL, {})
    assert len(calls) == 1
    assert first["Authorization"] == "Bearer token"
    assert second["Authorization"] == "Bearer token"


def test_token_credential_refresher_zero_stops_refreshing():
    calls = []

    def refresher(credential):
        calls.append(1)
        return 0

    credential = TokenCredential("token", refresher, 0.0)
    first = credential.apply("GET", ACCOUNT_URL, {})
    second = credential.apply("GET", ACCOUNT_URL, {})
    assert calls == [1]
    assert first["Authorization"] == "Bearer token"
    assert second["Authorization"] == "Bearer token"


def test_default_factory_unknown_environment():
    with pytest.raises(ValueError, match="no cloud environment"):
        DefaultTokenCredentialFactory().new("tenant", "client", "secret", "nowhere")


def test_default_factory_fetches_token():
    response = mock.MagicMock()
    response.json.return_value = {"access_token": "token", "expires_in": "3600"}
    with mock.patch("blobvfs.azure.options.requests.post", return_value=response) as post:
        credential = DefaultTokenCredentialFactory().new("tenant", "client", "secret", "AzurePublicCloud")
    assert credential.token == "token"
    url = post.call_args.args[0]
    assert "/tenant/oauth2/token" in url
    form = post.call_args.kwargs["data"]
    assert form["client_id"] == "client"
    assert form["client_secret"] == "secret"
    assert form["grant_type"] == "client_credentials"


def test_blob_properties_from_headers():
    props = BlobProperties.from_headers(
        {
            "Content-Length": "12",
            "Last-Modified": FIXED_DATE,
            "x-ms-meta-Foo": "bar",
            "Content-Type": "text/plain",
        }
    )
    assert props.size == 12
    assert props.last_modified.year == 2024
    assert props.metadata == {"foo": "bar"}


def test_blob_properties_defaults():
    props = BlobProperties()
    assert props.size == 0
    assert props.last_modified is None
    assert props.metadata == {}