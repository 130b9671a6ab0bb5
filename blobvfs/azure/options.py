"""Options, credentials and blob properties for the Azure Blob Storage backend."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import formatdate, parsedate_to_datetime
from typing import Callable, Mapping, Optional, Protocol
from urllib.parse import parse_qsl, urlsplit

import requests

from blobvfs.core import Retry

_META_PREFIX = "x-ms-meta-"

# Seconds before expiry at which an OAuth token is refreshed.
_TOKEN_REFRESH_MARGIN = 120.0

_ENVIRONMENTS = {
    "AZUREPUBLICCLOUD": ("https://login.microsoftonline.com/", "https://storage.azure.com/"),
    "AZURECHINACLOUD": ("https://login.chinacloudapi.cn/", "https://storage.azure.com/"),
    "AZUREUSGOVERNMENTCLOUD": ("https://login.microsoftonline.us/", "https://storage.azure.com/"),
    "AZUREGERMANCLOUD": ("https://login.microsoftonline.de/", "https://storage.azure.com/"),
}


@dataclass
class BlobProperties:
    """The subset of blob properties used by the backend."""

    size: int = 0
    last_modified: Optional[datetime] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "BlobProperties":
        """Build properties from the headers of a blob properties response."""
        lowered = {key.lower(): value for key, value in headers.items()}
        modified = lowered.get("last-modified")
        return cls(
            size=int(lowered.get("content-length") or 0),
            last_modified=parsedate_to_datetime(modified) if modified else None,
            metadata={
                key[len(_META_PREFIX):]: value
                for key, value in lowered.items()
                if key.startswith(_META_PREFIX)
            },
        )


class Credential(Protocol):
    def apply(self, method: str, url: str, headers: Mapping[str, str]) -> dict[str, str]:
        ...


class AnonymousCredential:
    """Credential for publicly readable blobs: requests go out unsigned."""

    def apply(self, method: str, url: str, headers: Mapping[str, str]) -> dict[str, str]:
        return dict(headers)


class SharedKeyCredential:
    """Signs requests with a storage account name and its base64 account key."""

    def __init__(self, account_name: str, account_key: str):
        self.account_name = account_name
        try:
            self._key = base64.b64decode(account_key, validate=True)
        except binascii.Error as exc:
            raise ValueError("account key is not valid base64") from exc

    def apply(self, method: str, url: str, headers: Mapping[str, str]) -> dict[str, str]:
        signed = dict(headers)
        if not any(key.lower() == "x-ms-date" for key in signed):
            signed["x-ms-date"] = formatdate(usegmt=True)
        lowered = {key.lower(): str(value) for key, value in signed.items()}

        content_length = lowered.get("content-length", "")
        if content_length == "0":
            content_length = ""

        string_to_sign = "\n".join(
            [
                method.upper(),
                lowered.get("content-encoding", ""),
                lowered.get("content-language", ""),
                content_length,
                lowered.get("content-md5", ""),
                lowered.get("content-type", ""),
                "",  # Date is carried by x-ms-date instead
                lowered.get("if-modified-since", ""),
                lowered.get("if-match", ""),
                lowered.get("if-none-match", ""),
                lowered.get("if-unmodified-since", ""),
                lowered.get("range", ""),
                self._canonical_headers(lowered),
                self._canonical_resource(url),
            ]
        )
        digest = hmac.new(self._key, string_to_sign.encode("utf-8"), hashlib.sha256).digest()
        signature = base64.b64encode(digest).decode("ascii")
        signed["Authorization"] = f"SharedKey {self.account_name}:{signature}"
        return signed

    @staticmethod
    def _canonical_headers(lowered: Mapping[str, str]) -> str:
        return "\n".join(
            f"{key}:{lowered[key].strip()}" for key in sorted(lowered) if key.startswith("x-ms-")
        )

    def _canonical_resource(self, url: str) -> str:
        parts = urlsplit(url)
        resource = f"/{self.account_name}{parts.path or '/'}"
        params: dict[str, list[str]] = {}
        for key, value in parse_qsl(parts.query, keep_blank_values=True):
            params.setdefault(key.lower(), []).append(value)
        for key in sorted(params):
            resource += f"\n{key}:{','.join(sorted(params[key]))}"
        return resource


class TokenCredential:
    """Bearer token credential, optionally kept fresh by a refresher.

    The refresher receives the credential, updates its ``token`` and returns the
    number of seconds until the next refresh; a value of 0 or less stops refreshing.
    """

    def __init__(
        self,
        token: str,
        refresher: Optional[Callable[["TokenCredential"], float]] = None,
        refresh_in: float = 0.0,
    ):
        self.token = token
        self._refresher = refresher
        self._refresh_at = time.monotonic() + refresh_in
        self._lock = threading.Lock()

    def apply(self, method: str, url: str, headers: Mapping[str, str]) -> dict[str, str]:
        self._refresh_if_due()
        signed = dict(headers)
        signed["Authorization"] = f"Bearer {self.token}"
        return signed

    def _refresh_if_due(self) -> None:
        with self._lock:
            if self._refresher is None or time.monotonic() < self._refresh_at:
                return
            delay = self._refresher(self)
            if delay <= 0:
                self._refresher = None
            else:
                self._refresh_at = time.monotonic() + delay


class TokenCredentialFactory(Protocol):
    def new(self, tenant_id: str, client_id: str, client_secret: str, azure_env_name: str) -> TokenCredential:
        ...


class DefaultTokenCredentialFactory:
    """Creates OAuth token credentials using the client-credentials grant."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    def new(self, tenant_id: str, client_id: str, client_secret: str, azure_env_name: str) -> TokenCredential:
        try:
            authority, resource = _ENVIRONMENTS[azure_env_name.upper()]
        except KeyError:
            raise ValueError(f'there is no cloud environment matching the name "{azure_env_name}"') from None

        token_url = f"{authority}{tenant_id}/oauth2/token"
        form = {
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
            "resource": resource,
        }

        def fetch() -> tuple[str, float]:
            response = requests.post(token_url, data=form, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
            return payload["access_token"], float(payload.get("expires_in", 0))

        def refresher(credential: TokenCredential) -> float:
            credential.token, expires_in = fetch()
            return expires_in - _TOKEN_REFRESH_MARGIN

        initial_token, expires_in = fetch()
        return TokenCredential(initial_token, refresher, expires_in - _TOKEN_REFRESH_MARGIN)


@dataclass
class Options:
    """Settings for the Azure backend; see credential() for how auth is chosen."""

    account_name: str = ""
    account_key: str = ""
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    azure_env_name: str = ""
    retry_func: Optional[Retry] = None
    file_buffer_size: int = 0
    token_credential_factory: Optional[TokenCredentialFactory] = None

    def credential(self) -> Credential:
        """Return the credential these options call for.

        Service-account fields give a token credential, an account name and key
        give a shared key credential, and anything else is anonymous.
        """
        if self.token_credential_factory is None:
            self.token_credential_factory = DefaultTokenCredentialFactory()

        if self.tenant_id and self.client_id and self.client_secret:
            return self.token_credential_factory.new(
                self.tenant_id, self.client_id, self.client_secret, self.azure_env_name
            )

        if self.account_name and self.account_key:
            return SharedKeyCredential(self.account_name, self.account_key)

        return AnonymousCredential()


def new_options() -> Options:
    """Build Options from the VFS_AZURE_* environment variables."""
    env = os.environ
    return Options(
        account_name=env.get("VFS_AZURE_STORAGE_ACCOUNT", ""),
        account_key=env.get("VFS_AZURE_STORAGE_ACCESS_KEY", ""),
        tenant_id=env.get("VFS_AZURE_TENANT_ID", ""),
        client_id=env.get("VFS_AZURE_CLIENT_ID", ""),
        client_secret=env.get("VFS_AZURE_CLIENT_SECRET", ""),
        azure_env_name=env.get("VFS_AZURE_ENV_NAME", ""),
        token_credential_factory=DefaultTokenCredentialFactory(),
    )