"""Options for the Google Cloud Storage backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from blobvfs.core import Retry


@dataclass
class Options:
    """Google Cloud Storage settings; only one client option is ever applied."""

    api_key: str = ""
    credential_file: str = ""
    endpoint: str = ""
    scopes: list[str] = field(default_factory=list)
    retry: Optional[Retry] = None
    file_buffer_size: int = 0


def parse_client_options(options: Any) -> dict[str, Any]:
    """Turn gs Options into keyword arguments for the storage client.

    Anything that is not a gs Options gives no arguments. Otherwise the first
    set field, in the order api key, credential file, endpoint, scopes, wins.
    """
    if not isinstance(options, Options):
        return {}
    if options.api_key:
        return {"api_key": options.api_key}
    if options.credential_file:
        return {"credentials_file": options.credential_file}
    if options.endpoint:
        return {"endpoint": options.endpoint}
    if options.scopes:
        return {"scopes": list(options.scopes)}
    return {}