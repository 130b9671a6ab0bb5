# blobvfs

`blobvfs` gives one set of objects (file systems, locations and files) for
working with blobs in Azure Blob Storage and objects in Google Cloud Storage.
Both backends expose the same methods, so code that copies, moves, lists or
reads data does not need to know where the data lives.

## Installation

```
pip install blobvfs
```

To run the test suite:

```
pip install "blobvfs[test]"
pytest
```

## Concepts

- **FileSystem**: one per backend (`blobvfs.azure.filesystem.FileSystem`,
  `blobvfs.gs.filesystem.FileSystem`). `new_file(volume, path)` and
  `new_location(volume, path)` create files and locations from a volume (an
  Azure container or a GCS bucket) and an absolute path.
- **Location**: a directory-like prefix inside a volume. It offers `list()`,
  `list_by_prefix()`, `list_by_regex()`, `exists()`, `new_file()`,
  `new_location()`, `change_dir()`, `delete_file()` and `uri()`.
- **File**: a single blob or object, with `read()`, `write()`, `seek()`,
  `close()`, `exists()`, `size()`, `last_modified()`, `touch()`, `delete()`,
  `copy_to_file()`, `copy_to_location()`, `move_to_file()`,
  `move_to_location()`, `path()`, `name()` and `uri()`. Files are context
  managers; leaving the `with` block calls `close()`.

Paths follow strict rules, and breaking them raises
`blobvfs.core.InvalidPathError` (a `ValueError`):

- absolute file paths start with `/` and do not end with `/`;
- absolute location paths start and end with `/`;
- relative file paths are non-empty and neither start nor end with `/`;
- relative location paths do not start with `/` but do end with `/`.

Paths are normalised, so `/path/../to/` becomes `/to/` and `/path/./to/`
becomes `/path/to/`.

## The backend registry

`blobvfs.core` keeps a thread-safe registry of file systems by name.
Importing `blobvfs.azure.filesystem` registers a default Azure file system
under `"https"`, and importing `blobvfs.gs.filesystem` registers a default GCS
file system under `"gs"`.

```python
from blobvfs.core import backend, register, registered_backends, unregister
import blobvfs.gs.filesystem  # registers "gs"

print(registered_backends())   # sorted names, e.g. ['gs']
fs = backend("gs")             # None when nothing is registered under the name
unregister("gs")
```

`register(name, file_system)` adds or replaces an entry and `unregister_all()`
empties the registry.

## Azure Blob Storage

`blobvfs.azure.options.new_options()` reads options from the environment:

| Variable | Option |
| --- | --- |
| `VFS_AZURE_STORAGE_ACCOUNT` | `account_name` |
| `VFS_AZURE_STORAGE_ACCESS_KEY` | `account_key` |
| `VFS_AZURE_TENANT_ID` | `tenant_id` |
| `VFS_AZURE_CLIENT_ID` | `client_id` |
| `VFS_AZURE_CLIENT_SECRET` | `client_secret` |
| `VFS_AZURE_ENV_NAME` | `azure_env_name` |

`FileSystem()` uses these environment options unless given others.
`Options.credential()` picks the first that applies:

1. `tenant_id`, `client_id` and `client_secret` all set: a `TokenCredential`
   obtained with the OAuth client-credentials grant and refreshed shortly
   before it expires. `azure_env_name` must be one of `AzurePublicCloud`,
   `AzureChinaCloud`, `AzureUSGovernmentCloud` or `AzureGermanCloud`
   (case-insensitive);
2. `account_name` and `account_key` set: a `SharedKeyCredential` that signs
   each request (the key must be base64);
3. otherwise an `AnonymousCredential`, which only reaches public blobs.

```python
from blobvfs.azure.filesystem import FileSystem
from blobvfs.azure.options import Options

fs = FileSystem().with_options(Options(account_name="myaccount", account_key="c2VjcmV0"))

location = fs.new_location("my-container", "/reports/2024/")
print(location.uri())       # https://myaccount.blob.core.windows.net/my-container/reports/2024/

with location.new_file("summary.csv") as report:
    report.write(b"id,total\n1,42\n")   # uploaded when the file is closed

print(location.list())      # base names, e.g. ['summary.csv']
```

Reads, writes and seeks on an Azure file work on a local temporary copy,
downloaded on first use when the blob exists; `close()` uploads it if it was
written to. `touch()` creates an empty blob, or rewrites the metadata of an
existing one to move its last-modified time. A server-side copy polls every two
seconds until it is no longer pending.

`FileSystem.with_client()` accepts any `blobvfs.azure.client.Client`, and
`Options.retry_func` replaces the retry function returned by
`FileSystem.retry()`. Failed requests raise `blobvfs.azure.client.StorageError`,
which carries `service_code` and `status_code`.

`parse_path()` and `is_valid_uri()` in `blobvfs.azure.filesystem` split an
Azure URL path into container and path, and tell whether a URL uses `https`
and a `*.blob.core.windows.net` host.

## Google Cloud Storage

```python
from blobvfs.gs.filesystem import FileSystem
from blobvfs.gs.options import Options

fs = FileSystem().with_options(Options(api_key="placeholder"))

source = fs.new_file("my-bucket", "/incoming/data.txt")
archive = fs.new_location("my-bucket", "/archive/")

if source.exists():
    moved = source.move_to_location(archive)
    print(moved.uri())      # gs://my-bucket/archive/data.txt
```

`blobvfs.gs.options.Options` has `api_key`, `credential_file`, `endpoint`,
`scopes`, `retry` and `file_buffer_size`. Only the first of `api_key`,
`credential_file`, `endpoint` and `scopes` that is set is passed to the
client. Storage calls go through `blobvfs.gs.handles.JsonApiClient`, which
speaks the Cloud Storage JSON API; `FileSystem.with_client()` accepts any
`blobvfs.gs.handles.StorageClient`, for example a `JsonApiClient` pointed at a
test server with `endpoint=`. Each request is wrapped in the file system's
retry function.

On a GCS file, reads and seeks work on a local temporary copy of the object,
while writes are buffered in memory and sent on `close()`. `touch()` creates
an empty object; for an existing object it updates the metadata, or, when the
bucket has versioning enabled, moves the object away and back. Missing objects
and buckets raise `ObjectNotExistError` and `BucketNotExistError`.

## Copying between backends

`copy_to_file()` and `copy_to_location()` use the storage service's own copy
when source and target are on the same backend with the same credentials
(the same account key on Azure; the same credential file or API key on GCS).
Otherwise the data is streamed with `blobvfs.core.touch_copy_buffered()`,
in chunks of `file_buffer_size` bytes (256 KiB when unset). A copy only starts
when the source file's cursor is at offset 0; if it is not,
`blobvfs.core.CopyToNotPossibleError` is raised. The move methods copy and
then delete the source.

```python
from blobvfs.azure.filesystem import FileSystem as AzureFileSystem
from blobvfs.gs.filesystem import FileSystem as GSFileSystem

azure_file = AzureFileSystem().new_file("my-container", "/exports/data.json")
gs_location = GSFileSystem().new_location("my-bucket", "/imports/")

copied = azure_file.copy_to_location(gs_location)
```

## What it does not do

- There are only the two backends above: no local disk, in-memory, S3 or SFTP
  file systems.
- There is no command-line tool, and no lookup of a file or location from a
  full URI string across backends.
- The GCS client does not discover application default credentials; a
  `credential_file` must be an `authorized_user` file, and service-account key
  files are rejected.