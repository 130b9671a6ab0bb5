"""Google Cloud Storage backend: options, JSON API client, retrying handles, files and locations."""