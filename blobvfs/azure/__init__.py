"""Azure Blob Storage backend: options, credentials, REST client, files and locations."""