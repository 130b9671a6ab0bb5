"""File system, location and file objects over Azure Blob Storage and Google Cloud Storage."""

__version__ = "0.1.0"