"""Services for dataset_uploader."""
from .api_client import HTTPStorageClient
from .file_policy import AcceptedFileTypes
from .storage import StorageService, classify_error

__all__ = [
    "HTTPStorageClient",
    "AcceptedFileTypes",
    "StorageService",
    "classify_error",
]
