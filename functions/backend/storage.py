"""
Storage abstraction for Firebase Storage uploads and in-memory testing.

Banner and notification images and client documents are uploaded by the admin API and served to
the client app through Firebase download URLs.
"""

from __future__ import annotations

import random
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import quote

from firebase_admin import storage

DOWNLOAD_URL_TEMPLATE = (
    "https://firebasestorage.googleapis.com/v0/b/{bucket}/o/{path}?alt=media&token={token}"
)


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> str:
        """Uploads data and returns a download URL."""
        ...

    def delete(self, path: str) -> None:
        ...


def banner_image_path(email: str, file_name: str) -> str:
    return f"banners/{email}/{int(time.time() * 1000)}_{file_name}"


def notification_image_path(file_name: str) -> str:
    return f"notifications/notification_{int(time.time() * 1000)}_{file_name}"


def year_document_path(client_name: str, year: str, doc_name: str, file_name: str) -> str:
    extension = file_name.rsplit(".", 1)[-1]
    safe_name = re.sub(r"[^a-zA-Z0-9]", "_", doc_name)
    stamp = f"{int(time.time() * 1000)}_{random.randrange(10000)}"
    return f"documents/{client_name}/{year}/{stamp}_{safe_name}.{extension}"


def generic_document_path(firm_id: str, pan: str, file_name: str) -> str:
    return f"{firm_id}/clients/{pan}/generic/{int(time.time() * 1000)}_{file_name}"


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    bucket_name: str = "test-bucket"
    stored_objects: dict = field(default_factory=dict)

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> str:
        self.stored_objects[path] = (data, content_type)
        return DOWNLOAD_URL_TEMPLATE.format(
            bucket=self.bucket_name, path=quote(path, safe=""), token="test-token"
        )

    def delete(self, path: str) -> None:
        self.stored_objects.pop(path, None)


class FirebaseStorageClient:
    """Uploads to the project's default Firebase Storage bucket."""

    def __init__(self, bucket_name: str | None = None, app=None):
        self.bucket = storage.bucket(bucket_name, app=app)

    def upload_bytes(self, path: str, data: bytes, content_type: str) -> str:
        token = str(uuid.uuid4())
        blob = self.bucket.blob(path)
        blob.metadata = {"firebaseStorageDownloadTokens": token}
        blob.upload_from_string(data, content_type=content_type)
        return DOWNLOAD_URL_TEMPLATE.format(
            bucket=self.bucket.name, path=quote(path, safe=""), token=token
        )

    def delete(self, path: str) -> None:
        self.bucket.blob(path).delete()
