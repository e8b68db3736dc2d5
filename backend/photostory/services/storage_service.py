"""Durable storage for rendered videos.

Local filesystem in development, Google Cloud Storage in production. Any
I/O failure talking to the backend surfaces as StorageUnavailableError so
the worker treats it as transient.
"""

import asyncio
import logging
import shutil
from datetime import timedelta
from pathlib import Path

from photostory.config import Settings, get_settings
from photostory.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mov": "video/quicktime",
}


def output_key(project_id: str, job_id: str, fmt: str) -> str:
    """Storage key for a job's final artifact."""
    return f"{project_id}/output/{job_id}.{fmt}"


def content_type_for(fmt: str) -> str:
    return CONTENT_TYPES.get(fmt, "application/octet-stream")


class LocalStorageService:
    """Local file storage for development without GCS."""

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self.base_path = Path(settings.local_storage_path)
        self.base_url = settings.local_storage_base_url.rstrip("/")
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, storage_key: str) -> Path:
        full_path = (self.base_path / storage_key).resolve()
        if self.base_path.resolve() not in full_path.parents:
            raise ValueError(f"Storage key escapes storage root: {storage_key}")
        full_path.parent.mkdir(parents=True, exist_ok=True)
        return full_path

    def get_public_url(self, storage_key: str) -> str:
        """Get URL for accessing the file."""
        return f"{self.base_url}/{storage_key}"

    async def upload_file(self, local_path: str, storage_key: str, content_type: str | None = None) -> str:
        """Copy a local file into storage and return its URL."""
        full_path = self._get_full_path(storage_key)
        # Copy next to the target, then rename, so readers never see a partial file
        partial = full_path.with_name(full_path.name + ".partial")
        try:
            await asyncio.to_thread(shutil.copyfile, local_path, str(partial))
            partial.replace(full_path)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise StorageUnavailableError(f"Local storage write failed: {e}") from e
        return self.get_public_url(storage_key)

    async def download_file(self, storage_key: str, local_path: str) -> str:
        """Copy file to local path."""
        full_path = self._get_full_path(storage_key)
        try:
            await asyncio.to_thread(shutil.copyfile, str(full_path), local_path)
        except OSError as e:
            raise StorageUnavailableError(f"Local storage read failed: {e}") from e
        return local_path

    def delete_file(self, storage_key: str) -> bool:
        """Delete file."""
        full_path = self._get_full_path(storage_key)
        if full_path.exists():
            full_path.unlink()
            return True
        return False

    def file_exists(self, storage_key: str) -> bool:
        """Check if file exists."""
        return self._get_full_path(storage_key).exists()

    def get_file_path(self, storage_key: str) -> Path:
        """Get the actual file path for serving."""
        return self._get_full_path(storage_key)


class GCSStorageService:
    """Google Cloud Storage service for production."""

    def __init__(self, settings: Settings | None = None) -> None:
        from google.cloud import storage

        self._settings = settings or get_settings()
        self._storage = storage
        self._client: storage.Client | None = None
        self._bucket: storage.Bucket | None = None

    @property
    def client(self):
        if self._client is None:
            if self._settings.gcs_project_id:
                self._client = self._storage.Client(project=self._settings.gcs_project_id)
            else:
                self._client = self._storage.Client()
        return self._client

    @property
    def bucket(self):
        if self._bucket is None:
            self._bucket = self.client.bucket(self._settings.gcs_bucket_name)
        return self._bucket

    def get_public_url(self, storage_key: str) -> str:
        """Get the public URL for a stored file."""
        return f"https://storage.googleapis.com/{self._settings.gcs_bucket_name}/{storage_key}"

    def generate_download_url(self, storage_key: str) -> str:
        """Generate a V4 signed URL for downloading a file."""
        blob = self.bucket.blob(storage_key)
        return blob.generate_signed_url(
            version="v4",
            expiration=timedelta(hours=self._settings.signed_url_expiration_hours),
            method="GET",
        )

    async def upload_file(self, local_path: str, storage_key: str, content_type: str | None = None) -> str:
        """Upload a local file to GCS."""
        from google.api_core import exceptions as gcs_exceptions

        blob = self.bucket.blob(storage_key)
        try:
            await asyncio.to_thread(blob.upload_from_filename, local_path, content_type=content_type)
        except (gcs_exceptions.GoogleAPICallError, gcs_exceptions.RetryError, OSError) as e:
            raise StorageUnavailableError(f"GCS upload failed: {e}") from e
        return self.get_public_url(storage_key)

    async def download_file(self, storage_key: str, local_path: str) -> str:
        """Download a file from GCS to local path."""
        from google.api_core import exceptions as gcs_exceptions

        blob = self.bucket.blob(storage_key)
        try:
            await asyncio.to_thread(blob.download_to_filename, local_path)
        except (gcs_exceptions.GoogleAPICallError, gcs_exceptions.RetryError, OSError) as e:
            raise StorageUnavailableError(f"GCS download failed: {e}") from e
        return local_path

    def delete_file(self, storage_key: str) -> bool:
        """Delete a file from GCS."""
        blob = self.bucket.blob(storage_key)
        if blob.exists():
            blob.delete()
            return True
        return False

    def file_exists(self, storage_key: str) -> bool:
        """Check if a file exists in GCS."""
        return self.bucket.blob(storage_key).exists()


StorageService = LocalStorageService | GCSStorageService


def create_storage_service(settings: Settings | None = None) -> StorageService:
    """LocalStorageService or GCSStorageService based on config."""
    settings = settings or get_settings()
    if settings.use_local_storage:
        return LocalStorageService(settings)
    logger.info(f"[STORAGE] Using GCS bucket {settings.gcs_bucket_name}")
    return GCSStorageService(settings)
