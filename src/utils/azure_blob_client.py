"""
Azure Blob Storage client for test validation.

Thin wrapper over ``azure-storage-blob`` used by tests that need to stage
input files or verify that an application wrote the expected output blobs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from azure.core.exceptions import AzureError, ResourceExistsError
from azure.storage.blob import BlobServiceClient, ContentSettings
from loguru import logger

from src.config.settings import AzureSettings


class BlobStorageError(Exception):
    """Raised when an Azure Blob Storage operation fails."""


@dataclass
class BlobInfo:
    """Properties of a stored blob."""

    name: str
    size: int
    last_modified: Optional[datetime]
    content_type: str
    etag: str


def _to_blob_info(name: str, properties) -> BlobInfo:
    content_settings = getattr(properties, "content_settings", None)
    return BlobInfo(
        name=name,
        size=properties.size or 0,
        last_modified=properties.last_modified,
        content_type=(content_settings.content_type if content_settings else None) or "unknown",
        etag=properties.etag or "",
    )


class AzureBlobClient:
    """
    Client for one Azure Blob Storage container.

    Usage::

        client = AzureBlobClient(load_settings().azure)
        client.create_container_if_not_exists()
        client.upload_content("hello", "inbox/hello.txt")
        assert client.validate_file("inbox/hello.txt", expected_size=5)
    """

    def __init__(
        self,
        settings: AzureSettings,
        service_client: Optional[BlobServiceClient] = None,
    ) -> None:
        """
        Args:
            settings: Connection string and container name.
            service_client: Pre-built service client (otherwise created from
                            the connection string).

        Raises:
            BlobStorageError: If no connection string is configured.
        """
        if service_client is None and not settings.connection_string:
            raise BlobStorageError("Azure Storage connection string is not configured")

        self._container_name = settings.container_name
        try:
            self._service = service_client or BlobServiceClient.from_connection_string(
                settings.connection_string
            )
        except (AzureError, ValueError) as e:
            raise BlobStorageError(f"Failed to initialize Azure Blob client: {e}") from e

        self._container = self._service.get_container_client(self._container_name)
        logger.info(f"Azure Blob client initialized for container: {self._container_name}")

    @property
    def container_name(self) -> str:
        return self._container_name

    def create_container_if_not_exists(self) -> bool:
        """
        Create the container.

        Returns:
            True if it was created, False if it already existed.
        """
        try:
            self._container.create_container(public_access="blob")
        except ResourceExistsError:
            logger.debug(f"Container '{self._container_name}' already exists")
            return False
        except AzureError as e:
            raise BlobStorageError(f"Failed to create container: {e}") from e
        logger.info(f"Container '{self._container_name}' created successfully")
        return True

    def upload_file(
        self,
        local_file_path: str | Path,
        blob_name: str,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
        overwrite: bool = True,
    ) -> None:
        """Upload a local file to ``blob_name``."""
        blob = self._container.get_blob_client(blob_name)
        try:
            with open(local_file_path, "rb") as data:
                blob.upload_blob(
                    data,
                    overwrite=overwrite,
                    metadata=metadata,
                    content_settings=ContentSettings(content_type=content_type),
                )
        except (AzureError, OSError) as e:
            logger.error(f"Failed to upload file {local_file_path} -> {blob_name}: {e}")
            raise BlobStorageError(f"Failed to upload {local_file_path}: {e}") from e
        logger.info(f"File uploaded successfully: {local_file_path} -> {blob_name}")

    def upload_content(
        self,
        content: str | bytes,
        blob_name: str,
        content_type: str = "text/plain",
        metadata: Optional[Dict[str, str]] = None,
        overwrite: bool = True,
    ) -> None:
        """Upload in-memory text or bytes to ``blob_name``."""
        blob = self._container.get_blob_client(blob_name)
        try:
            blob.upload_blob(
                content,
                overwrite=overwrite,
                metadata=metadata,
                content_settings=ContentSettings(content_type=content_type),
            )
        except AzureError as e:
            logger.error(f"Failed to upload content to {blob_name}: {e}")
            raise BlobStorageError(f"Failed to upload content to {blob_name}: {e}") from e
        logger.info(f"Content uploaded successfully to: {blob_name}")

    def download_file(self, blob_name: str, local_file_path: str | Path) -> Path:
        """Download ``blob_name`` to a local file, creating parent directories."""
        path = Path(local_file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            data = self._container.get_blob_client(blob_name).download_blob().readall()
        except AzureError as e:
            logger.error(f"Failed to download {blob_name}: {e}")
            raise BlobStorageError(f"Failed to download {blob_name}: {e}") from e
        path.write_bytes(data)
        logger.info(f"File downloaded successfully: {blob_name} -> {path}")
        return path

    def download_content(self, blob_name: str, encoding: str = "utf-8") -> str:
        """Download ``blob_name`` and decode it as text."""
        try:
            data = self._container.get_blob_client(blob_name).download_blob().readall()
        except AzureError as e:
            logger.error(f"Failed to download content from {blob_name}: {e}")
            raise BlobStorageError(f"Failed to download {blob_name}: {e}") from e
        logger.info(f"Content downloaded successfully from: {blob_name}")
        return data.decode(encoding) if isinstance(data, bytes) else data

    def blob_exists(self, blob_name: str) -> bool:
        """Check if a blob exists; storage errors count as "not found"."""
        try:
            exists = self._container.get_blob_client(blob_name).exists()
        except AzureError as e:
            logger.error(f"Failed to check blob existence for {blob_name}: {e}")
            return False
        logger.debug(f"Blob existence check: {blob_name} - {'exists' if exists else 'not found'}")
        return exists

    def get_blob_info(self, blob_name: str) -> BlobInfo:
        try:
            properties = self._container.get_blob_client(blob_name).get_blob_properties()
        except AzureError as e:
            logger.error(f"Failed to get blob info for {blob_name}: {e}")
            raise BlobStorageError(f"Failed to get blob info for {blob_name}: {e}") from e
        info = _to_blob_info(blob_name, properties)
        logger.debug(f"Retrieved blob info for {blob_name}: {info}")
        return info

    def list_blobs(self, prefix: str = "") -> List[BlobInfo]:
        """List blobs in the container, optionally under a name prefix."""
        try:
            blobs = [
                _to_blob_info(blob.name, blob)
                for blob in self._container.list_blobs(name_starts_with=prefix or None)
            ]
        except AzureError as e:
            logger.error(f"Failed to list blobs (prefix='{prefix}'): {e}")
            raise BlobStorageError(f"Failed to list blobs: {e}") from e
        logger.info(f"Listed {len(blobs)} blobs" + (f" with prefix '{prefix}'" if prefix else ""))
        return blobs

    def delete_blob(self, blob_name: str) -> None:
        try:
            self._container.get_blob_client(blob_name).delete_blob()
        except AzureError as e:
            logger.error(f"Failed to delete blob {blob_name}: {e}")
            raise BlobStorageError(f"Failed to delete {blob_name}: {e}") from e
        logger.info(f"Blob deleted successfully: {blob_name}")

    def validate_file(
        self,
        blob_name: str,
        expected_size: Optional[int] = None,
        expected_content_type: Optional[str] = None,
    ) -> bool:
        """
        Check that a blob exists and matches the expected size / content type.

        Returns:
            True when every given expectation holds; errors count as failure.
        """
        if not self.blob_exists(blob_name):
            logger.error(f"Validation failed: Blob does not exist - {blob_name}")
            return False

        try:
            info = self.get_blob_info(blob_name)
        except BlobStorageError as e:
            logger.error(f"File validation error for {blob_name}: {e}")
            return False

        if expected_size is not None and info.size != expected_size:
            logger.error(
                f"Validation failed: Size mismatch for {blob_name}. "
                f"Expected: {expected_size}, Actual: {info.size}"
            )
            return False

        if expected_content_type and info.content_type != expected_content_type:
            logger.error(
                f"Validation failed: Content type mismatch for {blob_name}. "
                f"Expected: {expected_content_type}, Actual: {info.content_type}"
            )
            return False

        logger.info(f"File validation passed for: {blob_name}")
        return True
