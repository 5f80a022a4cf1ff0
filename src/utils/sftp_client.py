"""
SFTP client for test validation.

Wraps paramiko's SSHClient/SFTPClient with the operations tests need to
stage files on, and verify files delivered to, an SFTP server.
"""

from __future__ import annotations

import posixpath
import stat
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import paramiko
from loguru import logger

from src.config.settings import SftpSettings


class SftpClientError(Exception):
    """Raised when an SFTP operation fails."""


@dataclass
class SftpFileInfo:
    """Attributes of a remote file or directory."""

    name: str
    size: int
    modify_time: datetime
    access_time: datetime
    is_file: bool
    is_directory: bool
    permissions: str

    @classmethod
    def from_attributes(cls, name: str, attrs: paramiko.SFTPAttributes) -> "SftpFileInfo":
        mode = attrs.st_mode or 0
        return cls(
            name=name,
            size=attrs.st_size or 0,
            modify_time=datetime.fromtimestamp(attrs.st_mtime or 0),
            access_time=datetime.fromtimestamp(attrs.st_atime or 0),
            is_file=stat.S_ISREG(mode),
            is_directory=stat.S_ISDIR(mode),
            permissions=oct(stat.S_IMODE(mode))[2:],
        )


class SftpClient:
    """
    SFTP client usable as a context manager.

    Usage::

        with SftpClient(load_settings().sftp) as sftp:
            sftp.upload_file("fixtures/input.csv", "/incoming/input.csv")
            assert sftp.wait_for_file("/outgoing/result.csv", timeout=60)

    Operations connect lazily, so ``connect()`` is optional.
    """

    def __init__(
        self,
        settings: SftpSettings,
        ssh_client: Optional[paramiko.SSHClient] = None,
    ) -> None:
        """
        Args:
            settings: Host, port and credentials.
            ssh_client: Pre-built SSH client (otherwise a new paramiko.SSHClient).

        Raises:
            SftpClientError: If host or username is missing.
        """
        if not settings.host or not settings.username:
            raise SftpClientError("SFTP configuration is incomplete: host and username are required")
        self._settings = settings
        self._ssh = ssh_client or paramiko.SSHClient()
        self._sftp: Optional[paramiko.SFTPClient] = None

    @property
    def is_connected(self) -> bool:
        return self._sftp is not None

    def connect(self) -> None:
        """
        Open the SSH connection and SFTP session.

        Raises:
            SftpClientError: If no credentials are configured or the connection fails.
        """
        if self._sftp is not None:
            logger.debug("SFTP client is already connected")
            return

        connect_kwargs = {
            "hostname": self._settings.host,
            "port": self._settings.port,
            "username": self._settings.username,
        }
        if self._settings.password:
            connect_kwargs["password"] = self._settings.password
        elif self._settings.private_key_path:
            connect_kwargs["key_filename"] = self._settings.private_key_path
        else:
            raise SftpClientError(
                "Either password or private key must be provided for SFTP authentication"
            )

        self._ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            self._ssh.connect(**connect_kwargs)
            self._sftp = self._ssh.open_sftp()
        except (paramiko.SSHException, OSError) as e:
            logger.error(
                f"Failed to connect to SFTP server {self._settings.host}:{self._settings.port}: {e}"
            )
            raise SftpClientError(f"Failed to connect to SFTP server: {e}") from e
        logger.info(f"Connected to SFTP server: {self._settings.host}:{self._settings.port}")

    def disconnect(self) -> None:
        if self._sftp is None:
            return
        self._sftp.close()
        self._sftp = None
        self._ssh.close()
        logger.info("Disconnected from SFTP server")

    def __enter__(self) -> "SftpClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()

    def _session(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            self.connect()
        return self._sftp

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def upload_file(self, local_path: str | Path, remote_path: str) -> None:
        """Upload a local file, creating remote parent directories."""
        local = Path(local_path)
        if not local.is_file():
            raise SftpClientError(f"Local file does not exist: {local_path}")

        sftp = self._session()
        self.create_directory(posixpath.dirname(remote_path))
        try:
            sftp.put(str(local), remote_path)
        except (OSError, paramiko.SSHException) as e:
            logger.error(f"Failed to upload {local} -> {remote_path}: {e}")
            raise SftpClientError(f"Failed to upload {local}: {e}") from e
        logger.info(f"File uploaded successfully: {local} -> {remote_path}")

    def download_file(self, remote_path: str, local_path: str | Path) -> Path:
        """Download a remote file, creating local parent directories."""
        local = Path(local_path)
        local.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._session().get(remote_path, str(local))
        except (OSError, paramiko.SSHException) as e:
            logger.error(f"Failed to download {remote_path} -> {local}: {e}")
            raise SftpClientError(f"Failed to download {remote_path}: {e}") from e
        logger.info(f"File downloaded successfully: {remote_path} -> {local}")
        return local

    def file_exists(self, remote_path: str) -> bool:
        sftp = self._session()
        try:
            sftp.stat(remote_path)
        except OSError:
            logger.debug(f"File existence check: {remote_path} - not found")
            return False
        logger.debug(f"File existence check: {remote_path} - exists")
        return True

    def get_file_info(self, remote_path: str) -> SftpFileInfo:
        try:
            attrs = self._session().stat(remote_path)
        except OSError as e:
            logger.error(f"Failed to get file info for {remote_path}: {e}")
            raise SftpClientError(f"Failed to get file info for {remote_path}: {e}") from e
        return SftpFileInfo.from_attributes(posixpath.basename(remote_path), attrs)

    def list_files(self, remote_path: str = ".") -> List[SftpFileInfo]:
        try:
            entries = self._session().listdir_attr(remote_path)
        except OSError as e:
            logger.error(f"Failed to list files in {remote_path}: {e}")
            raise SftpClientError(f"Failed to list {remote_path}: {e}") from e
        files = [SftpFileInfo.from_attributes(attrs.filename, attrs) for attrs in entries]
        logger.info(f"Listed {len(files)} files in directory: {remote_path}")
        return files

    def get_file_content(self, remote_path: str, encoding: str = "utf-8") -> str:
        try:
            with self._session().open(remote_path, "rb") as remote_file:
                content = remote_file.read()
        except OSError as e:
            logger.error(f"Failed to read {remote_path}: {e}")
            raise SftpClientError(f"Failed to read {remote_path}: {e}") from e
        logger.info(f"Retrieved content from file: {remote_path}")
        return content.decode(encoding)

    def delete_file(self, remote_path: str) -> None:
        try:
            self._session().remove(remote_path)
        except OSError as e:
            logger.error(f"Failed to delete file {remote_path}: {e}")
            raise SftpClientError(f"Failed to delete {remote_path}: {e}") from e
        logger.info(f"File deleted: {remote_path}")

    # ------------------------------------------------------------------
    # Directories
    # ------------------------------------------------------------------

    def create_directory(self, remote_path: str) -> None:
        """Create a remote directory and any missing parents."""
        if remote_path in ("", ".", "/"):
            return
        sftp = self._session()
        current = "/" if remote_path.startswith("/") else ""
        for part in remote_path.strip("/").split("/"):
            current = posixpath.join(current, part) if current else part
            try:
                sftp.stat(current)
                continue
            except OSError:
                pass
            try:
                sftp.mkdir(current)
            except OSError as e:
                raise SftpClientError(f"Failed to create directory {current}: {e}") from e
            logger.info(f"Directory created: {current}")

    def delete_directory(self, remote_path: str, recursive: bool = False) -> None:
        sftp = self._session()
        try:
            if recursive:
                for attrs in sftp.listdir_attr(remote_path):
                    child = posixpath.join(remote_path, attrs.filename)
                    if stat.S_ISDIR(attrs.st_mode or 0):
                        self.delete_directory(child, recursive=True)
                    else:
                        sftp.remove(child)
            sftp.rmdir(remote_path)
        except OSError as e:
            logger.error(f"Failed to delete directory {remote_path}: {e}")
            raise SftpClientError(f"Failed to delete directory {remote_path}: {e}") from e
        logger.info(f"Directory deleted: {remote_path}")

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_file(
        self,
        remote_path: str,
        expected_size: Optional[int] = None,
        max_age_minutes: Optional[float] = None,
    ) -> bool:
        """
        Check that a remote file exists, has the expected size and is recent.

        Returns:
            True when every given expectation holds; errors count as failure.
        """
        try:
            if not self.file_exists(remote_path):
                logger.error(f"Validation failed: File does not exist - {remote_path}")
                return False
            info = self.get_file_info(remote_path)
        except SftpClientError as e:
            logger.error(f"File validation error for {remote_path}: {e}")
            return False

        if expected_size is not None and info.size != expected_size:
            logger.error(
                f"Validation failed: Size mismatch for {remote_path}. "
                f"Expected: {expected_size}, Actual: {info.size}"
            )
            return False

        if max_age_minutes is not None:
            age_minutes = (datetime.now() - info.modify_time).total_seconds() / 60
            if age_minutes > max_age_minutes:
                logger.error(
                    f"Validation failed: File is too old - {remote_path}. "
                    f"Age: {age_minutes:.2f} minutes, Max: {max_age_minutes} minutes"
                )
                return False

        logger.info(f"File validation passed for: {remote_path}")
        return True

    def wait_for_file(
        self,
        remote_path: str,
        timeout: float = 30.0,
        poll_interval: float = 5.0,
    ) -> bool:
        """
        Poll until a remote file appears.

        Args:
            remote_path: File to wait for.
            timeout: Seconds to wait in total.
            poll_interval: Seconds between checks.

        Returns:
            True if the file appeared within the timeout.
        """
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            try:
                if self.file_exists(remote_path):
                    logger.info(f"File found: {remote_path}")
                    return True
                logger.debug(f"File not found yet, waiting {poll_interval}s...")
            except SftpClientError as e:
                logger.warning(f"Error during file check, retrying: {e}")
            time.sleep(poll_interval)

        logger.warning(f"File not found within timeout period: {remote_path}")
        return False
