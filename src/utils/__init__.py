"""
Utilities Module.

- Logging setup and test narrative helpers.
- Clients for auxiliary services used by tests: Azure Blob Storage, SFTP, email.

The service clients are imported from their own modules so that a test using
one service doesn't need the others' SDKs configured.
"""

from src.utils.log_setup import configure_logging

__all__ = ["configure_logging"]
