"""
Browser End-to-End Test Framework - Core Source Package.

This package contains the core logic for:
- Pages: Playwright Page Objects used by the browser tests.
- Jira Client: Xray API integration (Server/DC and Cloud) for reporting.
- Reporting: Pytest plugin that publishes results to Xray.
- Configuration: Environment settings with YAML files and env overrides.
- Utils: Logging and Azure Blob / SFTP / email clients for test data.
"""

__version__ = "0.1.0"
