"""
Xray client factory.

Selects the client implementation for an XraySettings deployment.
"""

from __future__ import annotations

from loguru import logger

from src.config.settings import XraySettings
from src.jira_client.xray_client import XrayClient
from src.jira_client.xray_cloud_client import XrayCloudClient

SUPPORTED_DEPLOYMENTS = ("server", "cloud")


def create_xray_client(settings: XraySettings) -> XrayClient:
    """
    Create the Xray client matching ``settings.deployment``.

    Args:
        settings: Xray reporting settings.

    Returns:
        XrayClient for "server", XrayCloudClient for "cloud". Read-only
        settings (or ``create_test_cases=False``) disable Test issue creation.

    Raises:
        ValueError: If the deployment is not supported.
    """
    deployment = settings.deployment.lower()
    if deployment not in SUPPORTED_DEPLOYMENTS:
        raise ValueError(
            f"Unsupported Xray deployment: '{settings.deployment}'. "
            f"Supported: {list(SUPPORTED_DEPLOYMENTS)}"
        )

    common = dict(
        base_url=settings.base_url,
        project_key=settings.project_key,
        api_token=settings.api_token,
        username=settings.username,
        timeout_sec=settings.timeout_sec,
        verify_ssl=settings.verify_ssl,
        allow_create=settings.can_create_issues,
    )

    if deployment == "cloud":
        client: XrayClient = XrayCloudClient(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            **common,
        )
    else:
        client = XrayClient(auth_method="basic", **common)

    if settings.read_only:
        logger.info("Xray client is read-only: Test issues will not be created")
    return client
