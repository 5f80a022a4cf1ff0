"""
Fixtures for the browser end-to-end tests.

Opens the Google page objects on the pytest-playwright ``page`` and saves a
full-page screenshot when a test fails, registered as Xray evidence.
"""

from __future__ import annotations

import re
from typing import Any, Generator

import pytest
from loguru import logger

from src.pages import GoogleHomePage, GoogleSearchResultsPage
from src.reporting.xray_plugin import EVIDENCE_PROPERTY
from src.utils.log_setup import log_test_end, log_test_start


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo) -> Generator[None, Any, None]:
    outcome = yield
    report = outcome.get_result()
    setattr(item, f"rep_{report.when}", report)


@pytest.fixture
def google_home(page: Any, request: pytest.FixtureRequest) -> Generator[GoogleHomePage, None, None]:
    """Google home page, opened before the test."""
    home = GoogleHomePage(page)
    log_test_start(request.node.name)
    home.navigate()

    yield home

    report = getattr(request.node, "rep_call", None)
    if report is not None and report.failed:
        log_test_end(request.node.name, "failed")
        name = re.sub(r"\W+", "-", f"failure-{request.node.name}")
        path = home.take_screenshot(name)
        request.node.user_properties.append((EVIDENCE_PROPERTY, str(path)))
        logger.error(f"Test failed. Screenshot saved: {path}")


@pytest.fixture
def search_results(page: Any) -> GoogleSearchResultsPage:
    return GoogleSearchResultsPage(page)
