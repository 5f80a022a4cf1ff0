"""
Root conftest.py: shared Pytest fixtures and configuration.

Provides:
- The Xray reporter plugin (enabled with --xray).
- Session setup/teardown: output directories and logging.
- Configuration fixtures (ConfigLoader, environment and Xray settings).
- Browser launch options for pytest-playwright from the environment settings.
- Deselection of browser tests unless --run-e2e is given.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Generator

import pytest
from loguru import logger

from src.config.loader import ConfigLoader
from src.config.settings import (
    EnvironmentSettings,
    XraySettings,
    load_settings,
    load_xray_settings,
)
from src.utils.log_setup import configure_logging

pytest_plugins = ["pytester", "src.reporting.xray_plugin"]

PROJECT_ROOT = Path(__file__).parent.parent
OUTPUT_DIRS = ("logs", "test-results", "downloads")


# ---------------------------------------------------------------------------
# CLI Options
# ---------------------------------------------------------------------------


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom CLI options for the test framework."""
    parser.addoption(
        "--run-e2e",
        action="store_true",
        default=False,
        help="Run browser end-to-end tests (marked e2e). Default: False",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Register custom Pytest markers."""
    config.addinivalue_line(
        "markers",
        "e2e: Browser end-to-end tests (need --run-e2e and Playwright browsers)",
    )
    config.addinivalue_line(
        "markers",
        "smoke: Smoke tests",
    )
    config.addinivalue_line(
        "markers",
        "regression: Regression tests",
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Skip e2e tests unless --run-e2e is given."""
    if config.getoption("--run-e2e"):
        return
    skip_e2e = pytest.mark.skip(reason="browser test: use --run-e2e to run")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


# ---------------------------------------------------------------------------
# Configuration Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def config_dir() -> Path:
    """Return the path to the configuration directory."""
    return PROJECT_ROOT / "config"


@pytest.fixture(scope="session")
def config_loader(config_dir: Path) -> ConfigLoader:
    """Create a shared ConfigLoader instance for the test session."""
    return ConfigLoader(config_dir=config_dir)


@pytest.fixture(scope="session")
def environment_settings() -> EnvironmentSettings:
    """Browser and auxiliary service settings for the session."""
    return load_settings()


@pytest.fixture(scope="session")
def xray_settings() -> XraySettings:
    """Jira Xray reporting settings for the session."""
    return load_xray_settings()


# ---------------------------------------------------------------------------
# Session Lifecycle
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session", autouse=True)
def test_session(environment_settings: EnvironmentSettings) -> Generator[None, None, None]:
    """
    Session-wide setup and teardown.

    Creates the output directories, configures logging and logs where the
    tests are running.
    """
    for name in OUTPUT_DIRS:
        Path(name).mkdir(parents=True, exist_ok=True)

    configure_logging(environment_settings.logging)
    logger.info("Starting global test setup")
    logger.info(
        f"Test environment: {environment_settings.environment} "
        f"({'CI' if environment_settings.is_ci() else 'local'})"
    )
    logger.info(f"Base URL: {environment_settings.base_url}")
    logger.info("Global test setup completed successfully")

    yield

    logger.info("Global test teardown completed")


# ---------------------------------------------------------------------------
# Browser Fixtures (pytest-playwright)
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def browser_type_launch_args(
    browser_type_launch_args: Dict[str, Any],
    environment_settings: EnvironmentSettings,
    pytestconfig: pytest.Config,
) -> Dict[str, Any]:
    """Apply HEADLESS / SLOW_MO unless --headed was given explicitly."""
    launch_args = dict(browser_type_launch_args)
    if not pytestconfig.getoption("--headed"):
        launch_args["headless"] = environment_settings.headless
    if environment_settings.slow_mo:
        launch_args["slow_mo"] = environment_settings.slow_mo
    return launch_args


@pytest.fixture
def page(page: Any, environment_settings: EnvironmentSettings) -> Any:
    """Playwright page with the configured default timeout."""
    page.set_default_timeout(environment_settings.timeout)
    return page
