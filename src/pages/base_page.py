"""
Base Page Object on Playwright's sync API.

Page Objects keep locators and page-level actions out of the tests. Every
action waits for its element first and logs what it did.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

from loguru import logger
from playwright.sync_api import Dialog, Locator, Page, expect
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

DEFAULT_TIMEOUT_MS = 30000
VISIBILITY_PROBE_MS = 5000
SCREENSHOT_DIR = Path("test-results")


class BasePage:
    """
    Common navigation, waiting, interaction and assertion helpers.

    Args:
        page: Playwright page (e.g. the pytest-playwright ``page`` fixture).
        url: Address opened by ``navigate()``.
    """

    def __init__(self, page: Page, url: str = "") -> None:
        self.page = page
        self.url = url

    # -- navigation --------------------------------------------------------

    def navigate(self) -> None:
        """
        Open the page URL and wait for the network to settle.

        Raises:
            ValueError: If the page has no URL.
        """
        if not self.url:
            raise ValueError(f"URL is not defined for {type(self).__name__}")
        logger.info(f"Navigating to: {self.url}")
        self.page.goto(self.url)
        self.wait_for_page_load()

    def wait_for_page_load(self) -> None:
        self.page.wait_for_load_state("networkidle")
        logger.debug("Page loaded successfully")

    def get_title(self) -> str:
        title = self.page.title()
        logger.debug(f"Page title: {title}")
        return title

    def get_current_url(self) -> str:
        url = self.page.url
        logger.debug(f"Current URL: {url}")
        return url

    # -- interaction -------------------------------------------------------

    def wait_for_element(self, locator: Locator, timeout: int = DEFAULT_TIMEOUT_MS) -> None:
        locator.wait_for(state="visible", timeout=timeout)

    def click_element(self, locator: Locator, timeout: int = DEFAULT_TIMEOUT_MS) -> None:
        self.wait_for_element(locator, timeout)
        locator.click()
        logger.debug("Element clicked successfully")

    def type_text(self, locator: Locator, text: str, timeout: int = DEFAULT_TIMEOUT_MS) -> None:
        """Replace the content of an input with ``text``."""
        self.wait_for_element(locator, timeout)
        locator.clear()
        locator.fill(text)
        logger.debug(f"Text typed: {text}")

    def get_element_text(self, locator: Locator, timeout: int = DEFAULT_TIMEOUT_MS) -> str:
        self.wait_for_element(locator, timeout)
        text = locator.text_content() or ""
        logger.debug(f"Element text: {text}")
        return text

    def is_element_visible(self, locator: Locator, timeout: int = VISIBILITY_PROBE_MS) -> bool:
        """Return True if the element becomes visible within ``timeout`` ms."""
        try:
            locator.wait_for(state="visible", timeout=timeout)
        except PlaywrightTimeoutError:
            return False
        return True

    def scroll_to_element(self, locator: Locator) -> None:
        locator.scroll_into_view_if_needed()
        logger.debug("Scrolled to element")

    def wait(self, milliseconds: int) -> None:
        self.page.wait_for_timeout(milliseconds)

    def take_screenshot(self, name: str, directory: Optional[Path] = None) -> Path:
        """Save a full-page screenshot and return its path."""
        target_dir = directory or SCREENSHOT_DIR
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / f"{name}-{int(time.time() * 1000)}.png"
        self.page.screenshot(path=str(path), full_page=True)
        logger.info(f"Screenshot saved: {path}")
        return path

    # -- assertions --------------------------------------------------------

    def assert_element_visible(self, locator: Locator, message: str = "") -> None:
        expect(locator).to_be_visible(timeout=DEFAULT_TIMEOUT_MS)
        logger.debug(message or "Element visibility assertion passed")

    def assert_element_has_text(
        self, locator: Locator, expected_text: str, message: str = ""
    ) -> None:
        expect(locator).to_contain_text(expected_text, timeout=DEFAULT_TIMEOUT_MS)
        logger.debug(message or f"Element text assertion passed: {expected_text}")

    # -- dialogs -----------------------------------------------------------

    def handle_dialog(self, accept: bool = True) -> None:
        """Accept (or dismiss) every dialog the page opens from now on."""

        def _on_dialog(dialog: Dialog) -> None:
            logger.info(f"Dialog appeared: {dialog.message}")
            if accept:
                dialog.accept()
            else:
                dialog.dismiss()

        self.page.on("dialog", _on_dialog)
