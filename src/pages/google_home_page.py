"""Google home page."""

from __future__ import annotations

from typing import List

from loguru import logger
from playwright.sync_api import Page

from src.pages.base_page import BasePage

GOOGLE_URL = "https://www.google.com"


class GoogleHomePage(BasePage):

    def __init__(self, page: Page, url: str = GOOGLE_URL) -> None:
        super().__init__(page, url)
        self.search_input = page.locator("#APjFqb")
        self.feeling_lucky_button = page.locator('input[name="btnI"]').first
        self.google_logo = page.locator('img[alt="Google"]')
        self.suggestions = page.locator('li[role="presentation"]')

    def search(self, query: str) -> None:
        """Type the query and submit it with Enter."""
        logger.info(f"Performing Google search for: {query}")
        self.wait_for_page_load()
        self.assert_element_visible(self.search_input, "Search input should be visible")
        self.type_text(self.search_input, query)
        # The search button sits behind the suggestions list
        self.search_input.press("Enter")
        logger.info(f"Search completed for: {query}")

    def click_feeling_lucky(self) -> None:
        logger.info("Clicking \"I'm Feeling Lucky\" button")
        self.click_element(self.feeling_lucky_button)

    def verify_page_loaded(self) -> None:
        """
        Raises:
            AssertionError: If the logo/search box is missing or the title isn't Google's.
        """
        self.assert_element_visible(self.google_logo, "Google logo should be visible")
        self.assert_element_visible(self.search_input, "Search input should be visible")
        title = self.get_title()
        if "google" not in title.lower():
            raise AssertionError(f"Expected page title to contain 'Google', but got: {title}")
        logger.info("Google home page verified successfully")

    def get_search_suggestions(self, query: str) -> List[str]:
        self.type_text(self.search_input, query)
        self.wait(1000)
        suggestions = self.suggestions.all_text_contents()
        logger.debug(f"Found {len(suggestions)} search suggestions")
        return suggestions

    def clear_search(self) -> None:
        self.search_input.clear()
        logger.debug("Search input cleared")
