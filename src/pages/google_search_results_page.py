"""Google search results page."""

from __future__ import annotations

from typing import List

from loguru import logger
from playwright.sync_api import Page

from src.pages.base_page import BasePage


class GoogleSearchResultsPage(BasePage):
    """Results list, stats and pagination of a Google search."""

    def __init__(self, page: Page) -> None:
        super().__init__(page)
        self.search_input = page.locator('input[name="q"]')
        self.search_results = page.locator("#search")
        # Result links are the parents of the h3 titles
        self.result_links = page.locator("h3").locator("..")
        self.results_stats = page.locator("#result-stats")
        self.next_page_button = page.locator('a[aria-label="Next page"]')
        self.previous_page_button = page.locator('a[aria-label="Previous page"]')

    def verify_search_results_loaded(self, expected_query: str) -> None:
        """
        Raises:
            AssertionError: If the search box doesn't hold the expected query.
        """
        self.assert_element_visible(self.search_results, "Search results should be visible")
        actual_query = self.search_input.input_value()
        if actual_query.lower() != expected_query.lower():
            raise AssertionError(
                f"Expected search query '{expected_query}', but found '{actual_query}'"
            )
        logger.info(f"Search results page verified for query: {expected_query}")

    def get_results_count(self) -> int:
        self.wait_for_element(self.result_links.first)
        count = self.result_links.count()
        logger.debug(f"Found {count} search results")
        return count

    def get_result_titles(self) -> List[str]:
        self.wait_for_element(self.result_links.first)
        titles = self.result_links.locator("h3").all_text_contents()
        logger.debug(f"Retrieved {len(titles)} result titles")
        return titles

    def click_search_result(self, index: int) -> None:
        """
        Click the result at ``index`` (0-based).

        Raises:
            IndexError: If there is no result at that index.
        """
        count = self.result_links.count()
        if index < 0 or index >= count:
            raise IndexError(f"Invalid result index: {index}. Available results: 0-{count - 1}")
        result_link = self.result_links.nth(index)
        title = result_link.locator("h3").text_content()
        logger.info(f"Clicking on search result {index + 1}: {title}")
        self.click_element(result_link)

    def click_search_result_by_title(self, title_text: str) -> None:
        """
        Raises:
            LookupError: If no visible result title contains ``title_text``.
        """
        result_link = self.result_links.filter(has_text=title_text).first
        if not self.is_element_visible(result_link):
            raise LookupError(f"No search result found with title containing: {title_text}")
        logger.info(f"Clicking on search result with title: {title_text}")
        self.click_element(result_link)

    def get_results_stats(self) -> str:
        """Text of the "About N results" line, or "" when Google hides it."""
        if not self.is_element_visible(self.results_stats):
            return ""
        stats = self.get_element_text(self.results_stats)
        logger.debug(f"Results stats: {stats}")
        return stats

    def go_to_next_page(self) -> None:
        if not self.is_element_visible(self.next_page_button):
            raise LookupError("Next page button is not available")
        logger.info("Navigating to next page of results")
        self.click_element(self.next_page_button)
        self.wait_for_page_load()

    def go_to_previous_page(self) -> None:
        if not self.is_element_visible(self.previous_page_button):
            raise LookupError("Previous page button is not available")
        logger.info("Navigating to previous page of results")
        self.click_element(self.previous_page_button)
        self.wait_for_page_load()

    def search_again(self, new_query: str) -> None:
        logger.info(f"Performing new search for: {new_query}")
        self.type_text(self.search_input, new_query)
        self.search_input.press("Enter")
        self.wait_for_page_load()

    def has_result_containing(self, text: str) -> bool:
        found = any(text.lower() in title.lower() for title in self.get_result_titles())
        logger.debug(f"Search for '{text}' in results: {'found' if found else 'not found'}")
        return found
