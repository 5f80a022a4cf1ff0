"""
Tests for the Page Objects against a mocked Playwright page.

Browser behaviour itself is covered by the e2e suite; these tests check the
locators each page drives and the errors it raises.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict
from unittest.mock import MagicMock

import pytest
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from src.pages import base_page
from src.pages.base_page import BasePage
from src.pages.google_home_page import GOOGLE_URL, GoogleHomePage
from src.pages.google_search_results_page import GoogleSearchResultsPage


@pytest.fixture
def locators() -> Dict[str, MagicMock]:
    return {}


@pytest.fixture
def page(locators: Dict[str, MagicMock]) -> MagicMock:
    mock_page = MagicMock()
    mock_page.locator.side_effect = lambda selector: locators.setdefault(selector, MagicMock())
    mock_page.title.return_value = "Google"
    return mock_page


@pytest.fixture
def expect_calls(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    """Replace Playwright's ``expect`` so assertions accept mocked locators."""
    fake_expect = MagicMock()
    monkeypatch.setattr(base_page, "expect", fake_expect)
    return fake_expect


class TestBasePage:

    def test_navigate_without_url(self, page: MagicMock) -> None:
        with pytest.raises(ValueError, match="URL is not defined"):
            BasePage(page).navigate()

    def test_navigate(self, page: MagicMock) -> None:
        BasePage(page, "https://example.com").navigate()

        page.goto.assert_called_once_with("https://example.com")
        page.wait_for_load_state.assert_called_once_with("networkidle")

    def test_type_text_replaces_content(self, page: MagicMock) -> None:
        field = MagicMock()

        BasePage(page).type_text(field, "playwright")

        field.wait_for.assert_called_once_with(state="visible", timeout=base_page.DEFAULT_TIMEOUT_MS)
        field.clear.assert_called_once()
        field.fill.assert_called_once_with("playwright")

    def test_get_element_text_empty(self, page: MagicMock) -> None:
        field = MagicMock()
        field.text_content.return_value = None

        assert BasePage(page).get_element_text(field) == ""

    def test_is_element_visible_timeout(self, page: MagicMock) -> None:
        hidden = MagicMock()
        hidden.wait_for.side_effect = PlaywrightTimeoutError("Timeout 5000ms exceeded")

        assert not BasePage(page).is_element_visible(hidden)

    def test_take_screenshot(self, page: MagicMock, tmp_path: Path) -> None:
        path = BasePage(page).take_screenshot("search", directory=tmp_path / "shots")

        assert path.parent == tmp_path / "shots"
        assert path.name.startswith("search-")
        assert path.suffix == ".png"
        page.screenshot.assert_called_once_with(path=str(path), full_page=True)

    @pytest.mark.parametrize("accept", [True, False])
    def test_handle_dialog(self, page: MagicMock, accept: bool) -> None:
        BasePage(page).handle_dialog(accept=accept)

        event, handler = page.on.call_args.args
        dialog = MagicMock(message="Leave site?")
        handler(dialog)

        assert event == "dialog"
        assert dialog.accept.called is accept
        assert dialog.dismiss.called is not accept


class TestGoogleHomePage:

    def test_default_url(self, page: MagicMock) -> None:
        assert GoogleHomePage(page).url == GOOGLE_URL

    def test_search_submits_with_enter(
        self, page: MagicMock, locators: Dict[str, MagicMock], expect_calls: MagicMock
    ) -> None:
        GoogleHomePage(page).search("Playwright Python")

        search_input = locators["#APjFqb"]
        search_input.fill.assert_called_once_with("Playwright Python")
        search_input.press.assert_called_once_with("Enter")
        expect_calls.assert_called_with(search_input)

    def test_verify_page_loaded_wrong_title(
        self, page: MagicMock, expect_calls: MagicMock
    ) -> None:
        page.title.return_value = "Bing"
        with pytest.raises(AssertionError, match="Bing"):
            GoogleHomePage(page).verify_page_loaded()

    def test_get_search_suggestions(self, page: MagicMock, locators: Dict[str, MagicMock]) -> None:
        home = GoogleHomePage(page)
        locators['li[role="presentation"]'].all_text_contents.return_value = ["python", "pytest"]

        assert home.get_search_suggestions("py") == ["python", "pytest"]
        page.wait_for_timeout.assert_called_once_with(1000)


class TestGoogleSearchResultsPage:

    @pytest.fixture
    def result_links(self, page: MagicMock, locators: Dict[str, MagicMock]) -> MagicMock:
        results_page_links = locators.setdefault("h3", MagicMock()).locator.return_value
        results_page_links.count.return_value = 2
        results_page_links.locator.return_value.all_text_contents.return_value = [
            "Playwright Python docs",
            "pytest plugin",
        ]
        return results_page_links

    def test_titles_and_count(self, page: MagicMock, result_links: MagicMock) -> None:
        results = GoogleSearchResultsPage(page)

        assert results.get_results_count() == 2
        assert results.get_result_titles() == ["Playwright Python docs", "pytest plugin"]
        assert results.has_result_containing("PYTEST")
        assert not results.has_result_containing("selenium")

    @pytest.mark.parametrize("index", [-1, 2])
    def test_click_result_out_of_range(
        self, page: MagicMock, result_links: MagicMock, index: int
    ) -> None:
        with pytest.raises(IndexError, match="Available results: 0-1"):
            GoogleSearchResultsPage(page).click_search_result(index)

    def test_click_result(self, page: MagicMock, result_links: MagicMock) -> None:
        GoogleSearchResultsPage(page).click_search_result(1)

        result_links.nth.assert_called_once_with(1)
        result_links.nth.return_value.click.assert_called_once()

    def test_verify_results_query_mismatch(
        self, page: MagicMock, locators: Dict[str, MagicMock], expect_calls: MagicMock
    ) -> None:
        results = GoogleSearchResultsPage(page)
        locators['input[name="q"]'].input_value.return_value = "playwright java"

        with pytest.raises(AssertionError, match="playwright java"):
            results.verify_search_results_loaded("Playwright Python")

    def test_results_stats_hidden(self, page: MagicMock, locators: Dict[str, MagicMock]) -> None:
        results = GoogleSearchResultsPage(page)
        locators["#result-stats"].wait_for.side_effect = PlaywrightTimeoutError("hidden")

        assert results.get_results_stats() == ""

    def test_next_page_unavailable(self, page: MagicMock, locators: Dict[str, MagicMock]) -> None:
        results = GoogleSearchResultsPage(page)
        locators['a[aria-label="Next page"]'].wait_for.side_effect = PlaywrightTimeoutError("hidden")

        with pytest.raises(LookupError, match="Next page"):
            results.go_to_next_page()
