"""
Page Objects for browser tests (Playwright sync API).
"""

from src.pages.base_page import BasePage
from src.pages.google_home_page import GoogleHomePage
from src.pages.google_search_results_page import GoogleSearchResultsPage

__all__ = ["BasePage", "GoogleHomePage", "GoogleSearchResultsPage"]
