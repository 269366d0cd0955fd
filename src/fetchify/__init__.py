"""Fetchify - playlist and track scraping over a minimal CDP client."""

__version__ = "0.1.0"

from fetchify.browser.browser import Browser, create_browser
from fetchify.browser.profile import BrowserConfig, LaunchOptions, NavigationOptions
from fetchify.browser.views import CacheEntry
from fetchify.actor.element import ElementHandle
from fetchify.actor.page import Page
from fetchify.exceptions import (
    BrowserNotLaunchedError,
    BrowserStartupTimeoutError,
    CommandError,
    CommandTimeoutError,
    EvaluationError,
    ExecutableNotFoundError,
    FetchifyError,
    NavigationError,
    NavigationTimeoutError,
    StaleElementError,
    TransportError,
)
from fetchify.fetchers.views import Track

__all__ = [
    "Browser",
    "create_browser",
    "BrowserConfig",
    "LaunchOptions",
    "NavigationOptions",
    "CacheEntry",
    "ElementHandle",
    "Page",
    "Track",
    "FetchifyError",
    "ExecutableNotFoundError",
    "BrowserStartupTimeoutError",
    "TransportError",
    "CommandError",
    "CommandTimeoutError",
    "NavigationError",
    "NavigationTimeoutError",
    "EvaluationError",
    "StaleElementError",
    "BrowserNotLaunchedError",
]
