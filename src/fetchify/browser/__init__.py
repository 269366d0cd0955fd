"""Browser module for process launch and low-level CDP messaging."""

from fetchify.browser.launcher import BrowserLauncher, find_executable
from fetchify.browser.profile import BrowserConfig, LaunchOptions, NavigationOptions, ViewportSize
from fetchify.browser.session import CommandSession
from fetchify.browser.transport import CDPTransport

__all__ = [
    "BrowserConfig",
    "BrowserLauncher",
    "CDPTransport",
    "CommandSession",
    "LaunchOptions",
    "NavigationOptions",
    "ViewportSize",
    "find_executable",
]
