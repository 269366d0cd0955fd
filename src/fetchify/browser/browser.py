"""Automation facade: one browser process, one tab."""

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import httpx

from fetchify.actor.element import ElementHandle
from fetchify.actor.page import Page
from fetchify.browser.launcher import BrowserLauncher, ExecutableProvider
from fetchify.browser.profile import BrowserConfig, LaunchOptions, NavigationOptions, WaitUntil
from fetchify.browser.views import CacheEntry
from fetchify.exceptions import BrowserNotLaunchedError

logger = logging.getLogger(__name__)


class Browser:
    """Launches a local browser and drives a single tab over CDP.

    Example:
        >>> async with Browser(headless=True) as browser:
        ...     await browser.goto('https://example.com')
        ...     heading = await browser.query_selector('h1')
        ...     print(await heading.text_content())
    """

    def __init__(
        self,
        config: BrowserConfig | None = None,
        providers: Sequence[ExecutableProvider] | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        **overrides: Any,
    ):
        if config is None:
            config = BrowserConfig.from_env(**overrides)
        elif overrides:
            config = BrowserConfig.model_validate({**config.model_dump(), **overrides})
        self.config = config

        self._http_transport = http_transport
        self.launcher = BrowserLauncher(config, providers=providers, http_transport=http_transport)
        self._process: asyncio.subprocess.Process | None = None
        self._page: Page | None = None

    @property
    def is_launched(self) -> bool:
        return self._page is not None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise BrowserNotLaunchedError()
        return self._page

    async def launch(self, options: LaunchOptions | None = None) -> None:
        """Start the browser process and connect to its first tab.

        A browser that is already running is closed first.
        """
        if self._process is not None or self._page is not None:
            logger.warning('Browser already launched, closing it before relaunching')
            await self.close()

        self._process = await self.launcher.launch(options)
        page = Page(self.config, http_transport=self._http_transport)
        try:
            await page.init()
        except BaseException:
            await page.close()
            await self.close()
            raise
        self._page = page

    async def goto(
        self,
        url: str,
        options: NavigationOptions | None = None,
        *,
        wait_until: WaitUntil | None = None,
        timeout: int | None = None,
    ) -> None:
        """Navigate the tab. Keyword arguments take precedence over ``options``."""
        options = options or NavigationOptions()
        await self.page.goto(
            url,
            wait_until=wait_until or options.wait_until,
            timeout=timeout if timeout is not None else options.timeout,
        )

    async def wait_for_selector(self, selector: str, timeout: int | None = None) -> ElementHandle | None:
        return await self.page.wait_for_selector(selector, timeout)

    async def query_selector(self, selector: str) -> ElementHandle | None:
        return await self.page.query_selector(selector)

    async def query_selector_all(self, selector: str) -> list[ElementHandle]:
        return await self.page.query_selector_all(selector)

    async def evaluate(self, script: str, *args: Any) -> Any:
        return await self.page.evaluate(script, *args)

    async def scroll_to_bottom(self) -> None:
        await self.page.scroll_to_bottom()

    async def get_cache_entries(self) -> list[CacheEntry]:
        return await self.page.get_cache_entries()

    async def get_images_from_dom(self) -> list[CacheEntry]:
        return await self.page.get_images_from_dom()

    async def screenshot(self, path: str | Path | None = None) -> str:
        return await self.page.screenshot(path)

    async def close(self) -> None:
        """Close the tab connection and kill the browser process.

        Safe to call more than once. The process is killed even when closing
        the tab connection fails.
        """
        page, self._page = self._page, None
        process, self._process = self._process, None
        try:
            if page is not None:
                await page.close()
        finally:
            if process is not None:
                await self.launcher.kill(process)
                logger.info('Browser closed')

    async def __aenter__(self) -> 'Browser':
        await self.launch()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


async def create_browser(config: BrowserConfig | None = None, **overrides: Any) -> Browser:
    """Construct a ``Browser`` and launch it."""
    browser = Browser(config, **overrides)
    await browser.launch()
    return browser
