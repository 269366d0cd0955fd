"""Page controller for one browser tab using CDP."""

import asyncio
import base64
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx
from bs4 import BeautifulSoup

from fetchify.actor import scripts
from fetchify.browser.profile import BrowserConfig, WaitUntil
from fetchify.browser.session import CommandSession
from fetchify.browser.transport import CDPTransport
from fetchify.browser.views import CacheEntry, TabInfo
from fetchify.exceptions import (
    EvaluationError,
    FetchifyError,
    NavigationError,
    NavigationTimeoutError,
    TransportError,
)

if TYPE_CHECKING:
    from fetchify.actor.element import ElementHandle

logger = logging.getLogger(__name__)

NAVIGATION_EVENTS: dict[str, str] = {
    'load': 'Page.loadEventFired',
    'domcontentloaded': 'Page.domContentEventFired',
}


class NetworkIdleWatcher:
    """Resolves once no request has been in flight for a quiet period.

    Tracks ``Network.requestWillBeSent`` request ids until the matching
    ``Network.loadingFinished`` or ``Network.loadingFailed`` arrives. Redirect
    hops reuse their request id, so they count once. When the set empties a
    quiet timer is armed; a new request cancels it. The watcher resolves when
    the timer fires.
    """

    REQUEST_EVENTS = ('Network.requestWillBeSent',)
    DONE_EVENTS = ('Network.loadingFinished', 'Network.loadingFailed')

    def __init__(self, transport: CDPTransport, quiet_period: float = 0.5):
        self._transport = transport
        self.quiet_period = quiet_period
        self._requests: set[str] = set()
        self._timer: asyncio.TimerHandle | None = None
        self._future: asyncio.Future[None] | None = None

    @property
    def in_flight(self) -> int:
        return len(self._requests)

    def start(self) -> 'asyncio.Future[None]':
        self._future = asyncio.get_running_loop().create_future()
        for method in self.REQUEST_EVENTS:
            self._transport.on(method, self._on_request_sent)
        for method in self.DONE_EVENTS:
            self._transport.on(method, self._on_request_done)
        return self._future

    def arm_if_idle(self) -> None:
        """Start the quiet timer if nothing is in flight right now."""
        if not self._requests and self._timer is None:
            self._arm()

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for method in self.REQUEST_EVENTS:
            self._transport.off(method, self._on_request_sent)
        for method in self.DONE_EVENTS:
            self._transport.off(method, self._on_request_done)

    def _on_request_sent(self, params: dict[str, Any]) -> None:
        request_id = params.get('requestId')
        if request_id is None:
            return
        self._requests.add(request_id)
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_request_done(self, params: dict[str, Any]) -> None:
        request_id = params.get('requestId')
        # Requests that started before tracking began are not ours to count.
        if request_id not in self._requests:
            return
        self._requests.discard(request_id)
        if not self._requests and self._timer is None:
            self._arm()

    def _arm(self) -> None:
        if self._future is None or self._future.done():
            return
        self._timer = asyncio.get_running_loop().call_later(self.quiet_period, self._settle)

    def _settle(self) -> None:
        self._timer = None
        if self._future is not None and not self._future.done():
            self._future.set_result(None)
        self.stop()


def build_call_expression(script: str, args: tuple[Any, ...]) -> str:
    """Wrap function source ``script`` in an immediate call with JSON arguments.

    Raises:
        ValueError: If the script is empty.
        TypeError: If an argument is not JSON serializable.
    """
    script = script.strip()
    if not script:
        raise ValueError('JavaScript code is empty')
    arg_strs = [json.dumps(arg) for arg in args]
    return f'({script})({", ".join(arg_strs)})'


class Page:
    """Page operations for a single tab.

    Connects to the first page-type tab of the browser (creating one when none
    exists), enables the Runtime, Page and DOM domains and applies the
    viewport and user agent overrides from ``BrowserConfig``.

    Node ids handed out through ``ElementHandle`` belong to the current
    document epoch. The epoch advances on every ``goto`` and on
    ``DOM.documentUpdated``; handles from an older epoch raise
    ``StaleElementError``.
    """

    POLL_INTERVAL = 0.1
    NETWORK_IDLE_QUIET_PERIOD = 0.5

    def __init__(
        self,
        config: BrowserConfig,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._http_transport = http_transport
        self._transport: CDPTransport | None = None
        self._session: CommandSession | None = None
        self._epoch = 0
        self.tab: TabInfo | None = None

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def transport(self) -> CDPTransport:
        if self._transport is None:
            raise TransportError('Page not initialized. Call init() first.')
        return self._transport

    @property
    def session(self) -> CommandSession:
        if self._session is None:
            raise TransportError('Page not initialized. Call init() first.')
        return self._session

    async def init(self) -> None:
        """Connect to a tab and prepare it for automation."""
        self.tab = await self._find_or_create_tab()
        if not self.tab.web_socket_debugger_url:
            raise TransportError(f'Tab {self.tab.target_id} has no webSocketDebuggerUrl')

        transport = CDPTransport(self.tab.web_socket_debugger_url)
        await transport.connect()
        self._transport = transport
        self._session = CommandSession(transport, default_timeout=self.config.timeout_seconds)
        transport.on('DOM.documentUpdated', self._on_document_updated)

        await self.send('Runtime.enable')
        await self.send('Page.enable')
        await self.send('DOM.enable')

        if self.config.viewport:
            await self.send(
                'Emulation.setDeviceMetricsOverride',
                {
                    'width': self.config.viewport.width,
                    'height': self.config.viewport.height,
                    'deviceScaleFactor': 1,
                    'mobile': False,
                },
            )

        if self.config.user_agent:
            await self.send('Network.setUserAgentOverride', {'userAgent': self.config.user_agent})

        logger.info(f'Page initialized on tab {self.tab.target_id}')

    async def _find_or_create_tab(self) -> TabInfo:
        base_url = self.config.debug_url
        try:
            async with httpx.AsyncClient(timeout=5.0, transport=self._http_transport) as client:
                response = await client.get(f'{base_url}/json')
                response.raise_for_status()
                tabs = [TabInfo.model_validate(tab) for tab in response.json()]
                for tab in tabs:
                    if tab.is_page:
                        return tab

                logger.debug('No page tab open, creating one')
                response = await client.get(f'{base_url}/json/new')
                if response.status_code == 405:
                    # Newer Chrome builds only accept PUT here.
                    response = await client.put(f'{base_url}/json/new')
                response.raise_for_status()
                return TabInfo.model_validate(response.json())
        except httpx.HTTPError as e:
            raise TransportError(f'Failed to query debugging endpoint at {base_url}: {e}') from e

    async def send(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send a raw protocol command on this tab's session."""
        return await self.session.send(method, params, timeout=timeout)

    def _on_document_updated(self, params: dict[str, Any]) -> None:
        self._epoch += 1

    async def goto(
        self,
        url: str,
        wait_until: WaitUntil = 'load',
        timeout: int | None = None,
    ) -> None:
        """Navigate to ``url`` and wait for the page to settle.

        Args:
            url: Target URL.
            wait_until: ``'load'``, ``'domcontentloaded'`` or ``'networkidle'``.
            timeout: Optional bound on the settle wait, in milliseconds. When
                None the wait is unbounded and a page that never fires the
                expected event blocks the caller.

        Raises:
            ValueError: Unknown ``wait_until``.
            NavigationError: The browser reported a navigation failure.
            NavigationTimeoutError: ``timeout`` elapsed first.
        """
        if wait_until not in NAVIGATION_EVENTS and wait_until != 'networkidle':
            raise ValueError(f'Unsupported wait_until value: {wait_until!r}')

        logger.info(f'Navigating to: {url}')

        watcher: NetworkIdleWatcher | None = None
        if wait_until == 'networkidle':
            await self.send('Network.enable')
            watcher = NetworkIdleWatcher(self.transport, quiet_period=self.NETWORK_IDLE_QUIET_PERIOD)
            settled = watcher.start()
        else:
            settled = self.transport.wait_for_event(NAVIGATION_EVENTS[wait_until])

        self._epoch += 1
        try:
            result = await self.send('Page.navigate', {'url': url})
            error_text = result.get('errorText')
            if error_text:
                raise NavigationError(f'Navigation to {url} failed: {error_text}', url=url)

            if watcher is not None:
                watcher.arm_if_idle()

            if timeout is None:
                await settled
            else:
                try:
                    await asyncio.wait_for(settled, timeout / 1000)
                except asyncio.TimeoutError:
                    raise NavigationTimeoutError(
                        f'Navigation to {url} did not reach {wait_until} within {timeout}ms', url=url
                    )
        finally:
            if not settled.done():
                settled.cancel()
            if watcher is not None:
                watcher.stop()

        logger.info('Page loaded')

    async def wait_for_selector(self, selector: str, timeout: int | None = None) -> 'ElementHandle | None':
        """Poll for ``selector`` every ``POLL_INTERVAL`` seconds.

        Args:
            selector: CSS selector.
            timeout: Milliseconds to keep polling; defaults to the config timeout.

        Returns:
            The first match, or None when nothing matched in time.
        """
        loop = asyncio.get_running_loop()
        max_time = (timeout if timeout is not None else self.config.timeout) / 1000
        start = loop.time()

        while loop.time() - start < max_time:
            element = await self.query_selector(selector)
            if element is not None:
                return element
            await asyncio.sleep(self.POLL_INTERVAL)

        logger.debug(f'Selector {selector!r} not found within {max_time:.1f}s')
        return None

    async def _document_root(self) -> int:
        document = await self.send('DOM.getDocument')
        return document['root']['nodeId']

    async def query_selector(self, selector: str) -> 'ElementHandle | None':
        """Return the first element matching ``selector``, or None.

        Protocol failures are reported as no match.
        """
        from fetchify.actor.element import ElementHandle

        epoch = self._epoch
        try:
            root_id = await self._document_root()
            result = await self.send('DOM.querySelector', {'nodeId': root_id, 'selector': selector})
        except FetchifyError as e:
            logger.debug(f'querySelector({selector!r}) failed: {e}')
            return None

        node_id = result.get('nodeId')
        if not node_id:
            return None
        return ElementHandle(self, node_id, epoch)

    async def query_selector_all(self, selector: str) -> list['ElementHandle']:
        """Return all elements matching ``selector``; empty on protocol failure."""
        from fetchify.actor.element import ElementHandle

        epoch = self._epoch
        try:
            root_id = await self._document_root()
            result = await self.send('DOM.querySelectorAll', {'nodeId': root_id, 'selector': selector})
        except FetchifyError as e:
            logger.debug(f'querySelectorAll({selector!r}) failed: {e}')
            return []

        return [ElementHandle(self, node_id, epoch) for node_id in result.get('nodeIds', [])]

    async def evaluate(self, script: str, *args: Any) -> Any:
        """Execute a JavaScript function in the page and return its value.

        Args:
            script: Function source, e.g. ``'(a, b) => a + b'``. May be async.
            *args: JSON-serializable arguments passed to the function.

        Returns:
            The JSON-decoded return value (None for ``undefined``).

        Raises:
            EvaluationError: The script threw in the page.
        """
        expression = build_call_expression(script, args)

        result = await self.send(
            'Runtime.evaluate',
            {
                'expression': expression,
                'returnByValue': True,
                'awaitPromise': True,
            },
        )

        details = result.get('exceptionDetails')
        if details:
            exception = details.get('exception') or {}
            description = exception.get('description') or details.get('text') or 'Script evaluation failed'
            raise EvaluationError(description)

        return result.get('result', {}).get('value')

    async def scroll_to_bottom(self) -> None:
        await self.evaluate(scripts.SCROLL_TO_BOTTOM)

    async def get_cache_entries(self) -> list[CacheEntry]:
        """Image URLs found in the page's Cache Storage."""
        raw = await self.evaluate(
            scripts.CACHE_IMAGE_ENTRIES,
            scripts.CDN_IMAGE_MARKERS,
            scripts.CDN_BRAND,
            scripts.IMAGE_EXTENSIONS,
        )
        entries = _dedupe_entries(raw or [])
        logger.debug(f'Total cache image URLs found: {len(entries)}')
        return entries

    async def get_images_from_dom(self) -> list[CacheEntry]:
        """Image URLs from ``<img>`` sources and computed background images."""
        raw = await self.evaluate(
            scripts.DOM_IMAGE_ENTRIES,
            scripts.CDN_IMAGE_MARKERS,
            scripts.CDN_BRAND,
            scripts.IMAGE_EXTENSIONS,
        )
        entries = _dedupe_entries(raw or [])
        logger.debug(f'Total DOM images found: {len(entries)}')
        return entries

    async def screenshot(self, path: str | Path | None = None) -> str:
        """Capture the viewport as PNG.

        Args:
            path: If given, the decoded image is written there.

        Returns:
            Base64-encoded PNG data.
        """
        result = await self.send('Page.captureScreenshot', {'format': 'png'})
        data = result['data']

        if path is not None:
            target = Path(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(base64.b64decode(data))
            logger.info(f'Screenshot saved to {target}')

        return data

    async def get_attributes(self, node_id: int) -> dict[str, str]:
        result = await self.send('DOM.getAttributes', {'nodeId': node_id})
        flat = result.get('attributes', [])
        return dict(zip(flat[::2], flat[1::2]))

    async def get_text_content(self, node_id: int) -> str:
        result = await self.send('DOM.getOuterHTML', {'nodeId': node_id})
        return BeautifulSoup(result.get('outerHTML', ''), 'html.parser').get_text()

    async def close(self) -> None:
        """Close the socket.

        Commands still in flight are not failed here; their own timers
        reject them later.
        """
        if self._transport is not None:
            await self._transport.close()
            self._transport = None


def _dedupe_entries(raw: list[dict[str, Any]]) -> list[CacheEntry]:
    seen: set[str] = set()
    entries: list[CacheEntry] = []
    for item in raw:
        entry = CacheEntry.model_validate(item)
        if entry.url in seen:
            continue
        seen.add(entry.url)
        entries.append(entry)
    return entries
