"""Tests for the Page controller against the fake CDP server.

Validates:

    - The init sequence and tab discovery over the debugging endpoint
    - Navigation waits for load, DOMContentLoaded and network idle
    - Optional navigation timeouts and navigation failures
    - Selector queries and polling
    - Script evaluation, screenshots and cache/DOM image extraction
"""

import asyncio
import base64

import httpx
import pytest

from conftest import ProtocolError, make_debug_endpoint, navigate_then
from fetchify.actor.page import Page, build_call_expression
from fetchify.browser.profile import BrowserConfig
from fetchify.browser.views import CacheEntry
from fetchify.exceptions import (
    EvaluationError,
    NavigationError,
    NavigationTimeoutError,
    TransportError,
)


class TestInit:
    """Connecting to a tab and preparing it."""

    @pytest.mark.asyncio
    async def test_init_sequence(self, cdp_server, page):
        assert cdp_server.methods()[:5] == [
            "Runtime.enable",
            "Page.enable",
            "DOM.enable",
            "Emulation.setDeviceMetricsOverride",
            "Network.setUserAgentOverride",
        ]
        metrics = cdp_server.calls("Emulation.setDeviceMetricsOverride")[0]
        assert metrics == {"width": 1920, "height": 1080, "deviceScaleFactor": 1, "mobile": False}
        assert "Chrome/120" in cdp_server.calls("Network.setUserAgentOverride")[0]["userAgent"]

    @pytest.mark.asyncio
    async def test_overrides_skipped_when_unset(self, cdp_server, debug_endpoint, tmp_path):
        config = BrowserConfig(user_data_dir=tmp_path, viewport=None, user_agent=None)
        page = Page(config, http_transport=debug_endpoint)
        await page.init()
        try:
            assert cdp_server.methods() == ["Runtime.enable", "Page.enable", "DOM.enable"]
        finally:
            await page.close()

    @pytest.mark.asyncio
    async def test_creates_tab_when_none_open(self, cdp_server, tmp_path):
        requests: list[httpx.Request] = []
        endpoint = make_debug_endpoint(
            cdp_server.ws_url,
            tabs=[{"id": "BG", "type": "background_page", "url": "chrome://x"}],
            requests=requests,
        )
        page = Page(BrowserConfig(user_data_dir=tmp_path), http_transport=endpoint)
        await page.init()
        try:
            assert [(r.method, r.url.path) for r in requests] == [
                ("GET", "/json"),
                ("GET", "/json/new"),
                ("PUT", "/json/new"),
            ]
            assert page.tab.target_id == "FAKE-TARGET"
        finally:
            await page.close()

    @pytest.mark.asyncio
    async def test_unreachable_endpoint_raises_transport_error(self, tmp_path):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        page = Page(BrowserConfig(user_data_dir=tmp_path), http_transport=httpx.MockTransport(refuse))

        with pytest.raises(TransportError):
            await page.init()

    @pytest.mark.asyncio
    async def test_new_tab_without_socket_url_raises_transport_error(self, tmp_path):
        def endpoint(request):
            if request.url.path == "/json":
                return httpx.Response(200, json=[])
            return httpx.Response(200, json={"id": "NEW", "type": "page", "url": "about:blank"})

        page = Page(BrowserConfig(user_data_dir=tmp_path), http_transport=httpx.MockTransport(endpoint))

        with pytest.raises(TransportError, match="webSocketDebuggerUrl"):
            await page.init()

    @pytest.mark.asyncio
    async def test_send_before_init_raises(self, browser_config):
        page = Page(browser_config)

        with pytest.raises(TransportError):
            await page.send("Runtime.enable")


class TestGoto:
    """Navigation waits and failures."""

    @pytest.mark.asyncio
    async def test_waits_for_load_event(self, cdp_server, page):
        navigate_then(cdp_server, "Page.loadEventFired")

        await asyncio.wait_for(page.goto("https://example.com"), 2.0)

        assert cdp_server.calls("Page.navigate") == [{"url": "https://example.com"}]
        assert page.transport.listener_count("Page.loadEventFired") == 0

    @pytest.mark.asyncio
    async def test_waits_for_dom_content_loaded(self, cdp_server, page):
        navigate_then(cdp_server, "Page.domContentEventFired")

        await asyncio.wait_for(page.goto("https://example.com", wait_until="domcontentloaded"), 2.0)

    @pytest.mark.asyncio
    async def test_listener_registered_before_navigate(self, cdp_server, page):
        navigate_then(cdp_server, "Page.loadEventFired", delay=0)

        await asyncio.wait_for(page.goto("https://example.com"), 2.0)

    @pytest.mark.asyncio
    async def test_hangs_without_load_event_by_default(self, cdp_server, page):
        navigate_then(cdp_server, None)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(page.goto("https://example.com"), 0.3)

        await asyncio.sleep(0)
        assert page.transport.listener_count("Page.loadEventFired") == 0

    @pytest.mark.asyncio
    async def test_timeout_raises_navigation_timeout(self, cdp_server, page):
        navigate_then(cdp_server, None)

        with pytest.raises(NavigationTimeoutError) as exc_info:
            await page.goto("https://example.com", timeout=200)

        assert exc_info.value.url == "https://example.com"
        await asyncio.sleep(0)
        assert page.transport.listener_count("Page.loadEventFired") == 0

    @pytest.mark.asyncio
    async def test_error_text_raises_navigation_error(self, cdp_server, page):
        cdp_server.handlers["Page.navigate"] = lambda params: {
            "frameId": "FRAME",
            "errorText": "net::ERR_NAME_NOT_RESOLVED",
        }

        with pytest.raises(NavigationError, match="ERR_NAME_NOT_RESOLVED"):
            await page.goto("https://nowhere.invalid")

    @pytest.mark.asyncio
    async def test_invalid_wait_until(self, cdp_server, page):
        with pytest.raises(ValueError):
            await page.goto("https://example.com", wait_until="commit")

        assert "Page.navigate" not in cdp_server.methods()

    @pytest.mark.asyncio
    async def test_network_idle(self, cdp_server, page):
        def navigate(params):
            cdp_server.emit_later(0.02, "Network.requestWillBeSent", {"requestId": "r1"})
            cdp_server.emit_later(0.15, "Network.loadingFinished", {"requestId": "r1"})
            return {"frameId": "FRAME"}

        cdp_server.handlers["Page.navigate"] = navigate
        loop = asyncio.get_running_loop()
        start = loop.time()

        await asyncio.wait_for(page.goto("https://example.com", wait_until="networkidle"), 3.0)

        assert loop.time() - start >= 0.15 + 0.5 - 0.05
        assert "Network.enable" in cdp_server.methods()
        assert page.transport.listener_count("Network.requestWillBeSent") == 0

    @pytest.mark.asyncio
    async def test_network_idle_without_requests(self, cdp_server, page):
        navigate_then(cdp_server, None)

        await asyncio.wait_for(page.goto("https://example.com", wait_until="networkidle"), 2.0)

    @pytest.mark.asyncio
    async def test_goto_advances_epoch(self, cdp_server, page):
        navigate_then(cdp_server, "Page.loadEventFired")
        before = page.epoch

        await page.goto("https://example.com")

        assert page.epoch == before + 1

    @pytest.mark.asyncio
    async def test_document_updated_advances_epoch(self, cdp_server, page):
        before = page.epoch

        await cdp_server.emit("DOM.documentUpdated")
        await asyncio.sleep(0.05)

        assert page.epoch == before + 1


class TestQueries:
    """Selector queries report misses as None or an empty list."""

    @pytest.mark.asyncio
    async def test_query_selector_match(self, cdp_server, page):
        cdp_server.handlers["DOM.querySelector"] = lambda params: {"nodeId": 42}

        element = await page.query_selector("h1")

        assert element is not None
        assert element.node_id == 42
        assert cdp_server.calls("DOM.querySelector")[0] == {"nodeId": 1, "selector": "h1"}

    @pytest.mark.asyncio
    async def test_query_selector_no_match(self, cdp_server, page):
        cdp_server.handlers["DOM.querySelector"] = lambda params: {"nodeId": 0}

        assert await page.query_selector(".missing") is None

    @pytest.mark.asyncio
    async def test_query_selector_protocol_failure(self, cdp_server, page):
        cdp_server.handlers["DOM.querySelector"] = lambda params: ProtocolError(-32000, "DOM Error while querying")

        assert await page.query_selector("::bad") is None

    @pytest.mark.asyncio
    async def test_query_selector_all(self, cdp_server, page):
        cdp_server.handlers["DOM.querySelectorAll"] = lambda params: {"nodeIds": [3, 4, 5]}

        elements = await page.query_selector_all("li")

        assert [e.node_id for e in elements] == [3, 4, 5]

    @pytest.mark.asyncio
    async def test_query_selector_all_protocol_failure(self, cdp_server, page):
        cdp_server.handlers["DOM.querySelectorAll"] = lambda params: ProtocolError(-32000, "boom")

        assert await page.query_selector_all("li") == []

    @pytest.mark.asyncio
    async def test_wait_for_selector_times_out(self, cdp_server, page):
        cdp_server.handlers["DOM.querySelector"] = lambda params: {"nodeId": 0}
        loop = asyncio.get_running_loop()
        start = loop.time()

        assert await page.wait_for_selector(".never", timeout=350) is None

        assert loop.time() - start >= 0.35
        # Polls at most once per 100 ms.
        assert len(cdp_server.calls("DOM.querySelector")) <= 4

    @pytest.mark.asyncio
    async def test_wait_for_selector_finds_late_element(self, cdp_server, page):
        answers = iter([0, 0, 9])
        cdp_server.handlers["DOM.querySelector"] = lambda params: {"nodeId": next(answers, 9)}

        element = await page.wait_for_selector(".late", timeout=2000)

        assert element is not None
        assert element.node_id == 9


class TestEvaluate:
    """Script evaluation with JSON arguments."""

    @pytest.mark.asyncio
    async def test_evaluate_with_arguments(self, cdp_server, page):
        def evaluate(params):
            assert params["expression"] == "((a, b) => a + b)(2, 3)"
            assert params["returnByValue"] is True
            assert params["awaitPromise"] is True
            return {"result": {"type": "number", "value": 5}}

        cdp_server.handlers["Runtime.evaluate"] = evaluate

        assert await page.evaluate("(a, b) => a + b", 2, 3) == 5

    @pytest.mark.asyncio
    async def test_evaluate_undefined_is_none(self, cdp_server, page):
        cdp_server.handlers["Runtime.evaluate"] = lambda params: {"result": {"type": "undefined"}}

        assert await page.evaluate("() => undefined") is None

    @pytest.mark.asyncio
    async def test_evaluate_exception(self, cdp_server, page):
        cdp_server.handlers["Runtime.evaluate"] = lambda params: {
            "result": {"type": "object", "subtype": "error"},
            "exceptionDetails": {
                "text": "Uncaught",
                "exception": {"description": "Error: boom\n    at <anonymous>:1:7"},
            },
        }

        with pytest.raises(EvaluationError) as exc_info:
            await page.evaluate("() => { throw new Error('boom') }")

        assert exc_info.value.description.startswith("Error: boom")

    @pytest.mark.asyncio
    async def test_unserializable_argument_sends_nothing(self, cdp_server, page):
        with pytest.raises(TypeError):
            await page.evaluate("(x) => x", object())

        assert "Runtime.evaluate" not in cdp_server.methods()

    def test_build_call_expression(self):
        assert build_call_expression("() => 1", ()) == "(() => 1)()"
        assert build_call_expression(" (s) => s ", ("a\"b",)) == '((s) => s)("a\\"b")'
        with pytest.raises(ValueError):
            build_call_expression("   ", ())


class TestExtraction:
    """Screenshots, images and node helpers."""

    @pytest.mark.asyncio
    async def test_screenshot_writes_decoded_bytes(self, cdp_server, page, tmp_path):
        png = b"\x89PNG\r\n\x1a\nfake-image-data"
        encoded = base64.b64encode(png).decode()
        cdp_server.handlers["Page.captureScreenshot"] = lambda params: {"data": encoded}
        target = tmp_path / "shots" / "page.png"

        data = await page.screenshot(target)

        assert data == encoded
        assert target.read_bytes() == png
        assert cdp_server.calls("Page.captureScreenshot") == [{"format": "png"}]

    @pytest.mark.asyncio
    async def test_screenshot_without_path(self, cdp_server, page):
        cdp_server.handlers["Page.captureScreenshot"] = lambda params: {"data": "aGVsbG8="}

        assert await page.screenshot() == "aGVsbG8="

    @pytest.mark.asyncio
    async def test_scroll_to_bottom(self, cdp_server, page):
        cdp_server.handlers["Runtime.evaluate"] = lambda params: {"result": {"type": "undefined"}}

        await page.scroll_to_bottom()

        [params] = cdp_server.calls("Runtime.evaluate")
        assert "document.body.scrollHeight" in params["expression"]

    @pytest.mark.asyncio
    async def test_cache_entries_are_deduplicated(self, cdp_server, page):
        url = "https://i.scdn.co/image/ab67616d0000b273"
        cdp_server.handlers["Runtime.evaluate"] = lambda params: {
            "result": {
                "type": "object",
                "value": [
                    {"url": url, "method": "GET", "headers": {}},
                    {"url": url, "method": "GET", "headers": {}},
                ],
            }
        }

        entries = await page.get_cache_entries()

        assert entries == [CacheEntry(url=url)]

    @pytest.mark.asyncio
    async def test_images_from_dom(self, cdp_server, page):
        cdp_server.handlers["Runtime.evaluate"] = lambda params: {
            "result": {"type": "object", "value": [{"url": "https://image-cdn-fa.spotifycdn.com/a.jpg"}]}
        }

        entries = await page.get_images_from_dom()

        assert [e.url for e in entries] == ["https://image-cdn-fa.spotifycdn.com/a.jpg"]
        assert entries[0].method == "GET"

    @pytest.mark.asyncio
    async def test_get_attributes(self, cdp_server, page):
        cdp_server.handlers["DOM.getAttributes"] = lambda params: {"attributes": ["href", "/a", "class", "link"]}

        assert await page.get_attributes(7) == {"href": "/a", "class": "link"}

    @pytest.mark.asyncio
    async def test_get_text_content(self, cdp_server, page):
        cdp_server.handlers["DOM.getOuterHTML"] = lambda params: {"outerHTML": "<div>Hello <b>world</b></div>"}

        assert await page.get_text_content(7) == "Hello world"
