"""Pytest configuration and fixtures for the fetchify test suite.

The suite never launches a real browser. Protocol-level tests talk to
``FakeCDPServer``, an in-process WebSocket server built on ``websockets``
that answers commands through per-method handlers, and to an
``httpx.MockTransport`` standing in for the debugging HTTP endpoint.

Path Setup:
    The src directory is added to sys.path to enable imports like:
    ``from fetchify.browser.session import CommandSession``
"""

import asyncio
import inspect
import json
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
import pytest
import pytest_asyncio
from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed

src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from fetchify.actor.page import Page  # noqa: E402
from fetchify.browser.profile import BrowserConfig  # noqa: E402

# Handler return value meaning "never answer this command".
NO_REPLY = object()


@dataclass
class ProtocolError:
    """Handler return value that makes the server answer with an error object."""

    code: int
    message: str


Handler = Callable[[dict[str, Any]], Any]


class FakeCDPServer:
    """Minimal DevTools endpoint for one page target.

    Each inbound command is answered from its own task, so a slow handler
    never blocks replies to later commands. Handlers receive the command
    params and return a result dict, ``NO_REPLY`` or a ``ProtocolError``;
    they may be coroutines. Methods without a handler get ``{}``.
    """

    def __init__(self):
        self.handlers: dict[str, Handler] = {}
        self.received: list[dict[str, Any]] = []
        self.connections: list[ServerConnection] = []
        self._server = None
        self._tasks: set[asyncio.Task] = set()

    async def start(self) -> None:
        self._server = await serve(self._handle, "127.0.0.1", 0)

    async def stop(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    @property
    def port(self) -> int:
        assert self._server is not None
        return self._server.sockets[0].getsockname()[1]

    @property
    def ws_url(self) -> str:
        return f"ws://127.0.0.1:{self.port}/devtools/page/FAKE-TARGET"

    def methods(self) -> list[str]:
        return [message["method"] for message in self.received]

    def calls(self, method: str) -> list[dict[str, Any]]:
        return [message.get("params", {}) for message in self.received if message["method"] == method]

    async def emit(self, method: str, params: dict[str, Any] | None = None) -> None:
        await self.send_raw(json.dumps({"method": method, "params": params or {}}))

    def emit_later(self, delay: float, method: str, params: dict[str, Any] | None = None) -> None:
        async def later():
            await asyncio.sleep(delay)
            await self.emit(method, params)

        self._spawn(later())

    async def send_raw(self, raw: str) -> None:
        for connection in list(self.connections):
            try:
                await connection.send(raw)
            except ConnectionClosed:
                pass

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle(self, connection: ServerConnection) -> None:
        self.connections.append(connection)
        try:
            async for raw in connection:
                message = json.loads(raw)
                self.received.append(message)
                self._spawn(self._respond(connection, message))
        except ConnectionClosed:
            pass
        finally:
            self.connections.remove(connection)

    async def _respond(self, connection: ServerConnection, message: dict[str, Any]) -> None:
        handler = self.handlers.get(message["method"])
        reply = handler(message.get("params", {})) if handler else {}
        if inspect.isawaitable(reply):
            reply = await reply
        if reply is NO_REPLY:
            return

        if isinstance(reply, ProtocolError):
            payload = {"id": message["id"], "error": {"code": reply.code, "message": reply.message}}
        else:
            payload = {"id": message["id"], "result": reply}
        try:
            await connection.send(json.dumps(payload))
        except ConnectionClosed:
            pass


def make_debug_endpoint(
    ws_url: str,
    tabs: list[dict[str, Any]] | None = None,
    requests: list[httpx.Request] | None = None,
) -> httpx.MockTransport:
    """Mock ``/json``, ``/json/new`` and ``/json/version`` for one page target."""
    page_tab = {
        "id": "FAKE-TARGET",
        "type": "page",
        "title": "about:blank",
        "url": "about:blank",
        "webSocketDebuggerUrl": ws_url,
    }
    listed = [page_tab] if tabs is None else tabs

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        if request.url.path == "/json/version":
            return httpx.Response(200, json={"Browser": "Chrome/120.0.0.0"})
        if request.url.path == "/json":
            return httpx.Response(200, json=listed)
        if request.url.path == "/json/new":
            if request.method != "PUT":
                return httpx.Response(405)
            return httpx.Response(200, json=page_tab)
        return httpx.Response(404)

    return httpx.MockTransport(handler)


@pytest_asyncio.fixture
async def cdp_server():
    """A started FakeCDPServer answering DOM.getDocument with root node 1."""
    server = FakeCDPServer()
    server.handlers["DOM.getDocument"] = lambda params: {"root": {"nodeId": 1, "nodeName": "#document"}}
    await server.start()
    yield server
    await server.stop()


@pytest.fixture
def debug_endpoint(cdp_server):
    return make_debug_endpoint(cdp_server.ws_url)


@pytest.fixture
def browser_config(tmp_path):
    return BrowserConfig(user_data_dir=tmp_path / "profile", timeout=2000)


@pytest_asyncio.fixture
async def page(cdp_server, debug_endpoint, browser_config):
    """An initialized Page connected to the fake server."""
    page = Page(browser_config, http_transport=debug_endpoint)
    await page.init()
    yield page
    await page.close()


def navigate_then(server: FakeCDPServer, event: str | None, delay: float = 0.02) -> None:
    """Answer Page.navigate and fire ``event`` shortly after."""

    def handler(params):
        if event is not None:
            server.emit_later(delay, event)
        return {"frameId": "FRAME", "loaderId": "LOADER"}

    server.handlers["Page.navigate"] = handler
