"""WebSocket transport to a single browser tab.

The transport owns the debugger socket and a reader task. Every inbound frame
is decoded as JSON and routed one of two ways:

- frames carrying an ``id`` are command replies and go to the reply handler
  (installed by ``CommandSession``);
- frames carrying a ``method`` are protocol events and go to the listeners
  registered for that method name.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from fetchify.exceptions import TransportError

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any]], None]
ReplyHandler = Callable[[dict[str, Any]], None]


class CDPTransport:
    """Duplex JSON message channel over one debugger WebSocket.

    Example:
        >>> transport = CDPTransport('ws://localhost:9222/devtools/page/ABC')
        >>> await transport.connect()
        >>> loaded = transport.wait_for_event('Page.loadEventFired')
        >>> await transport.send({'id': 1, 'method': 'Page.navigate', 'params': {'url': url}})
        >>> await loaded
    """

    def __init__(self, ws_url: str):
        self.ws_url = ws_url
        self._ws: ClientConnection | None = None
        self._reader_task: asyncio.Task | None = None
        self._reply_handler: ReplyHandler | None = None
        self._listeners: dict[str, list[tuple[EventHandler, bool]]] = {}

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        """Open the socket and start dispatching inbound frames.

        Raises:
            TransportError: If the socket fails before it opens.
        """
        logger.debug(f'Connecting to {self.ws_url}')
        try:
            # Screenshots arrive as single large frames.
            ws = await connect(self.ws_url, max_size=None, ping_interval=None)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise TransportError(f'Failed to connect to browser WebSocket {self.ws_url}: {e}') from e

        self._ws = ws
        self._reader_task = asyncio.create_task(self._read_loop(ws))
        logger.debug('WebSocket connection established')

    def set_reply_handler(self, handler: ReplyHandler) -> None:
        self._reply_handler = handler

    def on(self, method: str, handler: EventHandler, once: bool = False) -> None:
        """Register ``handler`` for protocol event ``method``.

        A handler registered with ``once=True`` is removed right before its
        first invocation.
        """
        self._listeners.setdefault(method, []).append((handler, once))

    def off(self, method: str, handler: EventHandler) -> None:
        listeners = self._listeners.get(method)
        if not listeners:
            return
        remaining = [entry for entry in listeners if entry[0] != handler]
        if remaining:
            self._listeners[method] = remaining
        else:
            del self._listeners[method]

    def listener_count(self, method: str | None = None) -> int:
        if method is not None:
            return len(self._listeners.get(method, []))
        return sum(len(listeners) for listeners in self._listeners.values())

    def wait_for_event(self, method: str) -> 'asyncio.Future[dict[str, Any]]':
        """Return a future resolved with the params of the next ``method`` event.

        The one-shot listener is removed when the event fires or when the
        future is cancelled, whichever happens first.
        """
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()

        def handler(params: dict[str, Any]) -> None:
            if not future.done():
                future.set_result(params)

        self.on(method, handler, once=True)
        future.add_done_callback(lambda _: self.off(method, handler))
        return future

    async def send(self, message: dict[str, Any]) -> None:
        if self._ws is None:
            raise TransportError('WebSocket not connected')
        try:
            await self._ws.send(json.dumps(message))
        except ConnectionClosed as e:
            raise TransportError(f'WebSocket closed while sending {message.get("method")}: {e}') from e

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        try:
            if ws is not None:
                await ws.close()
        finally:
            reader, self._reader_task = self._reader_task, None
            if reader is not None:
                reader.cancel()
                try:
                    await reader
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.warning(f'WebSocket reader stopped with an error: {e}')
            self._listeners.clear()

    async def _read_loop(self, ws: ClientConnection) -> None:
        try:
            async for raw in ws:
                self.dispatch(raw)
        except ConnectionClosed as e:
            logger.warning(f'Browser WebSocket closed: {e}')

    def dispatch(self, raw: str | bytes) -> None:
        """Route one inbound frame to the reply handler or event listeners."""
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f'Invalid JSON from browser: {raw[:100]!r}')
            return
        if not isinstance(message, dict):
            logger.warning(f'Unexpected frame from browser: {raw[:100]!r}')
            return

        if 'id' in message:
            if self._reply_handler is not None:
                try:
                    self._reply_handler(message)
                except Exception as e:
                    logger.error(f'Error handling reply {message.get("id")}: {e}', exc_info=True)
            return

        method = message.get('method')
        if not method:
            return

        listeners = self._listeners.get(method)
        if not listeners:
            return

        params = message.get('params', {})
        for handler, once in list(listeners):
            if once:
                self.off(method, handler)
            try:
                handler(params)
            except Exception as e:
                logger.error(f'Error in {method} listener: {e}', exc_info=True)
