"""Command session: request/reply correlation on top of ``CDPTransport``.

Ids are allocated from a private counter starting at 1 and are never reused.
Each sent command holds an entry in the pending table until either its reply
arrives or its timer fires; whichever comes second finds the entry gone and
does nothing. The table is only touched from the event loop thread.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any

from fetchify.browser.transport import CDPTransport
from fetchify.exceptions import CommandError, CommandTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    method: str
    future: 'asyncio.Future[dict[str, Any]]'
    timer: asyncio.TimerHandle


class CommandSession:
    """Sends ``{id, method, params}`` commands and resolves their replies.

    Example:
        >>> session = CommandSession(transport, default_timeout=30.0)
        >>> result = await session.send('DOM.getDocument')
        >>> result['root']['nodeId']
        1
    """

    def __init__(self, transport: CDPTransport, default_timeout: float = 30.0):
        self._transport = transport
        self.default_timeout = default_timeout
        self._ids = itertools.count(1)
        self._pending: dict[int, PendingRequest] = {}
        transport.set_reply_handler(self._on_reply)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def send(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send a command and wait for its ``result``.

        Args:
            method: Protocol method, e.g. ``'Page.navigate'``.
            params: Method parameters.
            timeout: Seconds to wait for the reply; defaults to the session timeout.

        Returns:
            The ``result`` object of the reply.

        Raises:
            CommandError: The browser replied with an error.
            CommandTimeoutError: No reply arrived in time.
            TransportError: The socket is not connected.
        """
        loop = asyncio.get_running_loop()
        msg_id = next(self._ids)
        timeout = self.default_timeout if timeout is None else timeout

        future: asyncio.Future[dict[str, Any]] = loop.create_future()
        timer = loop.call_later(timeout, self._expire, msg_id, timeout)
        self._pending[msg_id] = PendingRequest(method=method, future=future, timer=timer)

        logger.debug(f'CDP -> id={msg_id} method={method}')
        try:
            await self._transport.send({'id': msg_id, 'method': method, 'params': params or {}})
        except Exception:
            self._evict(msg_id)
            raise

        return await future

    def _on_reply(self, message: dict[str, Any]) -> None:
        msg_id = message.get('id')
        entry = self._evict(msg_id) if isinstance(msg_id, int) else None
        if entry is None:
            logger.debug(f'CDP <- id={msg_id} has no pending request, ignoring')
            return

        if entry.future.done():
            return

        error = message.get('error')
        if error:
            logger.debug(f'CDP <- id={msg_id} method={entry.method} error={error}')
            entry.future.set_exception(
                CommandError(
                    error.get('message', 'Unknown CDP error'),
                    code=error.get('code'),
                    method=entry.method,
                )
            )
        else:
            logger.debug(f'CDP <- id={msg_id} method={entry.method}')
            entry.future.set_result(message.get('result', {}))

    def _expire(self, msg_id: int, timeout: float) -> None:
        entry = self._pending.pop(msg_id, None)
        if entry is None:
            return
        logger.warning(f'Command timeout: {entry.method} (id={msg_id})')
        if not entry.future.done():
            entry.future.set_exception(CommandTimeoutError(entry.method, timeout))

    def _evict(self, msg_id: int) -> PendingRequest | None:
        entry = self._pending.pop(msg_id, None)
        if entry is not None:
            entry.timer.cancel()
        return entry
