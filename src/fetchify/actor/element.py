"""Element handle for DOM nodes found by ``Page`` queries."""

import logging
from typing import TYPE_CHECKING, Literal

from fetchify.browser.views import BoxModel
from fetchify.exceptions import StaleElementError

if TYPE_CHECKING:
    from fetchify.actor.page import Page

logger = logging.getLogger(__name__)

MouseButton = Literal['left', 'right', 'middle']


class ElementHandle:
    """A DOM node id bound to the document it was taken from.

    The handle records the page's document epoch at creation time. Once the
    page navigates or the document is rebuilt, every operation raises
    ``StaleElementError`` instead of addressing a node id that may now point
    at something else.
    """

    def __init__(self, page: 'Page', node_id: int, epoch: int):
        self._page = page
        self.node_id = node_id
        self.epoch = epoch

    def __repr__(self) -> str:
        return f'ElementHandle(node_id={self.node_id}, epoch={self.epoch})'

    @property
    def is_stale(self) -> bool:
        return self.epoch != self._page.epoch

    def _ensure_fresh(self) -> None:
        if self.is_stale:
            raise StaleElementError(
                f'Element {self.node_id} belongs to document epoch {self.epoch}, '
                f'page is at epoch {self._page.epoch}'
            )

    async def get_attribute(self, name: str) -> str | None:
        """Attribute value, or None when it is absent or empty."""
        self._ensure_fresh()
        attributes = await self._page.get_attributes(self.node_id)
        return attributes.get(name) or None

    async def text_content(self) -> str:
        self._ensure_fresh()
        return await self._page.get_text_content(self.node_id)

    async def href(self) -> str | None:
        return await self.get_attribute('href')

    async def src(self) -> str | None:
        return await self.get_attribute('src')

    async def click(self, button: MouseButton = 'left') -> None:
        """Press and release the mouse at the top-left of the content box.

        The element is neither scrolled into view nor hit-tested first.
        """
        self._ensure_fresh()
        await self._page.send('DOM.focus', {'nodeId': self.node_id})

        box = BoxModel.from_cdp(await self._page.send('DOM.getBoxModel', {'nodeId': self.node_id}))
        x, y = box.content_origin
        logger.debug(f'Clicking node {self.node_id} at ({x}, {y})')

        for event_type in ('mousePressed', 'mouseReleased'):
            await self._page.send(
                'Input.dispatchMouseEvent',
                {
                    'type': event_type,
                    'x': x,
                    'y': y,
                    'button': button,
                    'clickCount': 1,
                },
            )

    async def type(self, text: str) -> None:
        """Focus the element and send one ``char`` key event per character."""
        self._ensure_fresh()
        await self._page.send('DOM.focus', {'nodeId': self.node_id})

        for char in text:
            await self._page.send('Input.dispatchKeyEvent', {'type': 'char', 'text': char})
