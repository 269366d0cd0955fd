"""Actor module for page and element interactions."""

from fetchify.actor.element import ElementHandle
from fetchify.actor.page import NetworkIdleWatcher, Page

__all__ = [
    "ElementHandle",
    "NetworkIdleWatcher",
    "Page",
]
