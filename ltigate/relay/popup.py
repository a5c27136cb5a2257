"""Popup window handles the relay opens the platform's authorization UI in."""

import asyncio
from typing import Protocol


class PopupWindow(Protocol):
    @property
    def closed(self) -> bool: ...

    def close(self) -> None: ...

    async def wait_closed(self) -> None: ...


class WindowOpener(Protocol):
    def open(self, url: str) -> PopupWindow | None:
        """Open ``url`` in a new window. None means the popup was blocked."""
        ...


class EventPopup:
    """Popup handle whose closure is signalled by an asyncio event.

    Opener adapters call ``close()`` when the window goes away for any
    reason; the relay only ever observes the event, never the page.
    """

    def __init__(self, url: str) -> None:
        self.url = url
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()
