"""Typed message channel between the callback page and the relay."""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError

from ltigate.lti.errors import ListenerBusyError

logger = logging.getLogger(__name__)

MESSAGE_TYPE = "lti-launch"


class LaunchMessage(BaseModel):
    """What the callback page posts to its opener."""

    model_config = ConfigDict(frozen=True)

    type: Literal["lti-launch"]
    id_token: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None


class ChannelListener:
    """The single receiver attached to a channel for one launch attempt."""

    def __init__(self, channel: "MessageChannel") -> None:
        self._channel = channel
        self._queue: asyncio.Queue[LaunchMessage] = asyncio.Queue()
        self._attached = True

    @property
    def attached(self) -> bool:
        return self._attached

    async def receive(self) -> LaunchMessage:
        """Wait for the next accepted message."""
        return await self._queue.get()

    def deliver(self, message: LaunchMessage) -> None:
        self._queue.put_nowait(message)

    def detach(self) -> None:
        """Stop receiving. Safe to call more than once."""
        if self._attached:
            self._attached = False
            self._channel.release(self)


class MessageChannel:
    """Delivers same-origin ``lti-launch`` messages to at most one listener."""

    def __init__(self, allowed_origin: str) -> None:
        self._allowed_origin = allowed_origin.rstrip("/")
        self._listener: ChannelListener | None = None

    @property
    def has_listener(self) -> bool:
        return self._listener is not None

    def listen(self) -> ChannelListener:
        if self._listener is not None:
            raise ListenerBusyError(
                "Another launch is already in progress",
                details=["Finish or cancel the other launch, then retry"],
            )
        self._listener = ChannelListener(self)
        return self._listener

    def release(self, listener: ChannelListener) -> None:
        if self._listener is listener:
            self._listener = None

    def post(self, data: Mapping[str, Any], origin: str) -> bool:
        """Offer a message. Returns True only if a listener accepted it."""
        if origin.rstrip("/") != self._allowed_origin:
            logger.debug("Dropping message from foreign origin %s", origin)
            return False
        if self._listener is None:
            return False
        try:
            message = LaunchMessage.model_validate(data)
        except ValidationError:
            logger.debug("Dropping message that is not an lti-launch message")
            return False
        self._listener.deliver(message)
        return True
