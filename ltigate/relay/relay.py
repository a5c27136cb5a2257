"""Launch relay: drives one launch attempt from login to a verified session."""

import asyncio
import logging
from collections.abc import Callable
from enum import StrEnum

import uuid_utils
from pydantic import BaseModel, Field

from ltigate.core.settings import LTISettings
from ltigate.lti.errors import (
    LaunchError,
    PlatformError,
    PopupBlockedError,
    RelayTimeoutError,
    UserCancelledError,
)
from ltigate.lti.types import LaunchSession, LoginResult
from ltigate.relay.backend import LaunchBackend
from ltigate.relay.channel import ChannelListener, LaunchMessage, MessageChannel
from ltigate.relay.popup import PopupWindow, WindowOpener

logger = logging.getLogger(__name__)


class RelayState(StrEnum):
    IDLE = "idle"
    INITIATING = "initiating"
    AWAITING_PLATFORM = "awaiting_platform"
    VALIDATING = "validating"
    LAUNCHED = "launched"
    FAILED = "failed"


_TRANSITIONS: dict[RelayState, frozenset[RelayState]] = {
    RelayState.IDLE: frozenset({RelayState.INITIATING}),
    RelayState.INITIATING: frozenset(
        {RelayState.AWAITING_PLATFORM, RelayState.FAILED}
    ),
    RelayState.AWAITING_PLATFORM: frozenset(
        {RelayState.VALIDATING, RelayState.FAILED}
    ),
    RelayState.VALIDATING: frozenset({RelayState.LAUNCHED, RelayState.FAILED}),
    RelayState.LAUNCHED: frozenset(),
    RelayState.FAILED: frozenset(),
}


class RelayOutcome(BaseModel):
    """Terminal result of a launch attempt.

    ``fallback_url`` is always set when known so the caller can offer to
    open the tool directly, without a verified session.
    """

    state: RelayState
    session: LaunchSession | None = None
    launch_url: str | None = None
    target_link_uri: str | None = None
    error: str | None = None
    message: str | None = None
    details: list[str] = Field(default_factory=list)
    fallback_url: str | None = None

    @property
    def launched(self) -> bool:
        return self.state is RelayState.LAUNCHED


TransitionHook = Callable[[RelayState, RelayState], None]


class LaunchRelay:
    """One launch attempt. Create a new relay for every attempt.

    Without an explicit ``timeout`` the wait for the platform is bounded by
    ``LTI_RELAY_TIMEOUT``.
    """

    def __init__(
        self,
        backend: LaunchBackend,
        opener: WindowOpener,
        channel: MessageChannel,
        timeout: float | None = None,
        fallback_url: str | None = None,
        on_transition: TransitionHook | None = None,
    ) -> None:
        self._backend = backend
        self._opener = opener
        self._channel = channel
        self._timeout = LTISettings().relay_timeout if timeout is None else timeout
        self._fallback_url = fallback_url
        self._on_transition = on_transition
        self._state = RelayState.IDLE
        self.history: list[RelayState] = [RelayState.IDLE]
        self.attempt_id = str(uuid_utils.uuid7())

    @property
    def state(self) -> RelayState:
        return self._state

    def _transition(self, new: RelayState) -> None:
        if new not in _TRANSITIONS[self._state]:
            raise RuntimeError(f"Illegal relay transition {self._state} -> {new}")
        old, self._state = self._state, new
        self.history.append(new)
        logger.debug("Relay %s: %s -> %s", self.attempt_id, old, new)
        if self._on_transition is not None:
            self._on_transition(old, new)

    async def launch(
        self, target_url: str | None = None, login_hint: str | None = None
    ) -> RelayOutcome:
        """Run the attempt to a terminal state. Never raises LaunchError."""
        if self._state is not RelayState.IDLE:
            raise RuntimeError("A relay runs a single launch attempt")

        fallback = target_url or self._fallback_url
        listener: ChannelListener | None = None
        popup: PopupWindow | None = None
        try:
            self._transition(RelayState.INITIATING)
            login = await self._backend.start_login(target_url, login_hint)

            # Listen before opening so a fast platform cannot beat the listener.
            listener = self._channel.listen()
            popup = self._opener.open(login.auth_url)
            if popup is None:
                raise PopupBlockedError(
                    "The platform login window was blocked",
                    details=["Allow popups for this site and retry"],
                )
            self._transition(RelayState.AWAITING_PLATFORM)

            message = await self._await_message(listener, popup, login)
            listener.detach()
            if message.error:
                raise PlatformError(
                    f"Platform refused the launch: {message.error}",
                    details=[message.error_description or message.error],
                )

            self._transition(RelayState.VALIDATING)
            result = await self._backend.validate_launch(
                message.id_token or "", message.state or ""
            )
            if not result.success or result.session is None:
                return self._fail(
                    result.error or "AuthError",
                    "The launch could not be verified",
                    result.details,
                    fallback,
                )

            self._transition(RelayState.LAUNCHED)
            logger.info("Relay %s launched", self.attempt_id)
            return RelayOutcome(
                state=self._state,
                session=result.session,
                launch_url=result.session.launch_url,
                target_link_uri=result.session.target_link_uri,
                fallback_url=fallback,
            )
        except LaunchError as exc:
            return self._fail(exc.kind, exc.message, exc.details, fallback)
        finally:
            if listener is not None:
                listener.detach()
            if popup is not None and not popup.closed:
                popup.close()

    async def _await_message(
        self,
        listener: ChannelListener,
        popup: PopupWindow,
        login: LoginResult,
    ) -> LaunchMessage:
        """Wait for this attempt's message, the popup closing, or the timeout."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        closed = asyncio.ensure_future(popup.wait_closed())
        receive: asyncio.Future[LaunchMessage] | None = None
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise self._timed_out()
                receive = asyncio.ensure_future(listener.receive())
                done, _ = await asyncio.wait(
                    {receive, closed},
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if receive in done:
                    message = receive.result()
                    if message.id_token and message.state == login.state:
                        return message
                    if message.error and message.state in (None, login.state):
                        return message
                    logger.debug(
                        "Relay %s ignoring message for another attempt",
                        self.attempt_id,
                    )
                    continue
                if closed in done:
                    raise UserCancelledError(
                        "The platform login window was closed",
                        details=["Retry the launch or open the tool directly"],
                    )
                raise self._timed_out()
        finally:
            closed.cancel()
            if receive is not None and not receive.done():
                receive.cancel()

    def _timed_out(self) -> RelayTimeoutError:
        return RelayTimeoutError(
            "The platform did not respond in time",
            details=[f"No launch message within {self._timeout:g} seconds"],
        )

    def _fail(
        self,
        kind: str,
        message: str,
        details: list[str],
        fallback: str | None,
    ) -> RelayOutcome:
        self._transition(RelayState.FAILED)
        logger.warning(
            "Relay %s failed (%s): %s", self.attempt_id, kind, "; ".join(details)
        )
        return RelayOutcome(
            state=self._state,
            error=kind,
            message=message,
            details=details,
            fallback_url=fallback,
        )
