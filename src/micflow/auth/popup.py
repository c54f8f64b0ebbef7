"""Popup protocol and the single-attempt redirect state machine.

A *popup* is any interactive browser surface able to report the URLs it
navigates to and when the user closes it (an embedded web view, a desktop
browser driven over a debugging protocol, a test double...).  micflow does
not ship one; callers inject a :data:`PopupOpener`.

:class:`PopupAttempt` watches one popup until it reaches the redirect URI::

    IDLE --start()--> AWAITING_REDIRECT --navigated(redirect_uri...)--> TERMINAL
                                       \\--closed()--------------------> TERMINAL

Exactly one outcome is delivered per attempt: the first matching
navigation (code, OAuth error, or neither) or the close event, whichever
wins the lock.  Every exit path removes the popup's listeners.
"""

from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Union
from urllib.parse import parse_qs, urlsplit

from micflow.exceptions import AuthorizationError

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Login has been cancelled."
NO_CODE_MESSAGE = "No code or error was provided."


@dataclass(frozen=True)
class NavigationEvent:
    """A navigation reported by a popup."""

    url: str


class PopupHandle(Protocol):
    """An open interactive surface, referenced for one authorization attempt."""

    def on_navigated(self, callback: Callable[[NavigationEvent], None]) -> None: ...

    def on_closed(self, callback: Callable[[], None]) -> None: ...

    def remove_all_listeners(self) -> None: ...

    def close(self) -> None: ...


PopupOpener = Callable[[str], PopupHandle]


class PopupState(enum.Enum):
    IDLE = "idle"
    AWAITING_REDIRECT = "awaiting_redirect"
    TERMINAL = "terminal"


def _event_url(event: Union[NavigationEvent, str, Any]) -> Optional[str]:
    if isinstance(event, str):
        return event
    return getattr(event, "url", None)


class PopupAttempt:
    """Watch a popup until it redirects to *redirect_uri*, then yield the code.

    Args:
        redirect_uri: Prefix identifying the final redirect.

    Example::

        attempt = PopupAttempt("app://callback")
        attempt.start(opener(authorization_url))
        code = attempt.wait()
    """

    def __init__(self, redirect_uri: str) -> None:
        self._redirect_uri = redirect_uri
        self._state = PopupState.IDLE
        self._lock = threading.Lock()
        self._future: Future[str] = Future()
        self._popup: Optional[PopupHandle] = None
        self._registering = False
        self._deferred_close: Optional[bool] = None

    @property
    def state(self) -> PopupState:
        return self._state

    def start(self, popup: PopupHandle) -> None:
        """Attach to *popup* and begin listening for its events.

        The state moves to ``AWAITING_REDIRECT`` before the listeners are
        registered, because a popup may fire events synchronously.  An
        outcome reached during registration releases the popup only once
        both listeners are attached.  If registration fails the popup is
        released and closed before the error propagates.
        """
        with self._lock:
            if self._state is not PopupState.IDLE:
                raise RuntimeError("A popup attempt can only be started once")
            self._popup = popup
            self._state = PopupState.AWAITING_REDIRECT
            self._registering = True
        try:
            popup.on_navigated(self._on_navigated)
            popup.on_closed(self._on_closed)
        except BaseException:
            deferred = self._end_registration()
            if not self.abort():
                self._release(close=bool(deferred))
            raise
        deferred = self._end_registration()
        if deferred is not None:
            self._release(close=deferred)

    def abort(self) -> bool:
        """Give up on an attempt still awaiting its redirect.

        Releases and closes the popup and cancels the pending outcome.

        Returns:
            ``False`` if the attempt had already reached its terminal state.
        """
        if not self._enter_terminal():
            return False
        self._release(close=True)
        self._future.cancel()
        return True

    def wait(self, timeout: Optional[float] = None) -> str:
        """Block until the attempt reaches its terminal state.

        Args:
            timeout: Optional caller-imposed limit in seconds.  ``None``
                waits until the user finishes or closes the popup.

        Returns:
            The authorization code.

        Raises:
            AuthorizationError: On cancellation, an OAuth error, a redirect
                without code, or when *timeout* expires.
        """
        try:
            return self._future.result(timeout)
        except FutureTimeoutError:
            if not self._enter_terminal():
                # An outcome landed between the timeout and the lock.
                return self._future.result()
            self._release(close=True)
            raise AuthorizationError(
                "Login timed out.",
                f"The popup did not redirect to {self._redirect_uri} within {timeout} seconds.",
            ) from None
        except BaseException:
            # Interrupted while waiting, e.g. KeyboardInterrupt.
            self.abort()
            raise

    # ------------------------------------------------------------------ #
    # Event handlers
    # ------------------------------------------------------------------ #

    def _on_navigated(self, event: Union[NavigationEvent, str, Any]) -> None:
        try:
            url = _event_url(event)
            if not url or not url.startswith(self._redirect_uri):
                return
            query = parse_qs(urlsplit(url).query)
        except Exception:
            logger.debug("Ignoring popup navigation event that could not be inspected", exc_info=True)
            return

        if not self._enter_terminal():
            return
        self._release(close=True)

        if query.get("code"):
            self._future.set_result(query["code"][0])
        elif query.get("error"):
            description = query.get("error_description", [None])[0]
            self._future.set_exception(AuthorizationError(query["error"][0], description))
        else:
            self._future.set_exception(AuthorizationError(NO_CODE_MESSAGE))

    def _on_closed(self, *args: Any) -> None:
        if not self._enter_terminal():
            return
        self._release(close=False)
        self._future.set_exception(AuthorizationError(CANCELLED_MESSAGE))

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _enter_terminal(self) -> bool:
        """Move to ``TERMINAL``; return ``False`` if another outcome got there first."""
        with self._lock:
            if self._state is not PopupState.AWAITING_REDIRECT:
                return False
            self._state = PopupState.TERMINAL
            return True

    def _end_registration(self) -> Optional[bool]:
        """Leave the registration window; return a release deferred during it."""
        with self._lock:
            self._registering = False
            deferred, self._deferred_close = self._deferred_close, None
            return deferred

    def _release(self, close: bool) -> None:
        with self._lock:
            if self._registering:
                self._deferred_close = close
                return
            popup = self._popup
        if popup is None:
            return
        try:
            popup.remove_all_listeners()
            if close:
                popup.close()
        except Exception:
            logger.warning("Failed to release the login popup", exc_info=True)
