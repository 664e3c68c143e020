"""Browser presentation collaborator.

The flow controller asks a :class:`BrowserPresenter` to show the authorize
(or logout) URL and later to dismiss whatever it showed. Hosts with an
embedded browsing surface implement both methods; the command line host uses
:class:`SystemBrowserPresenter`, which hands the URL to the system browser.

See Also:
    :class:`webverify.auth.redirect_server.LoopbackRedirectListener` for how
    the command line host receives the redirect.
"""

from __future__ import annotations

import logging
import threading
import webbrowser
from abc import ABC, abstractmethod
from typing import Any, Optional

logger = logging.getLogger(__name__)


class BrowserPresenter(ABC):
    """Show and dismiss a browsing surface for one flow at a time."""

    @abstractmethod
    def present(self, url: str, context: Optional[Any] = None) -> None:  # noqa: ANN401
        """Show *url*.

        Args:
            url: Authorize or logout URL.
            context: Host-specific presentation anchor (a window, a view
                controller). Passed through untouched.
        """

    @abstractmethod
    def dismiss(self) -> None:
        """Dismiss the surface opened by the last :meth:`present`."""


class SystemBrowserPresenter(BrowserPresenter):
    """Open URLs in the user's default browser.

    The browser is opened on a daemon thread so a slow launcher never blocks
    the caller. The system browser cannot be closed from here, so
    :meth:`dismiss` only records that the flow is over.
    """

    def __init__(self) -> None:
        self._thread: Optional[threading.Thread] = None

    def present(self, url: str, context: Optional[Any] = None) -> None:  # noqa: ANN401
        def open_browser() -> None:
            if not webbrowser.open(url):
                logger.warning("No browser available; open the authorization URL manually")

        self._thread = threading.Thread(target=open_browser, daemon=True)
        self._thread.start()

    def dismiss(self) -> None:
        logger.debug("Browser flow finished")
        self._thread = None
