"""Token lifecycle and authorization flow for webverify.

This package holds everything between "the user wants to verify" and "here
is a valid access token":

- :class:`TokenStore` -- per-scope token records on a :class:`SecureStorage`
  backend.
- :class:`AuthorizationFlowController` -- the browser redirect handshake.
- :class:`TokenRefreshCoordinator` -- cached tokens and deduplicated refresh.
- :class:`ProviderEndpoints` -- URL layout and HTTP exchanges, classified by
  :mod:`webverify.auth.classifier`.
- Collaborators: :class:`HttpTransport`, :class:`BrowserPresenter` and
  :class:`LoopbackRedirectListener`.

Most hosts never use these directly; :class:`webverify.client.WebVerify`
wires them together.
"""

from webverify.auth.browser import BrowserPresenter, SystemBrowserPresenter
from webverify.auth.endpoint import ProviderEndpoints
from webverify.auth.flow import AuthorizationFlowController, PendingAuthorization
from webverify.auth.redirect_server import LoopbackRedirectListener
from webverify.auth.refresh import TokenRefreshCoordinator, utcnow
from webverify.auth.storage import FileSecureStorage, MemorySecureStorage, SecureStorage
from webverify.auth.token_store import TokenStore
from webverify.auth.transport import HttpResponse, HttpTransport

__all__ = [
    "AuthorizationFlowController",
    "BrowserPresenter",
    "FileSecureStorage",
    "HttpResponse",
    "HttpTransport",
    "LoopbackRedirectListener",
    "MemorySecureStorage",
    "PendingAuthorization",
    "ProviderEndpoints",
    "SecureStorage",
    "SystemBrowserPresenter",
    "TokenRefreshCoordinator",
    "TokenStore",
    "utcnow",
]
