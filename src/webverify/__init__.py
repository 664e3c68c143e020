"""webverify -- OAuth2 Authorization Code + PKCE client for browser-based verification.

A host application authenticates a user in an external browser, exchanges the
authorization code for tokens, and keeps those tokens per *scope* (an
application-defined identity or affiliation namespace). Expired access tokens
are refreshed transparently, with concurrent refreshes of the same scope
collapsed into a single network exchange.

Typical use::

    with WebVerify() as verify:
        verify.initialize("client-id", "client-secret", "myapp://callback")
        token = verify.verify_user("military").result()
        profile = verify.get_user_profile("military")

Modules:
    client: The :class:`~webverify.client.WebVerify` context object.
    auth: Token store, authorization flow, refresh coordination, collaborators.
    pkce: RFC 7636 verifier / challenge helpers.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and credential resolution.
    exceptions: Error taxonomy with numeric codes and CLI exit codes.
    app: Typer CLI entry point.
"""

__version__ = "0.1.0"

from webverify.client import WebVerify  # noqa: E402

__all__ = ["WebVerify", "__version__"]
