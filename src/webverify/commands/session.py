"""``webverify verify`` and ``webverify logout`` -- the browser commands.

Both open the system browser and wait for the redirect on the loopback
redirect URI (see :func:`webverify.commands.common.run_browser_flow`).

Typical workflow::

    webverify verify military                 # plain verification
    webverify verify me --login-type signup   # sign-up page
    webverify verify me --connection paypal   # connect a PayPal account
    webverify verify me --affiliation teacher # add an affiliation
    webverify logout
"""

from __future__ import annotations

from functools import partial
from typing import Optional

import typer

from webverify.models import Affiliation, Connection, LoginType


def verify_command(
    scope: str = typer.Argument(help="Scope to verify and store tokens under."),
    login_type: Optional[LoginType] = typer.Option(
        None, "--login-type", help="Open the sign-up or sign-in page."
    ),
    connection: Optional[Connection] = typer.Option(
        None, "--connection", help="Connect a third-party account."
    ),
    affiliation: Optional[Affiliation] = typer.Option(
        None, "--affiliation", help="Add a group affiliation."
    ),
) -> None:
    """Verify the user in the browser and store tokens for SCOPE.

    At most one of ``--login-type``, ``--connection`` and ``--affiliation``
    may be given.

    Raises:
        typer.Exit: With code 2 if more than one variant option is given.
    """
    from webverify.commands.common import build_client, load_settings, run_browser_flow
    from webverify.output import error, print_record, success

    chosen = [opt for opt in (login_type, connection, affiliation) if opt is not None]
    if len(chosen) > 1:
        error("Use only one of --login-type, --connection and --affiliation.")
        raise typer.Exit(code=2)

    config = load_settings()
    with build_client(config) as client:
        if login_type is not None:
            start = partial(client.register_or_login, scope, login_type)
        elif connection is not None:
            start = partial(client.register_connection, scope, connection)
        elif affiliation is not None:
            start = partial(client.register_affiliation, scope, affiliation)
        else:
            start = partial(client.verify_user, scope)
        run_browser_flow(client, config, start)

    success(f'Verified scope "{scope}".')
    print_record({"scope": scope, "verified": True})


def logout_command(
    local: bool = typer.Option(
        False, "--local", help="Only forget stored tokens; do not open the browser."
    ),
) -> None:
    """Forget every stored scope and end the browser session."""
    from webverify.commands.common import (
        build_client,
        load_settings,
        open_store,
        run_browser_flow,
    )
    from webverify.output import success

    if local:
        open_store().clear()
        success("Stored tokens removed.")
        return

    config = load_settings()
    with build_client(config) as client:
        run_browser_flow(client, config, client.logout)
    success("Logged out.")
