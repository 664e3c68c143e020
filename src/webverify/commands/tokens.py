"""``webverify token``, ``webverify profile`` and ``webverify status``.

``token`` prints a valid access token (refreshing it first when it has
expired), ``profile`` prints the verified profile, and ``status`` lists the
stored scopes with their expiries. None of them open a browser; when the
stored tokens cannot be used they fail with an exit code telling the caller
to run ``webverify verify`` again.
"""

from __future__ import annotations

from typing import Optional

import typer


def token_command(
    scope: Optional[str] = typer.Argument(
        None, help="Scope to use. Defaults to the most recently verified one."
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Refresh even if still valid."),
) -> None:
    """Print a valid access token.

    Example::

        curl -H "Authorization: Bearer $(webverify token military)" ...
    """
    from webverify.commands.common import build_client, load_settings
    from webverify.output import OutputFormat, get_output, print_data, print_record

    with build_client(load_settings()) as client:
        token = client.get_access_token(scope, force_refresh=force)
        resolved = scope if scope is not None else client.latest_scope

    if get_output().format == OutputFormat.JSON:
        print_record({"scope": resolved, "access_token": token})
    else:
        print_data(token)


def profile_command(
    scope: Optional[str] = typer.Argument(
        None, help="Scope to use. Defaults to the most recently verified one."
    ),
) -> None:
    """Print the verified user profile."""
    from webverify.commands.common import build_client, load_settings
    from webverify.output import print_record

    with build_client(load_settings()) as client:
        profile = client.get_user_profile(scope)
    print_record(profile)


def status_command() -> None:
    """List stored scopes and when their tokens expire."""
    from webverify.commands.common import open_store
    from webverify.output import info, print_table, suggest

    state = open_store().snapshot()
    if state.is_empty:
        info("No stored tokens.")
        suggest("Verify a scope: webverify verify <scope>")
        return

    rows = [
        [
            scope,
            record.access_token_expiry.isoformat(),
            record.refresh_token_expiry.isoformat(),
            "yes" if scope == state.latest_scope else "",
        ]
        for scope, record in sorted(state.records.items())
    ]
    print_table(
        ["scope", "access_token_expiry", "refresh_token_expiry", "latest"],
        rows,
        title="Stored scopes",
    )
