"""``webverify configure`` -- record the client registration.

Values given as options are saved as-is; missing required values are
prompted for. The client secret itself is never written to the config file,
only its source descriptor (``env:VAR``, ``file:/path`` or ``prompt``).

Example::

    webverify configure --client-id abc --redirect-uri http://127.0.0.1:8765/callback \\
        --secret-source env:WEBVERIFY_SECRET
"""

from __future__ import annotations

from typing import Optional

import typer


def configure_command(
    client_id: Optional[str] = typer.Option(None, "--client-id", help="OAuth2 client ID."),
    redirect_uri: Optional[str] = typer.Option(
        None, "--redirect-uri", help="Registered redirect URI (http://127.0.0.1:PORT/...)."
    ),
    secret_source: Optional[str] = typer.Option(
        None,
        "--secret-source",
        "-s",
        help="Client secret source: env:VAR, file:/path, prompt.",
    ),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Authorization server URL."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="HTTP timeout in seconds."),
    callback_timeout: Optional[float] = typer.Option(
        None, "--callback-timeout", help="Seconds to wait for the browser redirect."
    ),
) -> None:
    """Save the client registration to the config file."""
    from pydantic import ValidationError

    from webverify.config import config_path, load_config, save_config
    from webverify.models import WebVerifyConfig
    from webverify.output import error, info, success, suggest

    current = load_config()
    data = current.model_dump()

    if client_id is None and not current.client_id:
        client_id = typer.prompt("Client ID")
    if redirect_uri is None and not current.redirect_uri:
        redirect_uri = typer.prompt("Redirect URI", default="http://127.0.0.1:8765/callback")

    updates = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "client_secret_source": secret_source,
        "base_url": base_url,
        "timeout": timeout,
        "callback_timeout": callback_timeout,
    }
    data.update({key: value for key, value in updates.items() if value is not None})

    try:
        config = WebVerifyConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Invalid configuration: {exc}")
        raise typer.Exit(code=2) from None

    save_config(config)
    success("Configuration saved.")
    info(f"Config file: {config_path()}")
    if not config.client_secret_source:
        suggest("Set a secret source: webverify configure --secret-source env:WEBVERIFY_SECRET")
    suggest("Verify a scope: webverify verify <scope>")
