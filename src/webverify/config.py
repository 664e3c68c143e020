"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for webverify:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.webverify/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Client config** -- A single :class:`~webverify.models.WebVerifyConfig`
  JSON file holding the client registration and timeouts.
* **Precedence resolution** -- :func:`resolve_config` layers
  ``WEBVERIFY_*`` environment variables over the config file over defaults.
* **Credential resolution** -- :func:`resolve_credential` reads secrets
  from env vars, files, or interactive prompts.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) so a crash never leaves a half-written file behind.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from webverify.exceptions import ConfigError
from webverify.models import WebVerifyConfig

_APP_NAME = "webverify"
_CONFIG_FILENAME = "config.json"

_ENV_OVERRIDES: dict[str, str] = {
    "WEBVERIFY_BASE_URL": "base_url",
    "WEBVERIFY_CLIENT_ID": "client_id",
    "WEBVERIFY_CLIENT_SECRET_SOURCE": "client_secret_source",
    "WEBVERIFY_REDIRECT_URI": "redirect_uri",
}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/webverify/`` (default ``~/.config/webverify/``).
    On macOS/Windows: ``~/.webverify/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (stored tokens, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/webverify/`` (default ``~/.local/share/webverify/``).
    On macOS/Windows: ``~/.webverify/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: bytes, mode: Optional[int] = None) -> None:
    """Write *data* to *path* atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX. When *mode* is given the
    permissions are applied before any content is written, so secrets are
    never world-readable, even momentarily. On any failure the temp file is
    removed and the exception propagates.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="wb",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Client config ---


def config_path() -> Path:
    """Path to the config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_config() -> WebVerifyConfig:
    """Load the configuration file.

    Returns:
        The deserialised :class:`~webverify.models.WebVerifyConfig`, or a
        default instance when the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = config_path()
    if not path.is_file():
        return WebVerifyConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return WebVerifyConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: WebVerifyConfig) -> None:
    """Persist the configuration atomically to disk."""
    text = json.dumps(config.model_dump(mode="json"), indent=2) + "\n"
    atomic_write(config_path(), text.encode("utf-8"))


def resolve_config() -> WebVerifyConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. Environment variables (``WEBVERIFY_BASE_URL``,
           ``WEBVERIFY_CLIENT_ID``, ``WEBVERIFY_CLIENT_SECRET_SOURCE``,
           ``WEBVERIFY_REDIRECT_URI``)
        2. Config file (``~/.config/webverify/config.json``)
        3. Defaults
    """
    config = load_config()
    overrides = {
        field: os.environ[var]
        for var, field in _ENV_OVERRIDES.items()
        if os.environ.get(var)
    }
    if not overrides:
        return config
    try:
        return WebVerifyConfig.model_validate({**config.model_dump(), **overrides})
    except ValidationError as exc:
        raise ConfigError(f"Invalid WEBVERIFY_* environment override: {exc}") from exc


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts user interactively (requires a TTY)

    Raises:
        ConfigError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigError(
                "Cannot prompt for credentials: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("Client secret: ")

    raise ConfigError(f"Unknown credential source format: {source}")
