"""Numeric process exit codes for the ``webverify`` CLI.

Each constant maps to an error category and is referenced by the
corresponding :class:`~webverify.exceptions.WebVerifyError` subclass, so
shell wrappers can tell failure classes apart without parsing stderr.

Example::

    $ webverify token student
    $ echo $?
    4   # EXIT_REAUTH_REQUIRED -- run `webverify verify student` again
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing configuration."""

EXIT_AUTH_FAILURE = 3
"""Authentication or authorisation failed."""

EXIT_REAUTH_REQUIRED = 4
"""No usable tokens are stored; the user has to verify again."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_CANCELED = 130
"""The user cancelled the browser flow."""
