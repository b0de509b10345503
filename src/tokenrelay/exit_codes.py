"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to an error category and is referenced by the matching
:class:`~tokenrelay.exceptions.TokenRelayError` subclass, so shell wrappers
can tell a rejected callback from a dead network without parsing stderr.

Example::

    $ tokenrelay auth callback "https://app.test/callback?code=x&state=y"
    $ echo $?
    4   # EXIT_SECURITY_ERROR -- state did not match
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or configuration."""

EXIT_AUTH_FAILURE = 3
"""No usable token, the server denied authorization, or the flow expired."""

EXIT_SECURITY_ERROR = 4
"""The callback state did not match the pending session (possible CSRF)."""

EXIT_HTTP_ERROR = 5
"""A token or resource endpoint answered with a non-2xx status."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred before any response was received."""

EXIT_PROTOCOL_ERROR = 7
"""A callback or token response was malformed."""

EXIT_CANCELLED = 130
"""The flow was cancelled by the user."""
