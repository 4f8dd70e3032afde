"""
Error taxonomy for manifest retrieval and query rewriting.

Whole-manifest problems (transport, HTTP status, unusable body) are
``ManifestError`` subclasses and abort resolution of the table.
Single policy entries that fail to parse are ``PolicyExpressionError``
subclasses; the rewrite engine handles them per entry.
"""

from __future__ import annotations

from typing import Any


class AccessError(Exception):
    """Base exception for all access errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# ----------------------------------------------------------------------
# Manifest retrieval
# ----------------------------------------------------------------------


class ManifestError(AccessError):
    """A manifest could not be obtained for a table."""

    default_message = "manifest request failed"
    # take the message from the response body when it carries one
    use_server_message = False


class TransportError(ManifestError):
    """No response from the manifest API (connection failure or timeout)."""


class AuthenticationError(ManifestError):
    """HTTP 401: the API key was rejected."""

    default_message = "authentication failed — check your API key"


class AuthorizationError(ManifestError):
    """HTTP 403: the API key is valid but access to the table is denied."""

    default_message = "access denied"
    use_server_message = True


class NotFoundError(ManifestError):
    """HTTP 404: the table is unknown to the manifest API."""

    default_message = "table not found on server"
    use_server_message = True


class ProtocolError(ManifestError):
    """Any other non-success HTTP status."""


class ManifestParseError(ManifestError):
    """The response body could not be turned into a manifest."""


class MalformedManifestError(ManifestParseError):
    """The body is not a JSON object with the expected field types."""


class NoDataFilesError(ManifestParseError):
    """The manifest parsed but lists no data files."""

    def __init__(self, table: str):
        super().__init__(
            f"manifest contains no data files for table '{table}'",
            details={"table": table},
        )
        self.table = table


HTTP_STATUS_ERRORS: dict[int, type[ManifestError]] = {
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
}


# ----------------------------------------------------------------------
# Policy expressions
# ----------------------------------------------------------------------


class PolicyExpressionError(AccessError):
    """A single row filter or column mask is not a valid SQL expression."""

    kind = "expression"

    def __init__(self, expression: str, reason: str, target: str | None = None):
        super().__init__(
            f"invalid {self.kind} expression {expression!r}: {reason}",
            details={"target": target, "reason": reason},
        )
        self.expression = expression
        self.reason = reason
        self.target = target


class MaskParseError(PolicyExpressionError):
    kind = "mask"


class FilterParseError(PolicyExpressionError):
    kind = "filter"


# ----------------------------------------------------------------------
# Rewrite
# ----------------------------------------------------------------------


class RewriteError(AccessError):
    """A table reference could not be bound; the query must fail to compile."""

    def __init__(self, table: str, cause: str):
        super().__init__(
            f"failed to resolve table '{table}': {cause}",
            details={"table": table, "cause": cause},
        )
        self.table = table
        self.cause = cause
