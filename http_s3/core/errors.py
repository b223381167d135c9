"""Error taxonomy raised while resolving a request against the bucket."""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for failures that map onto an HTTP status."""

    status_code = 500


class ConfigurationError(GatewayError):
    """The storage session could not be built from the settings."""


class BackendUnavailable(GatewayError):
    """The configured bucket is missing or could not be checked."""


class BadRequest(GatewayError):
    """The request path is not a decodable storage key."""

    status_code = 400


class NotFound(GatewayError):
    """Neither an object nor a folder prefix matched the key."""

    status_code = 404


class TransferError(GatewayError):
    """Fetching, listing or archiving objects failed."""


__all__ = [
    "BackendUnavailable",
    "BadRequest",
    "ConfigurationError",
    "GatewayError",
    "NotFound",
    "TransferError",
]
