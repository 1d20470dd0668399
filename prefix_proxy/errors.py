"""Error hierarchy of the proxy.

Only ``ConfigError`` is fatal. The other errors are raised inside a single
exchange and translated into a generic bad-gateway response at the route
boundary.
"""


class ProxyError(Exception):
    """Base class for all proxy errors."""


class ConfigError(ProxyError):
    """Invalid startup configuration (e.g. malformed upstream URL)."""


class UpstreamUnreachableError(ProxyError):
    """The upstream could not be reached (refused, reset, timed out)."""


class BodyReadError(ProxyError):
    """The upstream response body could not be read completely."""


class BodyTooLargeError(BodyReadError):
    """The upstream response body exceeds the configured buffering limit."""

    def __init__(self, limit: int, size: int):
        super().__init__(f"Response body of {size} bytes exceeds limit of {limit}")
        self.limit = limit
        self.size = size
