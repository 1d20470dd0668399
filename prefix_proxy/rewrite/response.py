from dataclasses import dataclass, replace
from typing import Optional

import httpx


@dataclass(frozen=True)
class ProxiedResponse:
    """
    An upstream response on its way to the client.

    ``body`` is None while the body is still the upstream stream, which is
    then delivered unchanged.
    """

    status_code: int
    headers: httpx.Headers
    body: Optional[bytes] = None

    def with_headers(self, headers: httpx.Headers) -> "ProxiedResponse":
        return replace(self, headers=headers)

    def with_body(self, body: bytes) -> "ProxiedResponse":
        return replace(self, body=body)

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")
