"""
Response rewrite pipeline.

Each step is a pure transform ``(ProxiedResponse, RewriteContext) ->
ProxiedResponse``. The orchestrator runs the header steps on every response
and the body rewrite only after it has buffered an eligible body.
"""

from typing import Callable, Sequence

import httpx

from prefix_proxy.rewrite.content_type import (
    DEFAULT_REWRITE_CONTENT_TYPES,
    has_body,
    is_decodable,
    is_rewritable,
)
from prefix_proxy.rewrite.context import RewriteContext
from prefix_proxy.rewrite.headers import rewrite_headers
from prefix_proxy.rewrite.response import ProxiedResponse

ResponseTransform = Callable[[ProxiedResponse, RewriteContext], ProxiedResponse]

# Response headers that must not be forwarded to the client (RFC 9110 §7.6.1)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
}


def drop_hop_by_hop_headers(response: ProxiedResponse, ctx: RewriteContext) -> ProxiedResponse:
    headers = [
        (name, value)
        for name, value in response.headers.raw
        if name.decode("latin-1").lower() not in HOP_BY_HOP_HEADERS
    ]
    return response.with_headers(httpx.Headers(headers, encoding=response.headers.encoding))


def rewrite_response_headers(response: ProxiedResponse, ctx: RewriteContext) -> ProxiedResponse:
    return response.with_headers(rewrite_headers(response.headers, ctx))


HEADER_STEPS: Sequence[ResponseTransform] = (
    drop_hop_by_hop_headers,
    rewrite_response_headers,
)


def run_steps(
    response: ProxiedResponse,
    ctx: RewriteContext,
    steps: Sequence[ResponseTransform],
) -> ProxiedResponse:
    for step in steps:
        response = step(response, ctx)
    return response


def rewrite_response_head(response: ProxiedResponse, ctx: RewriteContext) -> ProxiedResponse:
    """Run every header step."""
    return run_steps(response, ctx, HEADER_STEPS)


def needs_body_rewrite(
    response: ProxiedResponse,
    method: str,
    content_types: Sequence[str] = DEFAULT_REWRITE_CONTENT_TYPES,
) -> bool:
    return (
        has_body(response.status_code, method)
        and is_rewritable(response.content_type, content_types)
        and is_decodable(response.headers.get("content-encoding"))
    )
