import logging
from typing import AsyncIterator, List, Optional, Tuple

import httpx
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask
from opentelemetry import trace

from prefix_proxy.config import ProxyConfig
from prefix_proxy.errors import BodyReadError, UpstreamUnreachableError
from prefix_proxy.metrics import REWRITES, UPSTREAM_FAILURES
from prefix_proxy.rewrite.body import apply_body_rewrite, read_body
from prefix_proxy.rewrite.content_type import DECODABLE_ENCODINGS
from prefix_proxy.rewrite.context import RewriteContext
from prefix_proxy.rewrite.pipeline import (
    HOP_BY_HOP_HEADERS,
    needs_body_rewrite,
    rewrite_response_head,
)
from prefix_proxy.rewrite.response import ProxiedResponse
from prefix_proxy.utils.traced_requests import traced_exchange

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]
BAD_GATEWAY_MESSAGE = "Proxy Error: Unable to reach backend"

# Request headers replaced or recomputed for the upstream request
REPLACED_REQUEST_HEADERS = {"host", "content-length"}


def strip_path_prefix(path: str, prefix: str) -> str:
    """
    Remove the public path prefix from a request path.

    The prefix is only stripped at a segment boundary, an empty result becomes
    ``/`` and paths outside the prefix are returned unchanged.
    """
    if not prefix:
        return path or "/"
    if path == prefix:
        return "/"
    if path.startswith(prefix + "/"):
        return path[len(prefix):]
    return path or "/"


def build_upstream_url(config: ProxyConfig, path: str, query: str = "") -> httpx.URL:
    """Point ``path`` (still percent-encoded) and ``query`` at the upstream origin."""
    raw_path = f"{path}?{query}" if query else path
    return config.upstream_url.copy_with(raw_path=raw_path.encode("latin-1"))


def filter_accept_encoding(value: str) -> Optional[str]:
    """Keep only content codings the proxy can decode for rewriting."""
    accepted = [
        token.strip()
        for token in value.split(",")
        if token.split(";", 1)[0].strip().lower() in DECODABLE_ENCODINGS
    ]
    return ", ".join(accepted) or None


def prepare_headers(request: Request, config: ProxyConfig) -> List[Tuple[str, str]]:
    """
    Prepare headers for forwarding to the upstream.
    Removes hop-by-hop headers, points Host at the upstream and adds proxy headers.
    """
    headers = []
    for name, value in request.headers.items():
        name_lower = name.lower()
        if name_lower in HOP_BY_HOP_HEADERS or name_lower in REPLACED_REQUEST_HEADERS:
            continue
        if name_lower == "accept-encoding":
            value = filter_accept_encoding(value)
            if value is None:
                continue
        if config.forwarded_headers and name_lower == "x-forwarded-for":
            continue
        headers.append((name, value))

    headers.append(("host", config.upstream_host))

    if config.forwarded_headers:
        client_ip = request.client.host if request.client else "unknown"
        existing_xff = request.headers.get("x-forwarded-for", "")
        headers.append(("x-forwarded-for", f"{existing_xff}, {client_ip}".strip(", ")))
        headers.append(("x-forwarded-host", config.public_host))
        headers.append(("x-forwarded-proto", config.public_scheme))
        if config.path_prefix:
            headers.append(("x-forwarded-prefix", config.path_prefix))

    return headers


def get_proxy_config(request: Request) -> ProxyConfig:
    return request.app.state.proxy_config


def _request_path(request: Request) -> str:
    raw_path = request.scope.get("raw_path")
    if not raw_path:
        return request.url.path
    return raw_path.split(b"?", 1)[0].decode("latin-1")


async def dispatch(
    client: httpx.AsyncClient,
    method: str,
    url: httpx.URL,
    headers: List[Tuple[str, str]],
    body: bytes,
) -> httpx.Response:
    """Send the request upstream and return the response with its body unread."""
    upstream_request = client.build_request(method, url, headers=headers, content=body)
    try:
        return await client.send(upstream_request, stream=True)
    except httpx.RequestError as e:
        raise UpstreamUnreachableError(f"{type(e).__name__}: {e}") from e


async def close_upstream(response: httpx.Response, client: httpx.AsyncClient) -> None:
    await response.aclose()
    await client.aclose()


async def stream_upstream(
    response: httpx.Response, client: httpx.AsyncClient, method: str, path: str
) -> AsyncIterator[bytes]:
    """Relay the upstream body byte for byte (still content-encoded)."""
    try:
        async for chunk in response.aiter_raw():
            yield chunk
    except httpx.RequestError as e:
        logger.error(f" ERROR [{method} {path}]: upstream stream broke: {e}")
        UPSTREAM_FAILURES.labels(reason="stream").inc()
        raise
    finally:
        await close_upstream(response, client)


def to_client_response(
    response: ProxiedResponse,
    stream: Optional[AsyncIterator[bytes]] = None,
    background: Optional[BackgroundTask] = None,
) -> Response:
    if response.body is not None:
        client_response = Response(content=response.body, status_code=response.status_code)
    else:
        client_response = StreamingResponse(
            stream, status_code=response.status_code, background=background
        )
    # raw headers keep repeated Set-Cookie values apart
    client_response.raw_headers = [
        (name.lower(), value) for name, value in response.headers.raw
    ]
    return client_response


def _count_header_rewrites(before: httpx.Headers, after: ProxiedResponse) -> None:
    if before.get("location") != after.headers.get("location"):
        REWRITES.labels(kind="redirect").inc()
    # rewrite_headers keeps Set-Cookie values in their original order
    changed = sum(
        old != new
        for old, new in zip(before.get_list("set-cookie"), after.headers.get_list("set-cookie"))
    )
    if changed:
        REWRITES.labels(kind="cookie").inc(changed)


def _upstream_failure(method: str, path: str, error: Exception, reason: str, span) -> HTTPException:
    logger.error(f" ERROR [{method} {path}]: {error}")
    span.set_attribute("proxy.error", reason)
    UPSTREAM_FAILURES.labels(reason=reason).inc()
    # Never expose upstream details to the client
    return HTTPException(status_code=502, detail=BAD_GATEWAY_MESSAGE)


async def forward_to_target(request: Request) -> Response:
    """
    Forward an incoming request to the upstream and rewrite its response.

    Headers (Location, Set-Cookie) are always rewritten. Eligible text bodies
    are buffered completely, rewritten and sent with a fresh Content-Length;
    all other bodies are streamed through unchanged.
    """
    config = get_proxy_config(request)
    transport = getattr(request.app.state, "upstream_transport", None)

    original_path = _request_path(request)
    upstream_path = strip_path_prefix(original_path, config.path_prefix)
    target_url = build_upstream_url(config, upstream_path, request.url.query)
    method = request.method

    with traced_exchange(tracer, method, original_path, target_url) as span:
        body = await request.body()
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout, connect=config.connect_timeout),
            follow_redirects=False,  # Redirects are rewritten, not followed
            transport=transport,
        )

        try:
            upstream = await dispatch(
                client, method, target_url, prepare_headers(request, config), body
            )
        except UpstreamUnreachableError as e:
            await client.aclose()
            raise _upstream_failure(method, original_path, e, "unreachable", span) from e

        span.set_attribute("proxy.status_code", upstream.status_code)

        ctx = RewriteContext.from_config(config)
        response = rewrite_response_head(
            ProxiedResponse(upstream.status_code, upstream.headers), ctx
        )
        _count_header_rewrites(upstream.headers, response)

        if not needs_body_rewrite(response, method, config.rewrite_content_types):
            # Also closes the upstream when the client leaves before the body is iterated
            return to_client_response(
                response,
                stream=stream_upstream(upstream, client, method, original_path),
                background=BackgroundTask(close_upstream, upstream, client),
            )

        try:
            content = await read_body(upstream, config.max_body_bytes)
        except BodyReadError as e:
            raise _upstream_failure(method, original_path, e, "body", span) from e
        finally:
            await close_upstream(upstream, client)

        response = apply_body_rewrite(response.with_body(content), ctx)
        REWRITES.labels(kind="body").inc()
        return to_client_response(response)


async def proxy_all(request: Request):
    """Catch-all route that proxies all requests to the upstream."""
    return await forward_to_target(request)


def build_router(path_prefix: str) -> APIRouter:
    """Register the catch-all proxy routes under ``path_prefix``."""
    router = APIRouter()
    if path_prefix:
        router.add_api_route(
            path_prefix, proxy_all, methods=PROXY_METHODS, include_in_schema=False
        )
    router.add_api_route(
        f"{path_prefix}/{{path:path}}",
        proxy_all,
        methods=PROXY_METHODS,
        include_in_schema=False,
    )
    return router
