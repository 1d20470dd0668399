import logging
from typing import Tuple

import httpx

from prefix_proxy.errors import BodyReadError, BodyTooLargeError
from prefix_proxy.rewrite.context import RewriteContext
from prefix_proxy.rewrite.response import ProxiedResponse
from prefix_proxy.rewrite.rules import rewrite_text

logger = logging.getLogger("uvicorn.error")

# Round-trips bytes that are not valid UTF-8 unchanged
BODY_ENCODING = "utf-8"
BODY_ERRORS = "surrogateescape"


def rewrite_body(body: bytes, ctx: RewriteContext) -> Tuple[bytes, int]:
    """Rewrite URLs in a complete response body. Returns the new body and its length."""
    text = body.decode(BODY_ENCODING, errors=BODY_ERRORS)
    rewritten = rewrite_text(text, ctx).encode(BODY_ENCODING, errors=BODY_ERRORS)
    return rewritten, len(rewritten)


def _declared_length(response: httpx.Response) -> int:
    try:
        return int(response.headers.get("content-length", ""))
    except ValueError:
        return -1


async def read_body(response: httpx.Response, max_bytes: int = 0) -> bytes:
    """
    Buffer the complete (decoded) body of a streamed upstream response.

    URL occurrences may span chunk boundaries, so rewriting needs the whole
    body. ``max_bytes`` bounds the buffer; 0 disables the limit.
    """
    # Content-Length counts encoded bytes, so it can only reject early for
    # identity-encoded bodies.
    if max_bytes and not response.headers.get("content-encoding"):
        declared = _declared_length(response)
        if declared > max_bytes:
            raise BodyTooLargeError(max_bytes, declared)

    chunks = []
    size = 0
    try:
        async for chunk in response.aiter_bytes():
            size += len(chunk)
            if max_bytes and size > max_bytes:
                raise BodyTooLargeError(max_bytes, size)
            chunks.append(chunk)
    except (httpx.RequestError, httpx.StreamError) as e:
        raise BodyReadError(f"Failed to read upstream body: {e}") from e
    return b"".join(chunks)


def apply_body_rewrite(response: ProxiedResponse, ctx: RewriteContext) -> ProxiedResponse:
    """
    Rewrite the buffered body of ``response`` and fix up its length framing.

    The buffered body is already decoded, so Content-Encoding is dropped and
    Content-Length is set to the exact size of the new body.
    """
    if response.body is None:
        raise ValueError("Body must be buffered before it can be rewritten")

    body, length = rewrite_body(response.body, ctx)
    headers = response.headers.copy()
    if "content-encoding" in headers:
        del headers["content-encoding"]
    headers["content-length"] = str(length)

    logger.info(f"[{response.status_code}] Rewrote {response.content_type} ({length} bytes)")
    return ProxiedResponse(response.status_code, headers, body)
