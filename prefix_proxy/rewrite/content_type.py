from typing import Optional, Sequence

DEFAULT_REWRITE_CONTENT_TYPES = (
    "text/html",
    "text/css",
    "javascript",
    "application/json",
)

# Content codings httpx decodes without optional extras
DECODABLE_ENCODINGS = {"gzip", "deflate", "identity"}

# Statuses that never carry a response body
BODYLESS_STATUSES = {204, 304}


def is_rewritable(
    content_type: Optional[str],
    tokens: Sequence[str] = DEFAULT_REWRITE_CONTENT_TYPES,
) -> bool:
    """
    Decide whether a response body is eligible for URL rewriting.

    This is a plain substring test on the Content-Type header, so media type
    parameters (charset, boundary) do not influence the result. An absent or
    empty header is never rewritten.
    """
    if not content_type:
        return False
    content_type = content_type.lower()
    return any(token in content_type for token in tokens)


def has_body(status_code: int, method: str) -> bool:
    """Whether a response to ``method`` with ``status_code`` can have a body."""
    if method.upper() == "HEAD":
        return False
    if 100 <= status_code < 200:
        return False
    return status_code not in BODYLESS_STATUSES


def is_decodable(content_encoding: Optional[str]) -> bool:
    """
    Whether every coding in a Content-Encoding header can be undone before
    rewriting. Anything else has to reach the client untouched.
    """
    if not content_encoding:
        return True
    codings = [c.strip().lower() for c in content_encoding.split(",") if c.strip()]
    return all(coding in DECODABLE_ENCODINGS for coding in codings)
