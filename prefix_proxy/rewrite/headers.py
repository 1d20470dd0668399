import logging
from typing import List

import httpx

from prefix_proxy.rewrite.context import RewriteContext

logger = logging.getLogger("uvicorn.error")


def rewrite_location(location: str, ctx: RewriteContext) -> str:
    """
    Rewrite a redirect target from the upstream's point of view to the client's.

    - ``{upstreamOrigin}/path`` becomes ``{publicOrigin}{prefix}/path``
    - ``//{upstreamHost}/path`` becomes ``//{publicHost}{prefix}/path``
    - ``/path`` becomes ``{prefix}/path``
    - anything else (external or relative to the current path) is returned as-is
    """
    if not location:
        return location

    origin = ctx.upstream_origin
    if location.startswith(origin):
        rest = location[len(origin):]
        if rest == "":
            return ctx.public_base + "/"
        if rest[0] in "/?#":
            if ctx.public_origin == origin and ctx.is_prefixed(rest):
                return location
            return location.replace(origin, ctx.public_base, 1)
        return location

    protocol_relative = f"//{ctx.upstream_host}"
    if location.startswith(protocol_relative):
        rest = location[len(protocol_relative):]
        if rest == "" or rest[0] in "/?#":
            if ctx.public_host == ctx.upstream_host and ctx.is_prefixed(rest):
                return location
            return f"//{ctx.public_host}{ctx.path_prefix}{rest or '/'}"
        return location

    if location.startswith("/") and not location.startswith("//"):
        if ctx.is_prefixed(location):
            return location
        return ctx.path_prefix + location

    return location


def _split_cookie(cookie: str) -> List[str]:
    return [part.strip() for part in cookie.split(";") if part.strip()]


def _attribute_name(part: str) -> str:
    return part.split("=", 1)[0].strip().lower()


def rewrite_set_cookie(cookie: str, ctx: RewriteContext) -> str:
    """
    Rewrite a single Set-Cookie value for the public origin.

    Domain pointing at the upstream moves to the public host, a missing or
    root Path moves under the path prefix, and Secure is added when the
    public side is HTTPS (and secure cookies are enabled).
    """
    parts = _split_cookie(cookie)
    if not parts:
        return cookie

    # The first part is always the name=value pair
    name_value, attributes = parts[0], parts[1:]
    upstream_domains = {ctx.upstream_hostname.lower(), "." + ctx.upstream_hostname.lower()}
    cookie_path = f"{ctx.path_prefix}/"

    rewritten = []
    has_path = False
    has_secure = False
    for attribute in attributes:
        name = _attribute_name(attribute)
        if name == "domain":
            value = attribute.split("=", 1)[1].strip() if "=" in attribute else ""
            if value.lower() in upstream_domains:
                attribute = f"Domain={ctx.public_hostname}"
        elif name == "path":
            has_path = True
            value = attribute.split("=", 1)[1].strip() if "=" in attribute else ""
            if value == "/":
                attribute = f"Path={cookie_path}"
        elif name == "secure":
            has_secure = True
        rewritten.append(attribute)

    if not has_path:
        rewritten.append(f"Path={cookie_path}")
    if ctx.secure_cookies and ctx.public_scheme == "https" and not has_secure:
        rewritten.append("Secure")

    return "; ".join([name_value] + rewritten)


def rewrite_headers(headers: httpx.Headers, ctx: RewriteContext) -> httpx.Headers:
    """
    Return a copy of ``headers`` with Location and Set-Cookie rewritten.

    Set-Cookie may repeat, so all values are collected, the header is removed
    and each rewritten value is added back.
    """
    headers = headers.copy()

    location = headers.get("location")
    if location:
        new_location = rewrite_location(location, ctx)
        if new_location != location:
            headers["location"] = new_location
            logger.info(f"Redirect: {location} → {new_location}")

    cookies = headers.get_list("set-cookie")
    if cookies:
        del headers["set-cookie"]
        items = list(headers.raw)
        items.extend((b"set-cookie", rewrite_set_cookie(c, ctx)) for c in cookies)
        headers = httpx.Headers(items, encoding=headers.encoding)

    return headers
