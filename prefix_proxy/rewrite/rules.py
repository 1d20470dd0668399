"""
URL rewrite rules.

Pure functions that map upstream URL text to its public-facing equivalent.
They work on literal patterns, not on a parsed document: any text that looks
like one of the patterns is rewritten, whether or not it really is a URL.

The rules run in a fixed order (absolute, protocol-relative, root-relative)
so that a later rule never sees text an earlier one produced. References that
already live under the path prefix are left alone, which keeps the whole rule
set idempotent.
"""

import re

from prefix_proxy.rewrite.context import RewriteContext


def _already_prefixed(ctx: RewriteContext) -> str:
    """Negative lookahead for text following a ``/`` that is already under the prefix."""
    if not ctx.path_prefix:
        return ""
    return f"(?!{re.escape(ctx.path_prefix[1:])}(?:[/?#\"')\\s]|$))"


def rewrite_absolute_urls(text: str, ctx: RewriteContext) -> str:
    """``scheme://upstreamHost/`` -> ``publicScheme://publicHost{prefix}/``."""
    guard = _already_prefixed(ctx) if ctx.public_origin == ctx.upstream_origin else ""
    pattern = re.escape(ctx.upstream_origin + "/") + guard
    replacement = ctx.public_base + "/"
    return re.sub(pattern, lambda _m: replacement, text)


def rewrite_protocol_relative_urls(text: str, ctx: RewriteContext) -> str:
    """``//upstreamHost/`` -> ``//publicHost{prefix}/``."""
    guard = _already_prefixed(ctx) if ctx.public_host == ctx.upstream_host else ""
    pattern = re.escape(f"//{ctx.upstream_host}/") + guard
    replacement = f"//{ctx.public_host}{ctx.path_prefix}/"
    return re.sub(pattern, lambda _m: replacement, text)


def rewrite_root_relative_references(text: str, ctx: RewriteContext) -> str:
    """
    Prefix root-relative references found in attribute values and CSS url().

    Handles ``attr="/``, ``attr='/`` for every configured attribute and
    ``url(/``, ``url("/``, ``url('/``. Protocol-relative references (``//``)
    are not root-relative and stay as they are.
    """
    if not ctx.path_prefix:
        return text

    # Upstream paths that themselves start with the prefix segment are taken
    # as already rewritten and keep their value, so such links break.
    guard = _already_prefixed(ctx)
    prefix = ctx.path_prefix

    if ctx.rewrite_attributes:
        names = sorted(ctx.rewrite_attributes, key=len, reverse=True)
        attrs = "|".join(re.escape(name) for name in names)
        text = re.sub(
            f"({attrs})=([\"'])/(?!/){guard}",
            lambda m: f"{m.group(1)}={m.group(2)}{prefix}/",
            text,
        )

    text = re.sub(
        f"url\\(([\"']?)/(?!/){guard}",
        lambda m: f"url({m.group(1)}{prefix}/",
        text,
    )
    return text


RULES = (
    rewrite_absolute_urls,
    rewrite_protocol_relative_urls,
    rewrite_root_relative_references,
)


def rewrite_text(text: str, ctx: RewriteContext) -> str:
    """Apply every rule, in order, to ``text``."""
    for rule in RULES:
        text = rule(text, ctx)
    return text
