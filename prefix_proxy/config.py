import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import httpx

from prefix_proxy import vars as proxy_vars
from prefix_proxy.errors import ConfigError
from prefix_proxy.rewrite.content_type import DEFAULT_REWRITE_CONTENT_TYPES

logger = logging.getLogger("uvicorn.error")

DEFAULT_REWRITE_ATTRIBUTES = ("href", "src", "action", "data-url")


@dataclass(frozen=True)
class ProxyConfig:
    """Immutable proxy settings, built once at startup and shared by all requests."""

    public_host: str
    public_scheme: str
    path_prefix: str
    upstream_url: httpx.URL
    listen_host: str = "0.0.0.0"
    listen_port: int = 7070
    timeout: float = 300.0
    connect_timeout: float = 10.0
    max_body_bytes: int = 10 * 1024 * 1024
    rewrite_attributes: Tuple[str, ...] = DEFAULT_REWRITE_ATTRIBUTES
    rewrite_content_types: Tuple[str, ...] = DEFAULT_REWRITE_CONTENT_TYPES
    secure_cookies: bool = True
    forwarded_headers: bool = True

    @property
    def upstream_host(self) -> str:
        return self.upstream_url.netloc.decode("ascii")

    @property
    def public_origin(self) -> str:
        return f"{self.public_scheme}://{self.public_host}"


def normalize_prefix(prefix: Optional[str]) -> str:
    """Normalize a path prefix to ``""`` or ``/segment[/segment...]``."""
    prefix = (prefix or "").strip()
    if not prefix or prefix == "/":
        return ""
    if not prefix.startswith("/"):
        prefix = "/" + prefix
    return prefix.rstrip("/")


def parse_upstream_url(raw: str) -> httpx.URL:
    if not raw:
        raise ConfigError("Upstream URL is not configured")
    try:
        url = httpx.URL(raw.strip())
    except (httpx.InvalidURL, TypeError) as e:
        raise ConfigError(f"Invalid upstream URL {raw!r}: {e}") from e
    if url.scheme not in ("http", "https"):
        raise ConfigError(f"Invalid upstream URL {raw!r}: scheme must be http or https")
    if not url.host:
        raise ConfigError(f"Invalid upstream URL {raw!r}: missing host")
    return url


def parse_listen_address(address: str) -> Tuple[str, int]:
    """Parse ``host:port`` or ``:port`` (all interfaces)."""
    host, sep, port = (address or "").rpartition(":")
    if not sep:
        host, port = "", address
    try:
        port_number = int(port)
    except ValueError as e:
        raise ConfigError(f"Invalid listen address {address!r}") from e
    if not 0 < port_number < 65536:
        raise ConfigError(f"Invalid listen port in {address!r}")
    return host.strip("[]") or "0.0.0.0", port_number


def load_config(
    upstream_url: str,
    public_host: str,
    public_scheme: str = "https",
    path_prefix: str = "",
    listen_address: str = ":7070",
    timeout: float = 300.0,
    connect_timeout: float = 10.0,
    max_body_bytes: int = 10 * 1024 * 1024,
    rewrite_attributes: Sequence[str] = DEFAULT_REWRITE_ATTRIBUTES,
    rewrite_content_types: Optional[Sequence[str]] = None,
    secure_cookies: bool = True,
    forwarded_headers: bool = True,
) -> ProxyConfig:
    """Validate raw settings and build a ProxyConfig. Raises ConfigError."""
    public_scheme = (public_scheme or "").lower()
    if public_scheme not in ("http", "https"):
        raise ConfigError(f"Invalid public scheme {public_scheme!r}")
    public_host = (public_host or "").strip().rstrip("/")
    if not public_host or "/" in public_host:
        raise ConfigError(f"Invalid public host {public_host!r}")
    if max_body_bytes < 0:
        raise ConfigError("Maximum body size must not be negative")

    listen_host, listen_port = parse_listen_address(listen_address)
    config = ProxyConfig(
        public_host=public_host,
        public_scheme=public_scheme,
        path_prefix=normalize_prefix(path_prefix),
        upstream_url=parse_upstream_url(upstream_url),
        listen_host=listen_host,
        listen_port=listen_port,
        timeout=timeout,
        connect_timeout=connect_timeout,
        max_body_bytes=max_body_bytes,
        rewrite_attributes=tuple(a for a in rewrite_attributes if a),
        rewrite_content_types=tuple(
            rewrite_content_types
            if rewrite_content_types is not None
            else DEFAULT_REWRITE_CONTENT_TYPES
        ),
        secure_cookies=secure_cookies,
        forwarded_headers=forwarded_headers,
    )
    return config


def config_from_env() -> ProxyConfig:
    """Build the configuration from the environment (see ``prefix_proxy.vars``)."""
    return load_config(
        upstream_url=proxy_vars.UPSTREAM_URL,
        public_host=proxy_vars.PUBLIC_HOST,
        public_scheme=proxy_vars.PUBLIC_SCHEME,
        path_prefix=proxy_vars.PROXY_PREFIX,
        listen_address=proxy_vars.LISTEN_ADDRESS,
        timeout=proxy_vars.PROXY_TIMEOUT,
        connect_timeout=proxy_vars.PROXY_CONNECT_TIMEOUT,
        max_body_bytes=proxy_vars.PROXY_MAX_BODY_BYTES,
        rewrite_attributes=proxy_vars.REWRITE_ATTRIBUTES,
        rewrite_content_types=proxy_vars.REWRITE_CONTENT_TYPES,
        secure_cookies=proxy_vars.SECURE_COOKIES,
        forwarded_headers=proxy_vars.FORWARDED_HEADERS,
    )


def log_config(config: ProxyConfig) -> None:
    logger.info("=== Reverse Proxy Starting ===")
    logger.info(f"Base Path: {config.path_prefix or '/'}")
    logger.info(f"Public Origin: {config.public_origin}")
    logger.info(f"Target URL: {config.upstream_url}")
    logger.info(f"Listen: {config.listen_host}:{config.listen_port}")
