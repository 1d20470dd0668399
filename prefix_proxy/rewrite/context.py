from dataclasses import dataclass
from typing import Tuple

from prefix_proxy.config import ProxyConfig


def _hostname(netloc: str) -> str:
    """Strip the port from ``host[:port]`` (IPv6 literals keep their brackets)."""
    if netloc.startswith("["):
        return netloc[: netloc.find("]") + 1]
    return netloc.split(":", 1)[0]


@dataclass(frozen=True)
class RewriteContext:
    """Read-only view of everything a rewrite rule needs, derived once per response."""

    upstream_scheme: str
    upstream_host: str
    public_scheme: str
    public_host: str
    path_prefix: str
    rewrite_attributes: Tuple[str, ...] = ()
    secure_cookies: bool = True

    @classmethod
    def from_config(cls, config: ProxyConfig) -> "RewriteContext":
        return cls(
            upstream_scheme=config.upstream_url.scheme,
            upstream_host=config.upstream_host,
            public_scheme=config.public_scheme,
            public_host=config.public_host,
            path_prefix=config.path_prefix,
            rewrite_attributes=config.rewrite_attributes,
            secure_cookies=config.secure_cookies,
        )

    @property
    def upstream_origin(self) -> str:
        return f"{self.upstream_scheme}://{self.upstream_host}"

    @property
    def public_origin(self) -> str:
        return f"{self.public_scheme}://{self.public_host}"

    @property
    def upstream_hostname(self) -> str:
        return _hostname(self.upstream_host)

    @property
    def public_hostname(self) -> str:
        return _hostname(self.public_host)

    @property
    def public_base(self) -> str:
        """Public origin followed by the path prefix (no trailing slash)."""
        return self.public_origin + self.path_prefix

    def is_prefixed(self, path: str) -> bool:
        """True when ``path`` already lives under the path prefix."""
        if not self.path_prefix:
            return False
        if not path.startswith(self.path_prefix):
            return False
        rest = path[len(self.path_prefix):]
        return rest == "" or rest[0] in "/?#"
