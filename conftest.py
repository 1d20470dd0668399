# Ensure tests import the package from this checkout first.
import os
import sys

import pytest

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

from prefix_proxy.config import load_config  # noqa: E402
from prefix_proxy.rewrite.context import RewriteContext  # noqa: E402


@pytest.fixture
def proxy_config():
    """Production-style setup: HTTPS public host under a path prefix."""
    return load_config(
        upstream_url="https://vritjobs.com/",
        public_host="www.mydomain.com",
        public_scheme="https",
        path_prefix="/hemanta/proxy",
    )


@pytest.fixture
def rewrite_context(proxy_config):
    return RewriteContext.from_config(proxy_config)


@pytest.fixture
def no_prefix_context():
    """Minimal setup: host substitution only, plain HTTP, no prefix."""
    config = load_config(
        upstream_url="https://vritjobs.com",
        public_host="localhost:7070",
        public_scheme="http",
    )
    return RewriteContext.from_config(config)
