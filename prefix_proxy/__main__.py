import argparse
import logging
import sys

import uvicorn

from prefix_proxy import vars as proxy_vars
from prefix_proxy.config import load_config, log_config
from prefix_proxy.errors import ConfigError
from prefix_proxy.server import create_app

logger = logging.getLogger("uvicorn.error")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prefix-proxy",
        description="Reverse proxy that rewrites redirects, cookies and links for a public host and path prefix",
    )
    parser.add_argument("--target", default=proxy_vars.UPSTREAM_URL, help="Upstream URL (e.g. https://example.com)")
    parser.add_argument("--public-host", default=proxy_vars.PUBLIC_HOST, help="Host clients use to reach the proxy")
    parser.add_argument(
        "--public-scheme",
        default=proxy_vars.PUBLIC_SCHEME,
        choices=["http", "https"],
        help="Scheme clients use to reach the proxy",
    )
    parser.add_argument("--prefix", default=proxy_vars.PROXY_PREFIX, help="Public path prefix (e.g. /team/app)")
    parser.add_argument("--listen", default=proxy_vars.LISTEN_ADDRESS, help="Listen address, host:port or :port")
    parser.add_argument("--timeout", type=float, default=proxy_vars.PROXY_TIMEOUT, help="Upstream timeout in seconds")
    parser.add_argument(
        "--max-body-bytes",
        type=int,
        default=proxy_vars.PROXY_MAX_BODY_BYTES,
        help="Largest body buffered for rewriting (0 = unlimited)",
    )
    parser.add_argument(
        "--no-secure-cookies",
        dest="secure_cookies",
        action="store_false",
        default=proxy_vars.SECURE_COOKIES,
        help="Do not add the Secure attribute to rewritten cookies",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logs")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    level = logging.DEBUG if args.verbose else getattr(logging, proxy_vars.LOG_LEVEL, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    logger.setLevel(level)

    try:
        config = load_config(
            upstream_url=args.target,
            public_host=args.public_host,
            public_scheme=args.public_scheme,
            path_prefix=args.prefix,
            listen_address=args.listen,
            timeout=args.timeout,
            connect_timeout=proxy_vars.PROXY_CONNECT_TIMEOUT,
            max_body_bytes=args.max_body_bytes,
            rewrite_attributes=proxy_vars.REWRITE_ATTRIBUTES,
            rewrite_content_types=proxy_vars.REWRITE_CONTENT_TYPES,
            secure_cookies=args.secure_cookies,
            forwarded_headers=proxy_vars.FORWARDED_HEADERS,
        )
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    log_config(config)
    app = create_app(config)
    logger.info(f"Access via: {config.public_origin}{config.path_prefix}/")
    uvicorn.run(
        app,
        host=config.listen_host,
        port=config.listen_port,
        log_level=logging.getLevelName(level).lower(),
        proxy_headers=False,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
