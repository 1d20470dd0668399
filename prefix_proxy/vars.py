import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "prefix-proxy")

UPSTREAM_URL = os.environ.get("UPSTREAM_URL", "")
PUBLIC_HOST = os.environ.get("PUBLIC_HOST", "localhost:7070")
PUBLIC_SCHEME = os.environ.get("PUBLIC_SCHEME", "https").lower()
PROXY_PREFIX = os.environ.get("PROXY_PREFIX", "")
LISTEN_ADDRESS = os.environ.get("LISTEN_ADDRESS", ":7070")

PROXY_TIMEOUT = float(os.environ.get("PROXY_TIMEOUT", "300"))  # 5 minutes default
PROXY_CONNECT_TIMEOUT = float(os.environ.get("PROXY_CONNECT_TIMEOUT", "10"))
PROXY_MAX_BODY_BYTES = int(os.environ.get("PROXY_MAX_BODY_BYTES", str(10 * 1024 * 1024)))

REWRITE_ATTRIBUTES = [
    a.strip()
    for a in os.getenv("REWRITE_ATTRIBUTES", "href,src,action,data-url").split(",")
    if a.strip()
]
REWRITE_CONTENT_TYPES = [
    t.strip().lower()
    for t in os.getenv(
        "REWRITE_CONTENT_TYPES", "text/html,text/css,javascript,application/json"
    ).split(",")
    if t.strip()
]

SECURE_COOKIES = os.environ.get("SECURE_COOKIES", "true").lower() == "true"
FORWARDED_HEADERS = os.environ.get("FORWARDED_HEADERS", "true").lower() == "true"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

METRICS_PATH = os.getenv("METRICS_PATH", "/_proxy/metrics")
