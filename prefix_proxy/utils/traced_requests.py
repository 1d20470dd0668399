import logging
from contextlib import contextmanager

import httpx
from opentelemetry.trace import Tracer

logger = logging.getLogger("uvicorn.error")


@contextmanager
def traced_exchange(tracer: Tracer, method: str, original_path: str, target_url: httpx.URL):
    """Open the span for one proxied exchange and log where it is going."""
    with tracer.start_as_current_span("proxy_request") as span:
        span.set_attribute("http.request.method", method)
        span.set_attribute("proxy.original_path", original_path)
        span.set_attribute("proxy.target_url", str(target_url))
        logger.info(
            f"→ [{method}] {original_path} → "
            f"{target_url.scheme}://{target_url.netloc.decode('ascii')}{target_url.path}"
        )
        yield span
