from typing import Optional, Sequence

import httpx
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from prefix_proxy.config import ProxyConfig, config_from_env, log_config
from prefix_proxy.proxy.route import build_router
from prefix_proxy.vars import METRICS_PATH, OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that filters out noisy ASGI body spans from streamed responses.
    Relayed upstream bodies would otherwise produce one span per chunk.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type") == "http.response.body"
            )
        ]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


_tracing_configured = False


def configure_tracing() -> None:
    """Install the tracer provider once per process; export only when OTLP_ENDPOINT is set."""
    global _tracing_configured
    if _tracing_configured:
        return
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    )
    tracer_provider = trace.get_tracer_provider()
    if OTLP_ENDPOINT:
        otlp_exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=((OTLP_HEADERS).split(",") if OTLP_HEADERS else None),
        )
        tracer_provider.add_span_processor(
            BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
        )
    _tracing_configured = True


# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})


def create_app(
    config: ProxyConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    metrics_path: Optional[str] = METRICS_PATH,
) -> FastAPI:
    """
    Build the proxy application for ``config``.

    ``transport`` replaces the network transport of the upstream client
    (tests pass an ``httpx.MockTransport``). Interactive docs are disabled so
    that every path under the prefix reaches the upstream.
    """
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
    app.state.proxy_config = config
    app.state.upstream_transport = transport

    if metrics_path:
        Instrumentator().instrument(app).expose(
            app, endpoint=metrics_path, include_in_schema=False
        )

    configure_tracing()
    FastAPIInstrumentor.instrument_app(app, excluded_urls=metrics_path or "")

    app.include_router(build_router(config.path_prefix))
    return app


def create_app_from_env() -> FastAPI:
    """Factory for ``uvicorn --factory prefix_proxy.server:create_app_from_env``."""
    config = config_from_env()
    log_config(config)
    return create_app(config)
