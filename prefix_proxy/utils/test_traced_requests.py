import httpx
import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from prefix_proxy.utils.traced_requests import traced_exchange


@pytest.fixture
def span_exporter():
    return InMemorySpanExporter()


@pytest.fixture
def tracer(span_exporter):
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return provider.get_tracer("test")


class TestTracedExchange:
    """Test the per-exchange span helper."""

    def test_span_attributes(self, tracer, span_exporter):
        url = httpx.URL("https://vritjobs.com/jobs?x=1")

        with traced_exchange(tracer, "GET", "/hemanta/proxy/jobs", url) as span:
            span.set_attribute("proxy.status_code", 200)

        (finished,) = span_exporter.get_finished_spans()
        assert finished.name == "proxy_request"
        assert finished.attributes["http.request.method"] == "GET"
        assert finished.attributes["proxy.original_path"] == "/hemanta/proxy/jobs"
        assert finished.attributes["proxy.target_url"] == "https://vritjobs.com/jobs?x=1"
        assert finished.attributes["proxy.status_code"] == 200

    def test_exception_recorded(self, tracer, span_exporter):
        url = httpx.URL("https://vritjobs.com/")

        with pytest.raises(RuntimeError):
            with traced_exchange(tracer, "POST", "/hemanta/proxy", url):
                raise RuntimeError("boom")

        (finished,) = span_exporter.get_finished_spans()
        assert [event.name for event in finished.events] == ["exception"]
