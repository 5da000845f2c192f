from __future__ import annotations

import time
from collections.abc import Callable

from fastapi import FastAPI, Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)
from sqlalchemy.ext.asyncio import AsyncEngine


REGISTRY = CollectorRegistry()
ProcessCollector(registry=REGISTRY)
PlatformCollector(registry=REGISTRY)
GCCollector(registry=REGISTRY)

REQUEST_SUCCESS_TOTAL = Counter(
    "request_success_total",
    "Count of successful requests",
    ["service", "route", "method", "status"],
    registry=REGISTRY,
)
REQUEST_LATENCY = Histogram(
    "request_latency_ms",
    "Request latency in milliseconds",
    ["service", "route", "method"],
    # /seed hashes passwords and makes a dozen PostgREST round trips; keep resolution up to 30s.
    buckets=(10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 20000, 30000),
    registry=REGISTRY,
)

QUERY_FALLBACK_TOTAL = Counter(
    "query_fallback_total",
    "Invoice query strategies attempted after the direct SQL path",
    ["strategy"],
    registry=REGISTRY,
)
SEED_UPSERT_ERROR_TOTAL = Counter("seed_upsert_error_total", "Rejected seed upserts", ["table"], registry=REGISTRY)


def setup_tracing(app: FastAPI, service_name: str, engine: AsyncEngine | None = None) -> None:
    # Imported lazily: tracing is opt-in and the exporter pulls in a protobuf stack.
    from opentelemetry import trace
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))
    trace.set_tracer_provider(provider)
    FastAPIInstrumentor.instrument_app(app)
    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def add_metrics_middleware(app: FastAPI, service_name: str) -> None:
    @app.middleware("http")
    async def _metrics(request: Request, call_next: Callable) -> Response:
        start = time.perf_counter()
        resp = await call_next(request)
        # Route template, not the raw path: unknown paths collapse into one label value.
        matched = request.scope.get("route")
        route = getattr(matched, "path", "unmatched")
        method = request.method
        REQUEST_LATENCY.labels(service_name, route, method).observe((time.perf_counter() - start) * 1000)
        # Status keeps 404s apart from real successes.
        if resp.status_code < 500:
            REQUEST_SUCCESS_TOTAL.labels(service_name, route, method, str(resp.status_code)).inc()
        return resp

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
