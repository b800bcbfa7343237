"""OpenTelemetry setup and the ledger's sync instruments."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI
from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.metrics import Meter
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes
from sqlalchemy.ext.asyncio import AsyncEngine

from trade_ledger import __version__
from trade_ledger.config import LedgerSettings

logger = logging.getLogger(__name__)

METER_NAME = "trade_ledger.sync"

_configured = False


class LedgerMetrics:
    """Counters and histograms describing what each sync pass did to the ledger.

    Instruments are created from the global meter provider unless a meter is
    passed in, so they are no-ops until ``setup_telemetry`` installs one.
    """

    def __init__(self, meter: Meter | None = None) -> None:
        meter = meter or metrics.get_meter(METER_NAME, __version__)
        self._entries = meter.create_counter(
            "ledger.entries",
            unit="{entry}",
            description="Ledger writes by outcome (inserted, repaired, superseded, skipped, rejected)",
        )
        self._dropped = meter.create_counter(
            "ledger.events.dropped",
            unit="{event}",
            description="Indexer events that produced no trade, by pipeline stage",
        )
        self._deferred = meter.create_counter(
            "ledger.events.deferred",
            unit="{event}",
            description="Incomplete indexer events left for the next pass",
        )
        self._pages = meter.create_counter(
            "ledger.indexer.pages",
            unit="{page}",
            description="Indexer pages fetched, by result",
        )
        self._duration = meter.create_histogram(
            "ledger.sync.duration",
            unit="s",
            description="Wall time of a sync pass",
        )

    def entries(self, outcome: str, count: int, chain: str) -> None:
        if count:
            self._entries.add(count, {"outcome": outcome, "chain": chain})

    def dropped(self, stage: str, chain: str) -> None:
        self._dropped.add(1, {"stage": stage, "chain": chain})

    def deferred(self, count: int, chain: str) -> None:
        if count:
            self._deferred.add(count, {"chain": chain})

    def page(self, chain: str, ok: bool = True) -> None:
        self._pages.add(1, {"chain": chain, "result": "ok" if ok else "error"})

    def sync_finished(self, trigger: str, seconds: float, skipped: bool = False) -> None:
        self._duration.record(seconds, {"trigger": trigger, "skipped": skipped})


def setup_telemetry(app: FastAPI, settings: LedgerSettings, engine: AsyncEngine | None = None) -> None:
    """Install OTLP exporters and instrument the API, indexer calls and database.

    Runs once per process; later calls and disabled configurations are no-ops.
    """

    global _configured  # noqa: PLW0603 - single initialisation guard

    if _configured:
        return
    if not settings.telemetry_enabled:
        logger.info("Telemetry disabled via configuration")
        return

    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: settings.telemetry_service_name or settings.app_name,
            ResourceAttributes.SERVICE_NAMESPACE: "trade-ledger",
            ResourceAttributes.SERVICE_VERSION: __version__,
        }
    )
    exporter_options: dict[str, Any] = {"insecure": settings.telemetry_otlp_insecure}
    if settings.telemetry_otlp_endpoint:
        exporter_options["endpoint"] = settings.telemetry_otlp_endpoint

    tracer_provider = TracerProvider(
        resource=resource,
        sampler=ParentBased(TraceIdRatioBased(settings.telemetry_sample_ratio)),
    )
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_options)))
    trace.set_tracer_provider(tracer_provider)

    # Sync counters are exported on the same cadence as the sync loop.
    meter_provider = MeterProvider(
        resource=resource,
        metric_readers=[
            PeriodicExportingMetricReader(
                OTLPMetricExporter(**exporter_options),
                export_interval_millis=int(settings.sync_interval_seconds * 1000),
            )
        ],
    )
    metrics.set_meter_provider(meter_provider)

    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter(**exporter_options)))
    set_logger_provider(logger_provider)
    LoggingInstrumentor().instrument(set_logging_format=False)

    FastAPIInstrumentor.instrument_app(app, tracer_provider=tracer_provider, meter_provider=meter_provider)
    HTTPXClientInstrumentor().instrument(tracer_provider=tracer_provider)
    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine, tracer_provider=tracer_provider)

    _configured = True
    logger.info("Telemetry exporting to %s", settings.telemetry_otlp_endpoint or "the default OTLP endpoint")


__all__ = ["LedgerMetrics", "METER_NAME", "setup_telemetry"]
