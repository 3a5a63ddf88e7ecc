import logging

import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider

from vetrina.common import ServiceSettings, build_app, configure_client_tracing, configure_logging
from vetrina.common.logging import TraceContextFilter
from vetrina.common.tracing import _INSTRUMENTED_APPS, configure_tracing


def _tracing_settings(app_name: str) -> ServiceSettings:
    return ServiceSettings(enable_tracing=True, enable_metrics=False, app_name=app_name)


@pytest.mark.usefixtures("caplog")
class TestTracingInstrumentation:
    def test_app_is_instrumented_once(self) -> None:
        settings = _tracing_settings("Tracing Test Service")
        configure_logging(settings)
        before = len(_INSTRUMENTED_APPS)
        app = build_app(settings)
        assert len(_INSTRUMENTED_APPS) == before + 1

        configure_tracing(app, settings)
        configure_client_tracing(settings)
        assert len(_INSTRUMENTED_APPS) == before + 1
        assert isinstance(trace.get_tracer_provider(), TracerProvider)

    def test_disabled_tracing_leaves_app_alone(self) -> None:
        settings = ServiceSettings(enable_tracing=False, enable_metrics=False, app_name="Untraced")
        before = len(_INSTRUMENTED_APPS)
        build_app(settings)
        configure_client_tracing(settings)
        assert len(_INSTRUMENTED_APPS) == before

    def test_log_records_carry_service_and_trace_ids(self, caplog: pytest.LogCaptureFixture) -> None:
        settings = _tracing_settings("Ordering Service")
        configure_logging(settings)
        build_app(settings)
        caplog.clear()
        tracer = trace.get_tracer(__name__)
        logger = logging.getLogger("vetrina.trace-test")

        with caplog.at_level(logging.INFO):
            logger.info("outside span")
            with tracer.start_as_current_span("save-order"):
                logger.info("inside span")

        outside = next(record for record in caplog.records if record.message == "outside span")
        inside = next(record for record in caplog.records if record.message == "inside span")
        assert getattr(outside, "trace_id", "-") == "-"
        assert getattr(outside, "service", None) == "Ordering Service"
        assert len(getattr(inside, "trace_id", "-")) == 32
        assert len(getattr(inside, "span_id", "-")) == 16

    def test_reconfiguring_logging_updates_service_name(self) -> None:
        configure_logging(ServiceSettings(app_name="First", enable_metrics=False))
        configure_logging(ServiceSettings(app_name="Second", enable_metrics=False))

        filters = [f for f in logging.getLogger().filters if isinstance(f, TraceContextFilter)]
        assert len(filters) == 1
        assert filters[0].service == "Second"
