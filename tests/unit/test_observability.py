"""
Unit tests for job spans and log processors.
"""

import os

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from queuectl.constants import SPAN_EXECUTE_JOB
from queuectl.observability import tracing
from queuectl.observability.logging import add_process_id, add_trace_context


@pytest.fixture
def exporter(monkeypatch) -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setattr(tracing, "_tracer", provider.get_tracer("test"))
    return exporter


class TestJobSpan:
    """Tests for the job_span helper."""

    def test_prefixed_attributes(self, exporter):
        with tracing.job_span(SPAN_EXECUTE_JOB, job_id="job-1", attempt=2) as span:
            tracing.set_job_attributes(span, success=False, reason=None)

        [finished] = exporter.get_finished_spans()
        assert finished.name == SPAN_EXECUTE_JOB
        assert dict(finished.attributes) == {
            "queuectl.job_id": "job-1",
            "queuectl.attempt": 2,
            "queuectl.success": False,
        }

    def test_exception_recorded(self, exporter):
        with pytest.raises(RuntimeError):
            with tracing.job_span(SPAN_EXECUTE_JOB, job_id="job-1"):
                raise RuntimeError("store gone")

        [finished] = exporter.get_finished_spans()
        assert not finished.status.is_ok
        assert finished.events[0].name == "exception"

    def test_log_records_join_span(self, exporter):
        with tracing.job_span(SPAN_EXECUTE_JOB) as span:
            event = add_trace_context(None, "info", {"event": "Executing job"})

        assert event["trace_id"] == format(span.get_span_context().trace_id, "032x")
        assert event["span_id"] == format(span.get_span_context().span_id, "016x")


class TestLogProcessors:
    """Tests for the processors added to every record."""

    def test_process_id(self):
        assert add_process_id(None, "info", {"event": "x"})["pid"] == os.getpid()

    def test_no_span_no_trace_ids(self):
        event = add_trace_context(None, "info", {"event": "x"})

        assert "trace_id" not in event
