"""
pytest configuration for relay tests.

Adds src directory to Python path for imports, resets process-wide state
(config singleton, log context) between tests and installs a recording
tracer provider for span assertions.
"""

import sys
from pathlib import Path

import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))


@pytest.fixture(autouse=True)
def _reset_global_state():
    from config import reset_config
    from core.logging import clear_log_context

    yield
    reset_config()
    clear_log_context()


@pytest.fixture(scope="session")
def _recording_tracer_provider():
    # The global provider can only be set once per process
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    yield exporter
    provider.shutdown()


@pytest.fixture
def span_exporter(_recording_tracer_provider):
    """Finished spans of the current test, via get_finished_spans()."""
    _recording_tracer_provider.clear()
    yield _recording_tracer_provider
    _recording_tracer_provider.clear()
