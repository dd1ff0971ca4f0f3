"""Shared fixtures."""
import pytest

from data_poller.core.telemetry import TelemetryRecorder, set_recorder


@pytest.fixture(autouse=True)
def telemetry_recorder():
    """Give every test a fresh global telemetry recorder."""
    recorder = TelemetryRecorder(collect_stats=True)
    set_recorder(recorder)
    yield recorder
    set_recorder(TelemetryRecorder())
