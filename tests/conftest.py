"""
Shared fixtures: scripted providers standing in for live data sources
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio

import pytest

from src.core.models import RawSourceSignal, Severity


class FakeProvider:
    """Provider whose answer is scripted per call; records every call"""

    def __init__(self, name, signal=None, delay=0.0, error=None, timeout=1.0):
        self.name = name
        self.signal = signal
        self.delay = delay
        self.error = error
        self.timeout = timeout
        self.calls = []

    async def fetch(self, med1, med2):
        self.calls.append((med1, med2))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if callable(self.signal):
            return self.signal(med1, med2)
        return self.signal


class FakeWarningsProvider:
    def __init__(self, warnings_by_medication=None):
        self.warnings_by_medication = warnings_by_medication or {}
        self.calls = []

    async def fetch_warnings(self, medication):
        self.calls.append(medication)
        return list(self.warnings_by_medication.get(medication, []))


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def fake_warnings_provider():
    return FakeWarningsProvider


@pytest.fixture
def make_signal():
    def _make(provider_name, severity, description=None, **kwargs):
        if description is None:
            description = f"{provider_name} reports a {Severity.parse(severity).value} interaction between these drugs."
        return RawSourceSignal(provider_name=provider_name, severity=severity,
                               description=description, **kwargs)
    return _make
