"""
Pytest configuration and fixtures.
"""

import asyncio
import time
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

from sentinel.agents.extraction_agent import NoUpdate
from sentinel.config import Settings
from sentinel.core.orchestrator import DispatchOrchestrator
from sentinel.core.reconciler import IncidentReconciler
from sentinel.core.transcript_aggregator import TranscriptAggregator
from sentinel.services.geocoding import ResolvedLocation
from sentinel.services.incident_store import InMemoryIncidentStore

# Scaled-down timing: 50ms quiet window, 300ms throttle window
DEBOUNCE = 0.05
THROTTLE = 0.3


class ScriptedOracle:
    """Extraction oracle double that replays canned results in order."""

    def __init__(self, results: Optional[List] = None, delay: float = 0.0):
        self.results = list(results or [])
        self.delay = delay
        self.calls: List[List[str]] = []
        self.call_times: List[float] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def extract(self, utterances):
        self.calls.append([u.text for u in utterances])
        self.call_times.append(time.monotonic())
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            result = self.results.pop(0) if self.results else NoUpdate(reason="script exhausted")
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            self.in_flight -= 1


class FakeResolver:
    def __init__(self, known: Optional[Dict[str, ResolvedLocation]] = None):
        self.known = known or {}
        self.queries: List[str] = []

    async def resolve(self, free_text: str):
        self.queries.append(free_text)
        return self.known.get(free_text)


def resolved(lat: float, lng: float, address: str, provider: str = "geocode") -> ResolvedLocation:
    return ResolvedLocation(lat=lat, lng=lng, formatted_address=address, provider=provider)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        debounce_seconds=DEBOUNCE,
        throttle_seconds=THROTTLE,
        oracle_timeout_seconds=1.0,
        geocode_timeout_seconds=1.0,
    )


@pytest.fixture
def store() -> InMemoryIncidentStore:
    return InMemoryIncidentStore()


@pytest.fixture
def aggregator() -> TranscriptAggregator:
    return TranscriptAggregator()


@pytest.fixture
def oracle() -> ScriptedOracle:
    return ScriptedOracle()


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest_asyncio.fixture
async def reconciler(store, aggregator, oracle, resolver, settings):
    rec = IncidentReconciler(
        store=store,
        aggregator=aggregator,
        oracle=oracle,
        resolver=resolver,
        debounce_seconds=settings.debounce_seconds,
        throttle_seconds=settings.throttle_seconds,
        oracle_timeout=settings.oracle_timeout_seconds,
        confidence=settings.extraction_confidence,
    )
    yield rec
    rec.shutdown()


@pytest.fixture
def orchestrator(settings, store, oracle, resolver):
    return DispatchOrchestrator(settings, store=store, oracle=oracle, resolver=resolver)
