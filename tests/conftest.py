"""Shared test fixtures.

Provides a controllable clock, a fresh cache per test, mocked fetch and
audit collaborators, and descriptors for a single and a list resource.
No network I/O: the upstream is always mocked.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from resource_server.resources.catalog import (
    MACHINE_DETAILS_URI_PATTERN,
    MACHINES_LIST_URI_PATTERN,
    Machine,
    MachineParams,
    MachineQueryParams,
)
from resource_server.resources.descriptor import Cardinality, ResourceDescriptor
from resource_server.resources.pipeline import ResourcePipeline
from resource_server.resources.schemas import PydanticSchema
from resource_server.services.audit import AuditLogger
from resource_server.services.cache import CacheConfig, CacheStore


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# === FIXTURES: Collaborators ===


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> CacheStore:
    """Enabled time-based cache with a 300s default TTL."""
    return CacheStore(CacheConfig(max_age_seconds=300), clock=clock)


@pytest.fixture
def fetch() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def audit() -> MagicMock:
    return MagicMock(spec=AuditLogger)


# === FIXTURES: Sample data ===


@pytest.fixture
def machine_payload() -> dict:
    return {"system_id": "abc123", "hostname": "node1"}


@pytest.fixture
def machine_descriptor() -> ResourceDescriptor:
    return ResourceDescriptor(
        name="Machine",
        uri_pattern=MACHINE_DETAILS_URI_PATTERN,
        api_endpoint="/machines/",
        cardinality=Cardinality.SINGLE,
        params_schema=PydanticSchema(MachineParams),
        data_schema=PydanticSchema(Machine),
        id_param="system_id",
        cache_options={"ttl_seconds": 60},
    )


@pytest.fixture
def machines_descriptor() -> ResourceDescriptor:
    return ResourceDescriptor(
        name="Machines",
        uri_pattern=MACHINES_LIST_URI_PATTERN,
        api_endpoint="/machines/",
        cardinality=Cardinality.COLLECTION,
        params_schema=PydanticSchema(MachineQueryParams),
        data_schema=PydanticSchema(Machine),
    )


@pytest.fixture
def machine_pipeline(machine_descriptor, fetch, cache, audit) -> ResourcePipeline:
    return ResourcePipeline(machine_descriptor, fetch, cache, audit)


@pytest.fixture
def machines_pipeline(machines_descriptor, fetch, cache, audit) -> ResourcePipeline:
    return ResourcePipeline(machines_descriptor, fetch, cache, audit)
