"""
ResourceRegistry - routes request URIs to resource pipelines.
"""

from collections.abc import Iterable
from typing import Any

from loguru import logger

from resource_server.resources.descriptor import ResourceDescriptor
from resource_server.resources.negotiation import ResourceResponse
from resource_server.resources.pipeline import ResourcePipeline
from resource_server.services.abort import AbortSignal
from resource_server.services.audit import AuditSink
from resource_server.services.cache import CacheStore
from resource_server.services.classifier import FaultContext, classify
from resource_server.services.client import Fetcher
from resource_server.services.deduplicator import FetchCoalescer
from resource_server.services.errors import ErrorKind, ResourceFault


class ResourceRegistry:
    """
    One pipeline per registered resource, sharing the cache, the audit sink
    and the upstream fetch.

    Patterns are tried in registration order; the first match wins.

    Usage:
        registry = ResourceRegistry(client.fetch, cache, AuditLogger())
        registry.register_all(default_descriptors())
        response = await registry.read("maas://machines/list?limit=10")
    """

    def __init__(
        self,
        fetch: Fetcher,
        cache: CacheStore,
        audit: AuditSink | None = None,
        *,
        audit_enabled: bool = True,
        single_flight: bool = False,
    ):
        self._fetch = fetch
        self._cache = cache
        self._audit = audit
        self._audit_enabled = audit_enabled
        self._coalescer = FetchCoalescer() if single_flight else None
        self._pipelines: dict[str, ResourcePipeline] = {}

    def register(self, descriptor: ResourceDescriptor) -> ResourcePipeline:
        if descriptor.name in self._pipelines:
            raise ValueError(f"Resource '{descriptor.name}' is already registered")

        pipeline = ResourcePipeline(
            descriptor,
            self._fetch,
            self._cache,
            self._audit,
            audit_enabled=self._audit_enabled,
            coalescer=self._coalescer,
        )
        self._pipelines[descriptor.name] = pipeline
        logger.info(f"Registered resource {descriptor.name} at {descriptor.uri_pattern}")
        return pipeline

    def register_all(self, descriptors: Iterable[ResourceDescriptor]) -> None:
        for descriptor in descriptors:
            self.register(descriptor)

    def get(self, name: str) -> ResourcePipeline | None:
        return self._pipelines.get(name)

    def resolve(self, uri: str) -> ResourcePipeline | None:
        """First registered pipeline whose pattern matches uri."""
        for pipeline in self._pipelines.values():
            if pipeline.matches(uri):
                return pipeline
        return None

    async def read(self, uri: str, signal: AbortSignal | None = None) -> ResourceResponse:
        """
        Serve uri with the pipeline registered for it.

        Raises:
            ClassifiedError: Unknown URI (resource_not_found) or any
                failure of the pipeline
        """
        pipeline = self.resolve(uri)
        if pipeline is None:
            logger.warning(f"No resource registered for {uri}")
            raise classify(
                ResourceFault(
                    f"No resource matches URI '{uri}'",
                    kind=ErrorKind.RESOURCE_NOT_FOUND,
                ),
                FaultContext("Resource"),
            )
        return await pipeline.read(uri, signal=signal)

    async def invalidate(self, name: str) -> int:
        """Invalidate the cache of one resource. Returns the entry count."""
        pipeline = self._pipelines.get(name)
        if pipeline is None:
            raise KeyError(f"Unknown resource '{name}'")
        return await pipeline.invalidate_cache()

    def list_resources(self) -> list[dict[str, Any]]:
        return [
            {
                "name": p.descriptor.name,
                "uri_pattern": p.descriptor.uri_pattern,
                "cardinality": p.descriptor.cardinality.value,
                "cache": p.get_cache_options().model_dump(),
            }
            for p in self._pipelines.values()
        ]

    def __len__(self) -> int:
        return len(self._pipelines)
