"""
Service layer infrastructure shared by every resource pipeline.

Provides:
- CacheStore: Keyed TTL cache with resource overrides and bounded size
- FetchCoalescer: Single-flight for concurrent upstream fetches
- UpstreamClient: Async HTTP client for the upstream API
- AuditLogger: Audit trail for reads and cache operations
- classify: Normalizes any fault into a ClassifiedError
"""

from resource_server.services.errors import (
    ErrorKind,
    ResourceFault,
    UpstreamError,
    RateLimitError,
    RequestAbortedError,
    ClassifiedError,
)
from resource_server.services.abort import AbortSignal
from resource_server.services.audit import AuditLogger, AuditOptions, AuditSink
from resource_server.services.cache import (
    CacheStore,
    CacheConfig,
    CacheEntry,
    CacheOptions,
    CacheControlDirectives,
    CacheStats,
)
from resource_server.services.classifier import FaultContext, classify
from resource_server.services.deduplicator import FetchCoalescer
from resource_server.services.client import UpstreamClient, Fetcher

__all__ = [
    # Errors
    "ErrorKind",
    "ResourceFault",
    "UpstreamError",
    "RateLimitError",
    "RequestAbortedError",
    "ClassifiedError",
    # Cancellation
    "AbortSignal",
    # Audit
    "AuditLogger",
    "AuditOptions",
    "AuditSink",
    # Cache
    "CacheStore",
    "CacheConfig",
    "CacheEntry",
    "CacheOptions",
    "CacheControlDirectives",
    "CacheStats",
    # Classification
    "FaultContext",
    "classify",
    # Coalescing
    "FetchCoalescer",
    # Client
    "UpstreamClient",
    "Fetcher",
]
