"""
ResourcePipeline - serves one resource: validated, cached, audited and
content-negotiated reads backed by an upstream fetch.

Request lifecycle:
1. Flatten URI-bound variables to single strings
2. Validate parameters (invalid_parameters / missing_parameter, never fetched)
3. Audit the access attempt
4. Cache lookup; a hit is rendered straight away
5. Fetch upstream (Collection payloads must be arrays)
6. Validate the payload (each element for Collection, all-or-nothing)
7. Store in the cache
8. Audit the success
9. Render

Every stage returns Ok/Err. Faults are turned into ClassifiedError by
classify() only, audited, and surfaced by read().
"""

import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from loguru import logger

from resource_server.resources.descriptor import ResourceDescriptor
from resource_server.resources.negotiation import ContentNegotiator, ResourceResponse
from resource_server.resources.result import Err, Ok, Result
from resource_server.resources.schemas import ValidationIssue
from resource_server.resources.uri import UriTemplateMatcher, control_param
from resource_server.services.abort import AbortSignal
from resource_server.services.audit import AuditSink
from resource_server.services.cache import CacheOptions, CacheStore
from resource_server.services.classifier import FaultContext, classify
from resource_server.services.client import Fetcher
from resource_server.services.deduplicator import FetchCoalescer
from resource_server.services.errors import (
    ClassifiedError,
    ErrorKind,
    RequestAbortedError,
    ResourceFault,
)


@dataclass
class RequestContext:
    """State of a single request. Never shared between requests."""

    uri: str
    raw_params: dict[str, str]
    request_id: str
    signal: AbortSignal | None = None
    validated_params: dict[str, Any] = field(default_factory=dict)
    resource_id: str | None = None
    user_id: str | None = None
    ip_address: str | None = None


def generate_request_id() -> str:
    return uuid.uuid4().hex


def flatten_variables(
    variables: Mapping[str, str | Sequence[str]] | None,
) -> dict[str, str]:
    """Reduce URI-bound variables to one string each (first element of a list)."""
    flat: dict[str, str] = {}
    for key, value in (variables or {}).items():
        if isinstance(value, str):
            flat[key] = value
        elif value:
            flat[key] = str(value[0])
    return flat


class ResourcePipeline:
    """
    Request pipeline for one registered resource.

    Usage:
        pipeline = ResourcePipeline(descriptor, client.fetch, cache, audit)
        response = await pipeline.read("maas://machine/abc123/details")
        print(response.to_wire())
    """

    def __init__(
        self,
        descriptor: ResourceDescriptor,
        fetch: Fetcher,
        cache: CacheStore,
        audit: AuditSink | None = None,
        *,
        audit_enabled: bool = True,
        coalescer: FetchCoalescer | None = None,
        matcher: UriTemplateMatcher | None = None,
    ):
        self.descriptor = descriptor
        self._fetch = fetch
        self._cache = cache
        self._audit = audit
        self._audit_enabled = audit_enabled and audit is not None
        self._coalescer = coalescer
        self._matcher = matcher or UriTemplateMatcher()
        self._negotiator = ContentNegotiator(descriptor.name)

        defaults = CacheOptions(
            enabled=cache.is_enabled(),
            ttl_seconds=cache.get_resource_ttl(descriptor.name),
        )
        self._cache_options = CacheOptions.model_validate(
            {**defaults.model_dump(), **dict(descriptor.cache_options or {})}
        )

        logger.debug(
            f"Initialized {self.name} resource pipeline "
            f"(cache_enabled={self._cache_options.enabled}, "
            f"cache_ttl={self._cache_options.ttl_seconds}, "
            f"audit_enabled={self._audit_enabled})"
        )

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def caching_enabled(self) -> bool:
        return self._cache_options.enabled and self._cache.is_enabled()

    def matches(self, uri: str) -> bool:
        return self._matcher.matches(uri, self.descriptor.uri_pattern)

    # Request handling

    async def read(
        self,
        uri: str,
        variables: Mapping[str, str | Sequence[str]] | None = None,
        signal: AbortSignal | None = None,
    ) -> ResourceResponse:
        """
        Serve a read request.

        Args:
            uri: Concrete request URI
            variables: Variables already bound by the caller, if any
            signal: Abort signal threaded to the upstream fetch

        Returns:
            Rendered response

        Raises:
            ClassifiedError: Any failure, after it has been audited
        """
        result = await self.execute(uri, variables, signal)
        if isinstance(result, Err):
            raise result.error
        return result.value

    async def execute(
        self,
        uri: str,
        variables: Mapping[str, str | Sequence[str]] | None = None,
        signal: AbortSignal | None = None,
    ) -> Result[ResourceResponse]:
        """Serve a read request and return Ok(response) or Err(error)."""
        ctx = self._new_context(uri, variables, signal)

        params = self._validate_params(ctx)
        if isinstance(params, Err):
            return self._fail(ctx, params)
        ctx.validated_params = params.value
        ctx.resource_id = self.descriptor.resource_id(ctx.validated_params)

        logger.info(f"Fetching {self.name}{self._id_label(ctx)} [{ctx.request_id}]")
        self._audit_event(
            "log_access",
            self.name,
            ctx.resource_id,
            "read",
            ctx.request_id,
            ctx.user_id,
            ctx.ip_address,
            {"uri": ctx.uri, "params": ctx.validated_params},
        )

        cache_key: str | None = None
        if self.caching_enabled:
            cache_key = self._cache.generate_key(
                self.name,
                ctx.uri,
                ctx.validated_params,
                self._cache_options,
                id_param=self.descriptor.id_param,
            )
            entry = await self._cache.get_entry(cache_key)
            if entry is not None:
                logger.debug(f"Cache hit for {self.name}{self._id_label(ctx)}")
                self._audit_event(
                    "log_cache_op",
                    self.name,
                    "hit",
                    ctx.request_id,
                    ctx.resource_id,
                    {"cache_key": cache_key},
                )
                return Ok(
                    self._render(
                        ctx,
                        entry.value,
                        from_cache=True,
                        age=self._cache.age_of(entry),
                        ttl=entry.ttl_seconds,
                    )
                )

            logger.debug(f"Cache miss for {self.name}{self._id_label(ctx)}")
            self._audit_event(
                "log_cache_op",
                self.name,
                "miss",
                ctx.request_id,
                ctx.resource_id,
                {"cache_key": cache_key},
            )

        fetched = await self._fetch_stage(ctx, cache_key)
        if isinstance(fetched, Err):
            return self._fail(ctx, fetched)

        validated = self._validate_data(ctx, fetched.value)
        if isinstance(validated, Err):
            return self._fail(ctx, validated)
        value = validated.value

        # A fetch that outlived its caller is neither cached nor returned
        if ctx.signal is not None and ctx.signal.aborted:
            aborted = RequestAbortedError(ctx.signal.reason or "Request was aborted")
            return self._fail(ctx, Err(self._classify(aborted, ctx)))

        if cache_key is not None:
            entry = await self._cache.set(cache_key, value, self.name, self._cache_options)
            if entry is not None:
                logger.debug(f"Cached {self.name}{self._id_label(ctx)} with key {cache_key}")
                self._audit_event(
                    "log_cache_op",
                    self.name,
                    "set",
                    ctx.request_id,
                    ctx.resource_id,
                    {"cache_key": cache_key, "ttl": entry.ttl_seconds},
                )

        if self.descriptor.is_collection:
            logger.info(f"Successfully fetched {len(value)} {self.name} [{ctx.request_id}]")
            meta: dict[str, Any] | None = {"count": len(value)}
        else:
            logger.info(
                f"Successfully fetched {self.name}{self._id_label(ctx, ' for ')} "
                f"[{ctx.request_id}]"
            )
            meta = None
        self._audit_event(
            "log_access",
            self.name,
            ctx.resource_id,
            "read",
            ctx.request_id,
            ctx.user_id,
            ctx.ip_address,
            meta,
            value,
        )

        return Ok(self._render(ctx, value, from_cache=False))

    # Stages

    def _new_context(
        self,
        uri: str,
        variables: Mapping[str, str | Sequence[str]] | None,
        signal: AbortSignal | None,
    ) -> RequestContext:
        matched = self._matcher.match(uri, self.descriptor.uri_pattern)
        raw_params = {**flatten_variables(variables), **(matched or {})}
        return RequestContext(
            uri=uri,
            raw_params=raw_params,
            request_id=generate_request_id(),
            signal=signal,
            user_id=control_param(uri, "userId"),
            ip_address=control_param(uri, "ipAddress"),
        )

    def _validate_params(self, ctx: RequestContext) -> Result[dict[str, Any]]:
        try:
            if not self.descriptor.is_collection:
                resource_id = ctx.raw_params.get(self.descriptor.id_param)
                if resource_id is None or not resource_id.strip():
                    raise ResourceFault(
                        f"{self.name} ID is missing or empty in the resource URI",
                        kind=ErrorKind.MISSING_PARAMETER,
                    )

            result = self.descriptor.params_schema.validate(ctx.raw_params)
            if not result.ok:
                logger.error(
                    f"Invalid parameters for {self.name} request: {_issue_text(result.issues)}"
                )
                raise ResourceFault(
                    f"Invalid parameters for {self.name} request",
                    kind=ErrorKind.INVALID_PARAMETERS,
                    details={"issues": [i.to_dict() for i in result.issues]},
                )
        except Exception as e:
            return Err(self._classify(e, ctx))
        return Ok(dict(result.value or {}))

    async def _fetch_stage(self, ctx: RequestContext, cache_key: str | None) -> Result[Any]:
        try:
            endpoint, query = self._build_request(ctx.validated_params)
            if cache_key is not None and self._coalescer is not None:
                raw = await self._coalescer.run(
                    cache_key, lambda: self._fetch(endpoint, query, ctx.signal)
                )
            else:
                raw = await self._fetch(endpoint, query, ctx.signal)

            if self.descriptor.is_collection:
                if not isinstance(raw, list):
                    logger.error(
                        f"Invalid response format: Expected an array of {self.name}"
                    )
                    raise ResourceFault(
                        f"Invalid response format: Expected an array of {self.name}",
                        kind=ErrorKind.UNEXPECTED_ERROR,
                    )
            elif raw is None or raw == "":
                raise ResourceFault(
                    f"{self.name} '{ctx.resource_id}' not found",
                    kind=ErrorKind.RESOURCE_NOT_FOUND,
                )
        except Exception as e:
            return Err(self._classify(e, ctx))
        return Ok(raw)

    def _validate_data(self, ctx: RequestContext, raw: Any) -> Result[Any]:
        schema = self.descriptor.data_schema
        try:
            if self.descriptor.is_collection:
                items: list[Any] = []
                issues: list[ValidationIssue] = []
                for index, item in enumerate(raw):
                    result = schema.validate(item)
                    if result.ok:
                        items.append(result.value)
                    else:
                        issues.extend(
                            ValidationIssue(
                                path=f"[{index}].{issue.path}" if issue.path else f"[{index}]",
                                message=issue.message,
                            )
                            for issue in result.issues
                        )
                if issues:
                    raise self._validation_fault(ctx, issues)
                return Ok(items)

            result = schema.validate(raw)
            if not result.ok:
                raise self._validation_fault(ctx, result.issues)
            return Ok(result.value)
        except Exception as e:
            return Err(self._classify(e, ctx))

    def _validation_fault(
        self, ctx: RequestContext, issues: list[ValidationIssue]
    ) -> ResourceFault:
        id_message = f" for '{ctx.resource_id}'" if ctx.resource_id else ""
        logger.error(
            f"{self.name} data validation failed{id_message}: {_issue_text(issues)}"
        )
        return ResourceFault(
            f"{self.name} data validation failed{id_message}: "
            "The upstream API returned data in an unexpected format",
            kind=ErrorKind.VALIDATION_ERROR,
            details={"issues": [i.to_dict() for i in issues]},
        )

    def _build_request(
        self, params: Mapping[str, Any]
    ) -> tuple[str, dict[str, str] | None]:
        descriptor = self.descriptor
        placeholders = descriptor.endpoint_placeholders()
        missing = [p for p in placeholders if params.get(p) in (None, "")]
        if missing:
            raise ResourceFault(
                f"{self.name} request is missing {', '.join(sorted(missing))}",
                kind=ErrorKind.MISSING_PARAMETER,
            )

        endpoint = descriptor.api_endpoint.format(
            **{p: quote(str(params[p]), safe="") for p in placeholders}
        )
        consumed = set(placeholders)
        if not descriptor.is_collection and not placeholders:
            resource_id = quote(str(params[descriptor.id_param]), safe="")
            endpoint = f"{endpoint.rstrip('/')}/{resource_id}/"
            consumed.add(descriptor.id_param)

        query = {
            key: _query_value(value)
            for key, value in params.items()
            if key not in consumed and value is not None
        }
        return endpoint, query or None

    # Helpers

    def _render(
        self,
        ctx: RequestContext,
        value: Any,
        from_cache: bool,
        age: float | None = None,
        ttl: float | None = None,
    ) -> ResourceResponse:
        if ttl is None and self.caching_enabled:
            ttl = self._cache.resolve_ttl(self.name, self._cache_options)
        return self._negotiator.render(
            ctx.uri,
            value,
            from_cache=from_cache,
            ttl_seconds=ttl,
            directives=self._cache_options.cache_control,
            age_seconds=age,
        )

    def _classify(self, fault: BaseException, ctx: RequestContext) -> ClassifiedError:
        return classify(fault, FaultContext(self.name, ctx.resource_id))

    def _fail(self, ctx: RequestContext, result: Err) -> Err:
        error = result.error
        logger.error(
            f"{self.name} request failed{self._id_label(ctx, ' for ')} "
            f"[{ctx.request_id}]: {error.kind.value} ({error.http_status}) {error.message}"
        )
        self._audit_event(
            "log_failure",
            self.name,
            ctx.resource_id,
            "read",
            ctx.request_id,
            error,
            ctx.user_id,
            ctx.ip_address,
            {"uri": ctx.uri, "params": ctx.validated_params or ctx.raw_params},
        )
        return result

    def _audit_event(self, method: str, *args: Any) -> None:
        """Call the audit sink; its failures are logged and dropped."""
        if not self._audit_enabled:
            return
        try:
            getattr(self._audit, method)(*args)
        except Exception as e:
            logger.warning(f"Audit {method} failed for {self.name}: {e}")

    @staticmethod
    def _id_label(ctx: RequestContext, prefix: str = ": ") -> str:
        return f"{prefix}{ctx.resource_id}" if ctx.resource_id else ""

    # Cache management

    async def invalidate_cache(self) -> int:
        """Invalidate every cached entry of this resource."""
        if not self.caching_enabled:
            return 0

        request_id = generate_request_id()
        count = await self._cache.invalidate_resource(self.name)
        logger.debug(f"Invalidated {count} cache entries for {self.name} [{request_id}]")
        self._audit_event(
            "log_cache_op", self.name, "invalidate_all", request_id, None, {"count": count}
        )
        return count

    async def invalidate_cache_by_id(self, resource_id: str) -> int:
        """Invalidate cached entries of one resource instance."""
        if not self.caching_enabled or not resource_id:
            return 0

        request_id = generate_request_id()
        count = await self._cache.invalidate_resource_by_id(self.name, resource_id)
        logger.debug(
            f"Invalidated {count} cache entries for {self.name} "
            f"with ID {resource_id} [{request_id}]"
        )
        self._audit_event(
            "log_cache_op",
            self.name,
            "invalidate_by_id",
            request_id,
            resource_id,
            {"count": count},
        )
        return count

    def set_cache_options(self, **updates: Any) -> CacheOptions:
        """Update cache options of this resource; returns the new options."""
        self._cache_options = CacheOptions.model_validate(
            {**self._cache_options.model_dump(), **updates}
        )
        request_id = generate_request_id()
        logger.debug(
            f"Updated cache options for {self.name} [{request_id}]: "
            f"enabled={self._cache_options.enabled}, ttl={self._cache_options.ttl_seconds}"
        )
        self._audit_event(
            "log_cache_op",
            self.name,
            "update_options",
            request_id,
            None,
            {
                "cache_enabled": self._cache_options.enabled,
                "cache_ttl": self._cache_options.ttl_seconds,
            },
        )
        return self.get_cache_options()

    def get_cache_options(self) -> CacheOptions:
        return self._cache_options.model_copy(deep=True)


def _query_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _issue_text(issues: list[ValidationIssue]) -> str:
    return "; ".join(f"{i.path or '<root>'}: {i.message}" for i in issues)
