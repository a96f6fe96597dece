"""
ResourceDescriptor - immutable registration data for one resource.
"""

import string
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from resource_server.resources.schemas import Schema
from resource_server.services.cache import CacheOptions


class Cardinality(str, Enum):
    SINGLE = "single"
    COLLECTION = "collection"


@dataclass(frozen=True)
class ResourceDescriptor:
    """
    Describes a resource served by a ResourcePipeline.

    Attributes:
        name: Resource name used in messages, audit records and cache keys
        uri_pattern: Template such as ``maas://machine/{system_id}/details``
        api_endpoint: Upstream endpoint; may carry ``{param}`` placeholders
        cardinality: SINGLE returns one item, COLLECTION an array
        params_schema: Validates the parameters extracted from the URI
        data_schema: Validates one item of the upstream payload
        id_param: Parameter identifying the instance (SINGLE only)
        cache_options: Overrides applied on top of the configured defaults
    """

    name: str
    uri_pattern: str
    api_endpoint: str
    cardinality: Cardinality
    params_schema: Schema[Any]
    data_schema: Schema[Any]
    id_param: str | None = None
    cache_options: Mapping[str, Any] | None = None

    def __post_init__(self):
        if self.cardinality is Cardinality.SINGLE and not self.id_param:
            raise ValueError(f"Single resource '{self.name}' needs an id_param")

    @property
    def is_collection(self) -> bool:
        return self.cardinality is Cardinality.COLLECTION

    def endpoint_placeholders(self) -> set[str]:
        return {
            field
            for _, field, _, _ in string.Formatter().parse(self.api_endpoint)
            if field
        }

    def resource_id(self, params: Mapping[str, Any]) -> str | None:
        if self.is_collection or not self.id_param:
            return None
        value = params.get(self.id_param)
        return None if value is None else str(value)
