"""
Resource layer: URI matching, per-resource pipelines and the MAAS catalog.
"""

from resource_server.resources.uri import UriTemplateMatcher
from resource_server.resources.schemas import (
    PydanticSchema,
    Schema,
    SchemaResult,
    ValidationIssue,
)
from resource_server.resources.result import Err, Ok, Result
from resource_server.resources.descriptor import Cardinality, ResourceDescriptor
from resource_server.resources.negotiation import (
    ContentNegotiator,
    ResourceContent,
    ResourceResponse,
)
from resource_server.resources.pipeline import ResourcePipeline
from resource_server.resources.registry import ResourceRegistry
from resource_server.resources.catalog import default_descriptors

__all__ = [
    # Matching
    "UriTemplateMatcher",
    # Schemas
    "PydanticSchema",
    "Schema",
    "SchemaResult",
    "ValidationIssue",
    # Results
    "Ok",
    "Err",
    "Result",
    # Descriptors
    "Cardinality",
    "ResourceDescriptor",
    # Rendering
    "ContentNegotiator",
    "ResourceContent",
    "ResourceResponse",
    # Pipelines
    "ResourcePipeline",
    "ResourceRegistry",
    "default_descriptors",
]
