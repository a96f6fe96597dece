"""
Unit tests for ResourceRegistry and the bootstrap wiring.
"""

import pytest

from main import build_registry
from resource_server.resources.catalog import default_descriptors
from resource_server.resources.descriptor import Cardinality, ResourceDescriptor
from resource_server.resources.registry import ResourceRegistry
from resource_server.resources.schemas import PydanticSchema
from resource_server.services.client import UpstreamClient
from resource_server.services.errors import ClassifiedError, ErrorKind
from resource_server.settings import Settings


class TestResourceRegistry:
    """Test cases for URI routing."""

    @pytest.fixture
    def registry(self, fetch, cache, audit):
        registry = ResourceRegistry(fetch, cache, audit)
        registry.register_all(default_descriptors())
        return registry

    @pytest.mark.asyncio
    async def test_routes_single(self, registry, fetch):
        fetch.return_value = {"name": "gpu", "definition": "//node"}
        response = await registry.read("maas://tag/gpu/details")
        fetch.assert_awaited_once_with("/tags/gpu/", None, None)
        assert '"name":"gpu"' in response.contents[0].text

    @pytest.mark.asyncio
    async def test_tag_machines_filter_upstream_by_tag(self, registry, fetch):
        fetch.return_value = [{"system_id": "abc", "hostname": "n1"}]
        await registry.read("maas://tag/gpu/machines")
        fetch.assert_awaited_once_with("/machines/", {"tags": "gpu"}, None)

    @pytest.mark.asyncio
    async def test_invalid_tag_name(self, registry, fetch):
        with pytest.raises(ClassifiedError) as exc_info:
            await registry.read("maas://tag/bad$tag/details")
        assert exc_info.value.kind is ErrorKind.INVALID_PARAMETERS
        fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_uri(self, registry):
        with pytest.raises(ClassifiedError) as exc_info:
            await registry.read("maas://pods/list")
        assert exc_info.value.kind is ErrorKind.RESOURCE_NOT_FOUND
        assert exc_info.value.http_status == 404

    def test_resolve(self, registry):
        assert registry.resolve("maas://machines/list?limit=1").name == "Machines"
        assert registry.resolve("maas://machine/abc/details").name == "Machine"
        assert registry.resolve("maas://nothing") is None

    def test_first_registered_pattern_wins(self, fetch, cache, audit):
        registry = ResourceRegistry(fetch, cache, audit)
        for name in ("First", "Second"):
            registry.register(
                ResourceDescriptor(
                    name=name,
                    uri_pattern="maas://things/list",
                    api_endpoint="/things/",
                    cardinality=Cardinality.COLLECTION,
                    params_schema=PydanticSchema(dict),
                    data_schema=PydanticSchema(dict),
                )
            )
        assert registry.resolve("maas://things/list").name == "First"

    def test_duplicate_name_rejected(self, registry):
        with pytest.raises(ValueError):
            registry.register(default_descriptors()[0])

    @pytest.mark.asyncio
    async def test_invalidate(self, registry, fetch):
        fetch.return_value = []
        await registry.read("maas://zones/list")
        assert await registry.invalidate("Zones") == 1
        with pytest.raises(KeyError):
            await registry.invalidate("Pods")

    def test_list_resources(self, registry):
        listed = {r["name"]: r for r in registry.list_resources()}
        assert len(listed) == 13
        assert listed["Machine"]["cardinality"] == "single"
        assert listed["Machine"]["uri_pattern"] == "maas://machine/{system_id}/details"


class TestBootstrap:
    """Test cases for main.build_registry()."""

    def test_registers_every_resource(self):
        settings = Settings(cache_max_age=120, cache_single_flight=True)
        registry = build_registry(settings, UpstreamClient("http://maas.test/MAAS"))
        assert len(registry) == 13
        assert registry.get("Zones").get_cache_options().ttl_seconds == 120
