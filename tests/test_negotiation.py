"""
Unit tests for ContentNegotiator.
"""

import json

import pytest

from resource_server.resources.negotiation import (
    JSON_MIME,
    XML_DECLARATION,
    XML_MIME,
    ContentNegotiator,
)
from resource_server.services.cache import CacheControlDirectives


class TestContentNegotiator:
    """Test cases for representation selection."""

    @pytest.fixture
    def negotiator(self):
        return ContentNegotiator("Machine")

    def test_json_by_default(self, negotiator):
        value = {"system_id": "abc123", "hostname": "node1"}
        response = negotiator.render(
            "maas://machine/abc123/details", value, from_cache=False, ttl_seconds=60
        )
        content = response.contents[0]
        assert content.mime_type == JSON_MIME
        assert json.loads(content.text) == value
        assert content.uri == "maas://machine/abc123/details"

    def test_xml_on_request(self, negotiator):
        value = {"system_id": "abc123", "tag": ["a", "b"], "owner": None}
        response = negotiator.render(
            "maas://machine/abc123/details?format=xml",
            value,
            from_cache=False,
            ttl_seconds=None,
        )
        content = response.contents[0]
        assert content.mime_type == XML_MIME
        assert content.text == (
            XML_DECLARATION
            + "<machine><system_id>abc123</system_id>"
            + "<tags><tag>a</tag><tag>b</tag></tags></machine>"
        )

    def test_xml_collection(self):
        negotiator = ContentNegotiator("Tags")
        text = negotiator.to_xml([{"name": "a"}, {"name": "b"}])
        assert text == (
            XML_DECLARATION + "<tags><tag><name>a</name></tag><tag><name>b</name></tag></tags>"
        )

    def test_xml_falls_back_to_json(self, negotiator):
        value = {"bad key": 1}
        response = negotiator.render(
            "maas://machine/x/details?format=xml", value, from_cache=False, ttl_seconds=60
        )
        content = response.contents[0]
        assert content.mime_type == JSON_MIME
        assert json.loads(content.text) == value

    def test_bools_render_lowercase(self, negotiator):
        assert "<locked>true</locked>" in negotiator.to_xml({"locked": True})


class TestCacheHeaders:
    """Test cases for Cache-Control and Age."""

    def test_no_headers_without_ttl(self):
        assert ContentNegotiator.cache_headers(None, None, from_cache=True) == {}

    def test_max_age(self):
        assert ContentNegotiator.cache_headers(60, None, from_cache=False) == {
            "Cache-Control": "max-age=60"
        }

    def test_directives(self):
        directives = CacheControlDirectives(private=True, must_revalidate=True, immutable=True)
        headers = ContentNegotiator.cache_headers(60, directives, from_cache=False)
        assert headers["Cache-Control"] == "max-age=60, private, must-revalidate, immutable"

    def test_age_on_cache_hit(self):
        headers = ContentNegotiator.cache_headers(60, None, from_cache=True, age_seconds=12.7)
        assert headers["Age"] == "12"

    def test_age_is_at_least_one(self):
        headers = ContentNegotiator.cache_headers(60, None, from_cache=True, age_seconds=0)
        assert headers["Age"] == "1"


class TestResourceResponse:
    def test_wire_shape_uses_mime_type_alias(self):
        response = ContentNegotiator("Zone").render(
            "maas://zone/1/details", {"id": 1}, from_cache=False, ttl_seconds=None
        )
        assert response.to_wire() == {
            "contents": [
                {
                    "uri": "maas://zone/1/details",
                    "text": '{"id":1}',
                    "mimeType": JSON_MIME,
                    "headers": {},
                }
            ]
        }
