"""
ContentNegotiator - renders validated values as JSON (default) or XML and
builds cache headers.
"""

import json
import re
import xml.etree.ElementTree as ET
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from resource_server.resources.uri import control_param
from resource_server.services.cache import CacheControlDirectives

JSON_MIME = "application/json"
XML_MIME = "application/xml"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

_XML_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_.-]*$")


class ResourceContent(BaseModel):
    """One rendered content item."""

    model_config = ConfigDict(populate_by_name=True)

    uri: str
    text: str
    mime_type: str = Field(alias="mimeType")
    headers: dict[str, str] = Field(default_factory=dict)


class ResourceResponse(BaseModel):
    """Wire shape: ``{"contents": [{uri, text, mimeType, headers}]}``."""

    contents: list[ResourceContent]

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ContentNegotiator:
    """
    Chooses the representation of a resource response.

    ``?format=xml`` on the request URI asks for XML; anything else gets JSON.
    XML conversion is best effort: if it fails the JSON text is returned.
    """

    def __init__(self, resource_name: str):
        self.resource_name = resource_name
        self._root = re.sub(r"\s+", "_", resource_name.lower())

    def render(
        self,
        uri: str,
        value: Any,
        from_cache: bool,
        ttl_seconds: int | None,
        directives: CacheControlDirectives | None = None,
        age_seconds: float | None = None,
    ) -> ResourceResponse:
        """
        Render a value.

        Args:
            uri: Request URI (echoed back, and checked for ``format``)
            value: Validated plain value
            from_cache: Whether the value came from the cache
            ttl_seconds: max-age to advertise; None when caching is off
            directives: Extra Cache-Control directives
            age_seconds: Age of the cache entry, for the Age header

        Returns:
            ResourceResponse with a single content item
        """
        headers = self.cache_headers(ttl_seconds, directives, from_cache, age_seconds)

        if (control_param(uri, "format") or "").lower() == "xml":
            try:
                text = self.to_xml(value)
            except (ValueError, TypeError) as e:
                logger.warning(
                    f"Failed to convert {self.resource_name} to XML format, "
                    f"falling back to JSON: {e}"
                )
            else:
                logger.debug(f"Returning {self.resource_name} in XML format")
                return _single(uri, text, XML_MIME, headers)

        logger.debug(f"Returning {self.resource_name} in JSON format")
        return _single(uri, to_json(value), JSON_MIME, headers)

    @staticmethod
    def cache_headers(
        ttl_seconds: int | None,
        directives: CacheControlDirectives | None,
        from_cache: bool,
        age_seconds: float | None = None,
    ) -> dict[str, str]:
        if ttl_seconds is None:
            return {}

        cache_control = [f"max-age={ttl_seconds}"]
        if directives:
            if directives.private:
                cache_control.append("private")
            if directives.must_revalidate:
                cache_control.append("must-revalidate")
            if directives.immutable:
                cache_control.append("immutable")

        headers = {"Cache-Control": ", ".join(cache_control)}
        if from_cache:
            headers["Age"] = str(max(1, int(age_seconds or 0)))
        return headers

    def to_xml(self, value: Any) -> str:
        """
        Structural XML projection of a value.

        Object keys become elements, a list field ``x`` becomes ``<xs>`` with
        ``<x>`` children, None fields are omitted and scalars are stringified.

        Raises:
            ValueError: A key is not a valid XML element name
        """
        if isinstance(value, list):
            item_name = self._root[:-1] if self._root.endswith("s") else self._root
            root = ET.Element(f"{item_name}s")
            for item in value:
                root.append(_element(item_name, item))
        else:
            root = _element(self._root, value)
        return XML_DECLARATION + ET.tostring(root, encoding="unicode")


def to_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _single(uri: str, text: str, mime_type: str, headers: dict[str, str]) -> ResourceResponse:
    return ResourceResponse(
        contents=[ResourceContent(uri=uri, text=text, mime_type=mime_type, headers=headers)]
    )


def _element(name: str, value: Any) -> ET.Element:
    if not _XML_NAME.match(name):
        raise ValueError(f"'{name}' is not a valid XML element name")

    element = ET.Element(name)
    if value is None:
        return element

    if isinstance(value, dict):
        for key, child in value.items():
            if child is None:
                continue
            key = str(key)
            if isinstance(child, list):
                if not _XML_NAME.match(key):
                    raise ValueError(f"'{key}' is not a valid XML element name")
                wrapper = ET.SubElement(element, f"{key}s")
                for item in child:
                    wrapper.append(_element(key, item))
            else:
                element.append(_element(key, child))
        return element

    if isinstance(value, list):
        raise TypeError(f"nested list under <{name}> has no element name")

    element.text = _scalar(value)
    return element


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
