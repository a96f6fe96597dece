"""
URI template matching for resource patterns such as
``maas://machine/{system_id}/details``.
"""

import re
from urllib.parse import parse_qs, urlsplit

PLACEHOLDER = re.compile(r"^\{([A-Za-z_][A-Za-z0-9_]*)\}$")

# Query parameters consumed by the pipeline itself, never handed to schemas.
RESERVED_QUERY_PARAMS = frozenset({"format", "userId", "ipAddress"})


class UriTemplateMatcher:
    """
    Matches concrete URIs against placeholder patterns.

    Patterns with ``{name}`` segments yield path bindings. Patterns without
    placeholders (collections) yield the query-string pairs instead. Bound
    values are not validated here; an empty segment binds ``""``.
    """

    def match(self, uri: str, pattern: str) -> dict[str, str] | None:
        """
        Match uri against pattern.

        Returns:
            Extracted parameters, or None when the URI does not fit the pattern
        """
        uri_parts = urlsplit(uri)
        pattern_parts = urlsplit(pattern)
        if uri_parts.scheme != pattern_parts.scheme:
            return None

        uri_segments = _segments(uri_parts.netloc, uri_parts.path)
        pattern_segments = _segments(pattern_parts.netloc, pattern_parts.path)
        if len(uri_segments) != len(pattern_segments):
            return None

        bindings: dict[str, str] = {}
        for expected, actual in zip(pattern_segments, uri_segments):
            placeholder = PLACEHOLDER.match(expected)
            if placeholder:
                bindings[placeholder.group(1)] = actual
            elif expected != actual:
                return None

        if self.has_placeholders(pattern):
            return bindings
        return query_params(uri)

    def matches(self, uri: str, pattern: str) -> bool:
        return self.match(uri, pattern) is not None

    @staticmethod
    def has_placeholders(pattern: str) -> bool:
        parts = urlsplit(pattern)
        return any(
            PLACEHOLDER.match(segment) for segment in _segments(parts.netloc, parts.path)
        )


def query_params(uri: str) -> dict[str, str]:
    """Non-reserved query parameters of uri, first value per key."""
    parsed = parse_qs(urlsplit(uri).query, keep_blank_values=True)
    return {
        key: values[0]
        for key, values in parsed.items()
        if key not in RESERVED_QUERY_PARAMS and values
    }


def control_param(uri: str, name: str) -> str | None:
    """Value of a reserved query parameter such as ``format``."""
    values = parse_qs(urlsplit(uri).query, keep_blank_values=True).get(name)
    return values[0] if values else None


def _segments(netloc: str, path: str) -> list[str]:
    segments = [netloc] if netloc else []
    if path.startswith("/"):
        path = path[1:]
    if path.endswith("/"):
        path = path[:-1]
    if path:
        segments.extend(path.split("/"))
    return segments
