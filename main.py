"""
MAAS resource server entry point.

Reads one or more resource URIs and prints the wire response of each:

    python main.py maas://machine/abc123/details "maas://machines/list?limit=5"
"""

import asyncio
import json
import sys

from loguru import logger

from resource_server.resources import ResourceRegistry, default_descriptors
from resource_server.services import (
    AuditLogger,
    AuditOptions,
    CacheStore,
    ClassifiedError,
    UpstreamClient,
)
from resource_server.settings import Settings, global_settings


def configure_logging(settings: Settings) -> None:
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)


def build_registry(settings: Settings, client: UpstreamClient) -> ResourceRegistry:
    """Wire the shared cache, audit trail and upstream client into a registry."""
    cache = CacheStore(settings.cache_config())
    audit = AuditLogger(
        AuditOptions(include_resource_state=settings.audit_include_resource_state)
    )
    registry = ResourceRegistry(
        client.fetch,
        cache,
        audit,
        audit_enabled=settings.audit_log_enabled,
        single_flight=settings.cache_single_flight,
    )
    registry.register_all(default_descriptors())
    return registry


async def main(uris: list[str], settings: Settings = global_settings) -> int:
    """Serve each URI once; returns the process exit code."""
    logger.info(f"Starting resource server against {settings.maas_api_url}")

    exit_code = 0
    async with UpstreamClient(
        settings.maas_api_url, timeout=settings.maas_request_timeout
    ) as client:
        registry = build_registry(settings, client)
        logger.info(f"{len(registry)} resources registered")

        for uri in uris:
            try:
                response = await registry.read(uri)
            except ClassifiedError as e:
                logger.error(f"Failed to read {uri}: {e.message}")
                print(json.dumps({"uri": uri, "error": e.to_dict()}, ensure_ascii=False))
                exit_code = 1
                continue
            print(json.dumps(response.to_wire(), ensure_ascii=False))

    logger.info("Resource server stopped")
    return exit_code


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python main.py <resource_uri> [<resource_uri> ...]")
        sys.exit(1)

    configure_logging(global_settings)
    sys.exit(asyncio.run(main(sys.argv[1:])))
