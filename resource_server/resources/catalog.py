"""
MAAS resource catalog: URI patterns, parameter and payload models, and the
descriptors registered by default.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from resource_server.resources.descriptor import Cardinality, ResourceDescriptor
from resource_server.resources.schemas import PydanticSchema

# URI patterns
MACHINE_DETAILS_URI_PATTERN = "maas://machine/{system_id}/details"
MACHINES_LIST_URI_PATTERN = "maas://machines/list"
TAG_DETAILS_URI_PATTERN = "maas://tag/{tag_name}/details"
TAGS_LIST_URI_PATTERN = "maas://tags/list"
TAG_MACHINES_URI_PATTERN = "maas://tag/{tag_name}/machines"
SUBNET_DETAILS_URI_PATTERN = "maas://subnet/{subnet_id}/details"
SUBNETS_LIST_URI_PATTERN = "maas://subnets/list"
ZONE_DETAILS_URI_PATTERN = "maas://zone/{zone_id}/details"
ZONES_LIST_URI_PATTERN = "maas://zones/list"
DEVICE_DETAILS_URI_PATTERN = "maas://device/{system_id}/details"
DEVICES_LIST_URI_PATTERN = "maas://devices/list"
DOMAIN_DETAILS_URI_PATTERN = "maas://domain/{domain_id}/details"
DOMAINS_LIST_URI_PATTERN = "maas://domains/list"

TAG_NAME_PATTERN = r"^[a-zA-Z0-9_-]+$"


# ==================== Upstream payloads ====================
# Upstream objects carry many more fields than listed; they are kept.


class MaasModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class Machine(MaasModel):
    system_id: str
    hostname: str
    fqdn: str | None = None
    status_name: str | None = None
    power_state: str | None = None
    architecture: str | None = None
    cpu_count: int | None = None
    memory: int | None = None
    zone: dict | None = None
    pool: dict | None = None
    tag_names: list[str] | None = None
    ip_addresses: list[str] | None = None


class Tag(MaasModel):
    name: str
    definition: str | None = None
    comment: str | None = None
    kernel_opts: str | None = None


class Subnet(MaasModel):
    id: int
    name: str
    cidr: str
    vlan: dict | None = None
    gateway_ip: str | None = None
    dns_servers: list[str] | None = None
    managed: bool | None = None


class Zone(MaasModel):
    id: int
    name: str
    description: str | None = None


class Device(MaasModel):
    system_id: str
    hostname: str
    fqdn: str | None = None
    owner: str | None = None
    domain: dict | None = None
    zone: dict | None = None
    ip_addresses: list[str] | None = None
    tag_names: list[str] | None = None


class Domain(MaasModel):
    id: int
    name: str
    authoritative: bool | None = None
    ttl: int | None = None
    resource_record_count: int | None = None


# ==================== Detail parameters ====================


class MachineParams(BaseModel):
    system_id: str = Field(min_length=1)


class TagParams(BaseModel):
    tag_name: str = Field(pattern=TAG_NAME_PATTERN)


class TagMachinesParams(BaseModel):
    """Machines carrying a tag; sent upstream as the ``tags`` filter."""

    tag_name: str = Field(pattern=TAG_NAME_PATTERN, serialization_alias="tags")


class SubnetParams(BaseModel):
    subnet_id: str = Field(min_length=1)


class ZoneParams(BaseModel):
    zone_id: str = Field(min_length=1)


class DeviceParams(BaseModel):
    system_id: str = Field(min_length=1)


class DomainParams(BaseModel):
    domain_id: str = Field(min_length=1)


# ==================== Collection query parameters ====================


class CollectionQueryParams(BaseModel):
    """Pagination and sorting shared by list resources. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")

    limit: int | None = Field(default=None, gt=0)
    offset: int | None = Field(default=None, ge=0)
    page: int | None = Field(default=None, gt=0)
    per_page: int | None = Field(default=None, gt=0)
    sort: str | None = None
    order: Literal["asc", "desc"] | None = None


class MachineQueryParams(CollectionQueryParams):
    hostname: str | None = None
    status: str | None = None
    zone: str | None = None
    pool: str | None = None
    tags: str | None = None
    not_tags: str | None = None
    owner: str | None = None
    architecture: str | None = None
    arch: str | None = None
    domain: str | None = None
    id: str | None = None
    not_id: str | None = None
    cpu_count: int | None = Field(default=None, gt=0)
    memory: int | None = Field(default=None, gt=0)
    power_state: str | None = None
    power_type: str | None = None
    osystem: str | None = None
    locked: bool | None = None
    agent_name: str | None = None
    comment: str | None = None
    is_virtual_machine: bool | None = None


class TagQueryParams(CollectionQueryParams):
    name: str | None = None
    definition: str | None = None
    kernel_opts: str | None = None


class SubnetQueryParams(CollectionQueryParams):
    cidr: str | None = None
    name: str | None = None
    vlan: str | None = None
    space: str | None = None
    vlan_vid: int | None = Field(default=None, ge=0, le=4095)


class ZoneQueryParams(CollectionQueryParams):
    name: str | None = None


class DeviceQueryParams(CollectionQueryParams):
    hostname: str | None = None
    mac_address: str | None = None
    zone: str | None = None
    owner: str | None = None


class DomainQueryParams(CollectionQueryParams):
    name: str | None = None
    authoritative: Literal["true", "false"] | None = None


# ==================== Descriptors ====================


def _single(
    name: str, pattern: str, endpoint: str, params: type[BaseModel], data: type[BaseModel], id_param: str
) -> ResourceDescriptor:
    return ResourceDescriptor(
        name=name,
        uri_pattern=pattern,
        api_endpoint=endpoint,
        cardinality=Cardinality.SINGLE,
        params_schema=PydanticSchema(params),
        data_schema=PydanticSchema(data),
        id_param=id_param,
    )


def _collection(
    name: str,
    pattern: str,
    endpoint: str,
    params: type[BaseModel],
    data: type[BaseModel],
    by_alias: bool = False,
) -> ResourceDescriptor:
    return ResourceDescriptor(
        name=name,
        uri_pattern=pattern,
        api_endpoint=endpoint,
        cardinality=Cardinality.COLLECTION,
        params_schema=PydanticSchema(params, by_alias=by_alias),
        data_schema=PydanticSchema(data),
    )


def default_descriptors() -> list[ResourceDescriptor]:
    """Every MAAS resource served by default, in matching order."""
    return [
        _single("Machine", MACHINE_DETAILS_URI_PATTERN, "/machines/", MachineParams, Machine, "system_id"),
        _collection("Machines", MACHINES_LIST_URI_PATTERN, "/machines/", MachineQueryParams, Machine),
        _single("Tag", TAG_DETAILS_URI_PATTERN, "/tags/", TagParams, Tag, "tag_name"),
        _collection("Tags", TAGS_LIST_URI_PATTERN, "/tags/", TagQueryParams, Tag),
        _collection(
            "Tag Machines", TAG_MACHINES_URI_PATTERN, "/machines/", TagMachinesParams, Machine, by_alias=True
        ),
        _single("Subnet", SUBNET_DETAILS_URI_PATTERN, "/subnets/", SubnetParams, Subnet, "subnet_id"),
        _collection("Subnets", SUBNETS_LIST_URI_PATTERN, "/subnets/", SubnetQueryParams, Subnet),
        _single("Zone", ZONE_DETAILS_URI_PATTERN, "/zones/", ZoneParams, Zone, "zone_id"),
        _collection("Zones", ZONES_LIST_URI_PATTERN, "/zones/", ZoneQueryParams, Zone),
        _single("Device", DEVICE_DETAILS_URI_PATTERN, "/devices/", DeviceParams, Device, "system_id"),
        _collection("Devices", DEVICES_LIST_URI_PATTERN, "/devices/", DeviceQueryParams, Device),
        _single("Domain", DOMAIN_DETAILS_URI_PATTERN, "/domains/", DomainParams, Domain, "domain_id"),
        _collection("Domains", DOMAINS_LIST_URI_PATTERN, "/domains/", DomainQueryParams, Domain),
    ]
