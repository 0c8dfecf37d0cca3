"""Cloud API client contract and wire models.

The lifecycle code never talks HTTP. It receives an object satisfying
CloudApiClient, which is synchronous, authenticated and already connected.
Implementations raise ResourceNotFoundError for missing resources and
RemoteOperationError for any other failure.

Wire models parse the platform's camelCase JSON inventories.
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import BaseModel, Field

from .errors import ConfigurationError

if TYPE_CHECKING:
    from .config import ConnectionConfig

logger = logging.getLogger(__name__)


class DeleteMode(str, Enum):
    """Platform delete modes. Only Permissive is issued."""

    PERMISSIVE = "Permissive"


class InstanceStrategy(str, Enum):
    """Deployment strategies accepted by CreateVmInstance."""

    INSTANT_START = "InstantStart"
    CREATE_STOPPED = "CreateStopped"


# System tag keys and fixed values
SYSTEM_TAG_BOOT_MODE_UEFI = "bootMode::UEFI"
SYSTEM_TAG_BOOT_MODE_LEGACY = "bootMode::Legacy"
SYSTEM_TAG_NEVER_STOP = "ha::NeverStop"
SYSTEM_TAG_VIRTIO_SCSI = "capability::virtio-scsi"


def static_ip_tag(l3_network_uuid: str, ip: str) -> str:
    return f"staticIp::{l3_network_uuid}::{ip}"


def user_data_tag(payload: str) -> str:
    return f"userdata::{payload}"


def root_pool_tag(pool_name: str) -> str:
    return f"ceph::rootPoolName::{pool_name}"


def data_pool_tag(pool_name: str) -> str:
    return f"ceph::pool::{pool_name}"


# =============================================================================
# Wire Models
# =============================================================================


class _WireModel(BaseModel):
    model_config = {"extra": "ignore", "populate_by_name": True}


class Image(_WireModel):
    uuid: str
    name: str = ""
    state: str = ""
    status: str = ""
    architecture: str | None = None
    platform: str | None = None
    format: str | None = None


class CephPool(_WireModel):
    pool_name: str = Field(alias="poolName")
    type: str | None = None


class PrimaryStorage(_WireModel):
    uuid: str
    name: str = ""
    state: str = ""
    status: str = ""
    type: str | None = None
    pools: list[CephPool] = Field(default_factory=list)

    def has_pool(self, pool_name: str) -> bool:
        return any(pool.pool_name == pool_name for pool in self.pools)


class VmNic(_WireModel):
    uuid: str
    l3_network_uuid: str = Field(alias="l3NetworkUuid")
    ip: str = ""
    netmask: str = ""
    gateway: str = ""


class Volume(_WireModel):
    uuid: str
    type: str
    size: int = 0
    format: str | None = None
    primary_storage_uuid: str | None = Field(None, alias="primaryStorageUuid")
    state: str | None = None
    status: str | None = None


class VmInstance(_WireModel):
    uuid: str
    name: str = ""
    description: str = ""
    image_uuid: str | None = Field(None, alias="imageUuid")
    memory_size: int = Field(0, alias="memorySize")  # bytes
    cpu_num: int = Field(0, alias="cpuNum")
    state: str | None = None
    vm_nics: list[VmNic] = Field(default_factory=list, alias="vmNics")
    all_volumes: list[Volume] = Field(default_factory=list, alias="allVolumes")
    default_l3_network_uuid: str | None = Field(None, alias="defaultL3NetworkUuid")


@dataclass
class QueryParam:
    """Query conditions in the platform's `field=value` form."""

    conditions: list[str] = field(default_factory=list)
    limit: int | None = None

    def add_q(self, condition: str) -> QueryParam:
        self.conditions.append(condition)
        return self

    def with_limit(self, limit: int) -> QueryParam:
        self.limit = limit
        return self

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"q": list(self.conditions)}
        if self.limit is not None:
            params["limit"] = self.limit
        return params


class CreateVmInstanceRequest(_WireModel):
    """Parameters and system tags for CreateVmInstance.

    Sizes are in bytes. Unset fields are omitted from the payload.
    """

    name: str
    image_uuid: str = Field(alias="imageUuid")
    type: str = "UserVm"
    description: str | None = None
    l3_network_uuids: list[str] = Field(default_factory=list, alias="l3NetworkUuids")
    default_l3_network_uuid: str | None = Field(None, alias="defaultL3NetworkUuid")
    root_disk_size: int | None = Field(None, alias="rootDiskSize")
    primary_storage_uuid_for_root_volume: str | None = Field(
        None, alias="primaryStorageUuidForRootVolume"
    )
    data_disk_sizes: list[int] = Field(default_factory=list, alias="dataDiskSizes")
    primary_storage_uuid_for_data_volume: str | None = Field(
        None, alias="primaryStorageUuidForDataVolume"
    )
    zone_uuid: str | None = Field(None, alias="zoneUuid")
    cluster_uuid: str | None = Field(None, alias="clusterUuid")
    host_uuid: str | None = Field(None, alias="hostUuid")
    strategy: str | None = None
    memory_size: int | None = Field(None, alias="memorySize")
    cpu_num: int | None = Field(None, alias="cpuNum")
    root_volume_system_tags: list[str] = Field(
        default_factory=list, alias="rootVolumeSystemTags"
    )
    data_volume_system_tags: list[str] = Field(
        default_factory=list, alias="dataVolumeSystemTags"
    )
    system_tags: list[str] = Field(default_factory=list, alias="systemTags")

    def to_payload(self) -> dict[str, Any]:
        """Render the API body: {"params": {...}, "systemTags": [...]}."""
        params = self.model_dump(by_alias=True, exclude_none=True, exclude={"system_tags"})
        for key in ("dataDiskSizes", "rootVolumeSystemTags", "dataVolumeSystemTags"):
            if not params.get(key):
                params.pop(key, None)
        return {"params": params, "systemTags": list(self.system_tags)}


# =============================================================================
# Client Contract
# =============================================================================


class CloudApiClient(Protocol):
    """Minimum Cloud API surface the lifecycle needs."""

    def get_image(self, uuid: str) -> Image: ...

    def create_vm_instance(self, request: CreateVmInstanceRequest) -> VmInstance: ...

    def get_vm_instance(self, uuid: str) -> VmInstance: ...

    def destroy_vm_instance(self, uuid: str, mode: DeleteMode) -> None: ...

    def delete_data_volume(self, uuid: str, mode: DeleteMode) -> None: ...

    def expunge_vm_instance(self, uuid: str) -> None: ...

    def expunge_data_volume(self, uuid: str) -> None: ...

    def query_primary_storage(self, query: QueryParam) -> list[PrimaryStorage]: ...


ClientFactory = Callable[["ConnectionConfig"], CloudApiClient]


def load_client_factory(import_path: str) -> ClientFactory:
    """Resolve a `package.module:callable` path to a client factory.

    Raises:
        ConfigurationError: If the path is malformed or cannot be imported.
    """
    module_name, sep, attr = import_path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(
            f"Client factory must be in 'module:callable' form: {import_path!r}"
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import client factory module {module_name}: {e}") from e

    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ConfigurationError(f"Client factory {import_path} is not callable")

    logger.debug("Loaded client factory", extra={"client_factory": import_path})
    return factory
