"""Pydantic models for desired and stored VM instance state.

These models provide:
1. Type-safe YAML parsing of the desired instance spec
2. A stored state representation that round-trips through JSON
3. Explicit optionals instead of empty-string sentinels

Semantic checks that must surface as ConfigurationError (strategy, boot mode,
network interfaces, data disk sizes) live in request_builder, not here.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, BeforeValidator, Field

from .units import bytes_to_gb


def _blank_to_none(value: Any) -> Any:
    """Treat empty or whitespace-only strings as unset."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


# Optional string where "" means unset
OptionalStr = Annotated[str | None, BeforeValidator(_blank_to_none)]


# =============================================================================
# Desired State
# =============================================================================


class DiskSpec(BaseModel):
    """Root or data disk configuration. Size is in GB."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    size: int | None = Field(None, ge=0)
    primary_storage_uuid: OptionalStr = Field(None, alias="primaryStorageUuid")
    ceph_pool_name: OptionalStr = Field(None, alias="cephPoolName")
    virtio_scsi: bool | None = Field(None, alias="virtioScsi")


class NetworkInterfaceSpec(BaseModel):
    """A NIC attached to an L3 network, optionally with a pinned IP."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    l3_network_uuid: str = Field(
        min_length=1,
        validation_alias=AliasChoices("l3NetworkUuid", "portGroupUuid", "l3_network_uuid"),
        serialization_alias="l3NetworkUuid",
    )
    default_l3: bool = Field(False, alias="defaultL3")
    static_ip: OptionalStr = Field(None, alias="staticIp")


class VmInstanceSpec(BaseModel):
    """Desired state of a VM instance, as authored by the user."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: str = Field(min_length=1)
    image_uuid: str = Field(min_length=1, alias="imageUuid")
    description: OptionalStr = None

    # Sizing; platform defaults apply when omitted
    cpu_num: int | None = Field(None, ge=1, alias="cpuNum")
    memory_size: int | None = Field(None, ge=1, alias="memorySize")  # MB

    root_disk: DiskSpec | None = Field(None, alias="rootDisk")
    data_disks: list[DiskSpec] = Field(default_factory=list, alias="dataDisks")
    network_interfaces: list[NetworkInterfaceSpec] = Field(
        default_factory=list, alias="networkInterfaces"
    )

    # Placement hints
    zone_uuid: OptionalStr = Field(
        None,
        validation_alias=AliasChoices("zoneUuid", "datacenterUuid", "zone_uuid"),
        serialization_alias="zoneUuid",
    )
    cluster_uuid: OptionalStr = Field(None, alias="clusterUuid")
    host_uuid: OptionalStr = Field(None, alias="hostUuid")

    # Runtime options
    strategy: OptionalStr = None
    never_stop: bool = Field(False, alias="neverStop")
    user_data: OptionalStr = Field(None, alias="userData")
    boot_mode: OptionalStr = Field(None, alias="bootMode")
    architecture: OptionalStr = None
    expunge: bool = False


# =============================================================================
# Stored State
# =============================================================================


class VmNicState(BaseModel):
    """A realized NIC as reported by the platform."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    uuid: str
    l3_network_uuid: str = Field(alias="l3NetworkUuid")
    ip: str | None = None
    netmask: str | None = None
    gateway: str | None = None


class VolumeState(BaseModel):
    """A realized volume. Size is in bytes."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    uuid: str
    type: str
    size: int = 0
    format: str | None = None
    primary_storage_uuid: OptionalStr = Field(None, alias="primaryStorageUuid")
    state: str | None = None
    status: str | None = None

    @property
    def size_gb(self) -> int:
        return bytes_to_gb(self.size)


class VmInstanceState(VmInstanceSpec):
    """Stored representation of a managed instance.

    Carries the desired fields (normalized against the platform) plus the
    observed fields. A uuid of None means the instance is absent and the
    next apply must create it.
    """

    uuid: str | None = None
    vm_nics: list[VmNicState] = Field(default_factory=list, alias="vmNics")
    volumes: list[VolumeState] = Field(default_factory=list)
    default_l3_network_uuid: str | None = Field(None, alias="defaultL3NetworkUuid")

    @property
    def is_present(self) -> bool:
        return bool(self.uuid)

    @classmethod
    def from_spec(cls, spec: VmInstanceSpec) -> VmInstanceState:
        """Seed a stored state from a desired spec."""
        return cls.model_validate(spec.model_dump(by_alias=True))

    def data_volumes(self) -> list[VolumeState]:
        return [v for v in self.volumes if v.type == "Data"]

    def root_volume(self) -> VolumeState | None:
        for volume in self.volumes:
            if volume.type == "Root":
                return volume
        return None

    def to_json(self) -> str:
        """Serialize deterministically for storage."""
        return self.model_dump_json(by_alias=True, indent=2)
