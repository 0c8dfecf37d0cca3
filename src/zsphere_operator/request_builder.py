"""Provisioning request builder.

Turns a desired VmInstanceSpec into the exact CreateVmInstance parameters
and system tags the platform expects.

ORDERING:
1. Static validation of the instance spec (no remote calls, ConfigurationError)
2. Image lookup (PreconditionError unless Ready and Enabled)
3. Disk placement lookups (StoragePlacementError)
4. Request assembly

Nothing here mutates remote state, so any failure leaves the platform
untouched.
"""

from __future__ import annotations

import logging
from enum import Enum

from .client import (
    SYSTEM_TAG_BOOT_MODE_LEGACY,
    SYSTEM_TAG_BOOT_MODE_UEFI,
    SYSTEM_TAG_NEVER_STOP,
    SYSTEM_TAG_VIRTIO_SCSI,
    CloudApiClient,
    CreateVmInstanceRequest,
    Image,
    InstanceStrategy,
    data_pool_tag,
    root_pool_tag,
    static_ip_tag,
    user_data_tag,
)
from .disk_validator import validate_disk_placement
from .errors import ConfigurationError, PreconditionError, ResourceNotFoundError
from .models import DiskSpec, VmInstanceSpec
from .units import gb_to_bytes, mb_to_bytes

logger = logging.getLogger(__name__)

VALID_STRATEGIES: frozenset[str] = frozenset(s.value for s in InstanceStrategy)

# Architectures that boot UEFI when no boot mode is given
UEFI_DEFAULT_ARCHITECTURES: frozenset[str] = frozenset({"aarch64"})

IMAGE_READY_STATUS = "Ready"
IMAGE_ENABLED_STATE = "Enabled"


class BootMode(str, Enum):
    """Firmware boot modes."""

    UEFI = "UEFI"
    LEGACY = "Legacy"

    @property
    def system_tag(self) -> str:
        if self is BootMode.UEFI:
            return SYSTEM_TAG_BOOT_MODE_UEFI
        return SYSTEM_TAG_BOOT_MODE_LEGACY


def parse_boot_mode(value: str | None) -> BootMode | None:
    """Parse a user boot mode string, case-insensitively.

    Raises:
        ConfigurationError: If the value is neither "uefi" nor "legacy".
    """
    if value is None:
        return None

    normalized = value.strip().lower()
    for mode in BootMode:
        if mode.value.lower() == normalized:
            return mode
    raise ConfigurationError(f"invalid boot mode: {value}")


def resolve_boot_mode(requested: str | None, architecture: str | None) -> BootMode:
    """Pick the boot mode: explicit request wins, else derive from architecture."""
    mode = parse_boot_mode(requested)
    if mode is not None:
        return mode
    if architecture in UEFI_DEFAULT_ARCHITECTURES:
        return BootMode.UEFI
    return BootMode.LEGACY


def validate_spec(spec: VmInstanceSpec) -> None:
    """Run every check that needs only the instance spec itself.

    All violations are collected and raised together.

    Raises:
        ConfigurationError: If any static check fails.
    """
    errors: list[str] = []

    if spec.strategy is not None and spec.strategy not in VALID_STRATEGIES:
        errors.append(
            f"strategy {spec.strategy} is invalid, valid value is "
            f"{' or '.join(sorted(VALID_STRATEGIES))}"
        )

    try:
        parse_boot_mode(spec.boot_mode)
    except ConfigurationError as e:
        errors.append(str(e))

    if not spec.network_interfaces:
        errors.append(
            "networkInterfaces cannot be null or empty. "
            "At least one L3 network must be specified."
        )

    defaults = [nic.l3_network_uuid for nic in spec.network_interfaces if nic.default_l3]
    if len(defaults) > 1:
        errors.append(
            f"only one network interface may be defaultL3, got {len(defaults)}: {defaults}"
        )

    for index, disk in enumerate(spec.data_disks):
        if disk.size is None:
            errors.append(f"dataDisks[{index}].size is required")

    if errors:
        error_msg = "Instance spec validation failed:\n  - " + "\n  - ".join(errors)
        raise ConfigurationError(error_msg)


class ProvisioningRequestBuilder:
    """Builds CreateVmInstance requests from desired state.

    The client is used only for read-only lookups (image, primary storage).
    """

    def __init__(self, client: CloudApiClient) -> None:
        self._client = client

    def build(self, spec: VmInstanceSpec) -> CreateVmInstanceRequest:
        """Validate the instance spec and assemble the provisioning request.

        Raises:
            ConfigurationError: On any static spec violation.
            PreconditionError: If the image is missing or not usable.
            StoragePlacementError: If a referenced storage or pool is missing.
            RemoteOperationError: If a lookup call fails.
        """
        validate_spec(spec)

        image = self._lookup_image(spec.image_uuid)

        system_tags: list[str] = []

        boot_mode = resolve_boot_mode(spec.boot_mode, spec.architecture or image.architecture)
        system_tags.append(boot_mode.system_tag)

        root_disk_size, root_storage_uuid, root_volume_tags = self._root_disk(spec.root_disk)
        data_disk_sizes, data_storage_uuid, data_volume_tags = self._data_disks(spec.data_disks)

        l3_network_uuids: list[str] = []
        default_l3_uuid: str | None = None
        for nic in spec.network_interfaces:
            l3_network_uuids.append(nic.l3_network_uuid)
            if nic.default_l3:
                default_l3_uuid = nic.l3_network_uuid
            if nic.static_ip:
                system_tags.append(static_ip_tag(nic.l3_network_uuid, nic.static_ip))

        if spec.never_stop:
            system_tags.append(SYSTEM_TAG_NEVER_STOP)

        if spec.user_data:
            system_tags.append(user_data_tag(spec.user_data))

        request = CreateVmInstanceRequest(
            name=spec.name,
            image_uuid=spec.image_uuid,
            description=spec.description,
            l3_network_uuids=l3_network_uuids,
            default_l3_network_uuid=default_l3_uuid,
            root_disk_size=root_disk_size,
            primary_storage_uuid_for_root_volume=root_storage_uuid,
            data_disk_sizes=data_disk_sizes,
            primary_storage_uuid_for_data_volume=data_storage_uuid,
            zone_uuid=spec.zone_uuid,
            cluster_uuid=spec.cluster_uuid,
            host_uuid=spec.host_uuid,
            strategy=spec.strategy,
            memory_size=mb_to_bytes(spec.memory_size) if spec.memory_size is not None else None,
            cpu_num=spec.cpu_num,
            root_volume_system_tags=root_volume_tags,
            data_volume_system_tags=data_volume_tags,
            system_tags=system_tags,
        )

        logger.info(
            "Built provisioning request",
            extra={
                "instance_name": spec.name,
                "image_uuid": spec.image_uuid,
                "boot_mode": boot_mode.value,
                "l3_network_count": len(l3_network_uuids),
                "data_disk_count": len(data_disk_sizes),
            },
        )
        return request

    def _lookup_image(self, image_uuid: str) -> Image:
        try:
            image = self._client.get_image(image_uuid)
        except ResourceNotFoundError as e:
            raise PreconditionError(f"failed to find image {image_uuid}: {e}") from e

        if image.status != IMAGE_READY_STATUS:
            raise PreconditionError(
                f"image {image_uuid} Status is {image.status}, not {IMAGE_READY_STATUS}"
            )
        if image.state != IMAGE_ENABLED_STATE:
            raise PreconditionError(
                f"image {image_uuid} State is {image.state}, not {IMAGE_ENABLED_STATE}"
            )
        return image

    def _root_disk(self, disk: DiskSpec | None) -> tuple[int | None, str | None, list[str]]:
        if disk is None:
            return None, None, []

        validate_disk_placement(self._client, disk)

        tags: list[str] = []
        if disk.ceph_pool_name:
            tags.append(root_pool_tag(disk.ceph_pool_name))
        if disk.virtio_scsi:
            tags.append(SYSTEM_TAG_VIRTIO_SCSI)

        size = gb_to_bytes(disk.size) if disk.size is not None else None
        return size, disk.primary_storage_uuid, tags

    def _data_disks(self, disks: list[DiskSpec]) -> tuple[list[int], str | None, list[str]]:
        if not disks:
            return [], None, []

        # Sizes are guaranteed by validate_spec
        sizes = [gb_to_bytes(disk.size or 0) for disk in disks]

        # Only one kind of data disk is supported: placement, pool and
        # controller come from the first entry and apply to every data volume.
        # virtioScsi on a later entry is ignored, it does not turn the tag on.
        first = disks[0]
        validate_disk_placement(self._client, first)

        tags: list[str] = []
        if first.ceph_pool_name:
            tags.append(data_pool_tag(first.ceph_pool_name))
        if first.virtio_scsi:
            tags.append(SYSTEM_TAG_VIRTIO_SCSI)

        return sizes, first.primary_storage_uuid, tags
