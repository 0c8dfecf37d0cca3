"""Primary storage placement checks for root and data disks."""

from __future__ import annotations

import logging

from .client import CloudApiClient, QueryParam
from .errors import StoragePlacementError
from .models import DiskSpec

logger = logging.getLogger(__name__)


def validate_disk_placement(client: CloudApiClient, disk: DiskSpec) -> None:
    """Confirm a disk's primary storage (and Ceph pool) exist and are usable.

    No-op when the disk names no primary storage. The pool name is only
    checked when a primary storage is given.

    Raises:
        StoragePlacementError: If the storage is missing, not Enabled, or
            does not report the requested pool.
        RemoteOperationError: If the storage query itself fails.
    """
    storage_uuid = disk.primary_storage_uuid
    if not storage_uuid:
        return

    query = QueryParam().add_q(f"uuid={storage_uuid}").add_q("state=Enabled").with_limit(1)
    storages = client.query_primary_storage(query)

    if not storages:
        raise StoragePlacementError(
            f"Unable to find enabled primary storage {storage_uuid}"
        )

    pool_name = disk.ceph_pool_name
    if pool_name and not storages[0].has_pool(pool_name):
        raise StoragePlacementError(
            f"Unable to find pool name {pool_name} on primary storage {storage_uuid}"
        )

    logger.debug(
        "Disk placement validated",
        extra={"primary_storage_uuid": storage_uuid, "ceph_pool_name": pool_name},
    )
