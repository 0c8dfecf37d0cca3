"""Cascading deletion of an instance and its data volumes.

ORDER:
1. Read the instance and collect its Data volume UUIDs (Root goes with the VM)
2. Destroy the instance (Permissive)
3. Delete each data volume (Permissive), in volume order
4. If expunge is requested: expunge the instance, then each data volume

The first failing call aborts the sequence and propagates. There is no
rollback; a partially torn-down instance is left for the next attempt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .client import CloudApiClient, DeleteMode
from .errors import ResourceNotFoundError

logger = logging.getLogger(__name__)

DATA_VOLUME_TYPE = "Data"


@dataclass(frozen=True)
class DeletionPlan:
    """What will be removed, in order."""

    instance_uuid: str
    data_volume_uuids: tuple[str, ...] = ()
    expunge: bool = False
    already_deleted: bool = False


@dataclass
class DeletionReport:
    """Calls issued while executing a plan, in order."""

    instance_uuid: str
    instance_destroyed: bool = False
    deleted_volume_uuids: list[str] = field(default_factory=list)
    instance_expunged: bool = False
    expunged_volume_uuids: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.instance_destroyed


class CascadingDeletionPlanner:
    """Plans and executes ordered teardown for one instance."""

    def __init__(self, client: CloudApiClient) -> None:
        self._client = client

    def plan(self, instance_uuid: str, expunge: bool = False) -> DeletionPlan:
        """Read the instance and enumerate dependent data volumes.

        An instance that no longer exists yields an already-deleted plan.
        """
        try:
            instance = self._client.get_vm_instance(instance_uuid)
        except ResourceNotFoundError:
            logger.warning(
                "VM instance already gone, nothing to delete",
                extra={"instance_uuid": instance_uuid},
            )
            return DeletionPlan(instance_uuid=instance_uuid, expunge=expunge, already_deleted=True)

        volume_uuids = tuple(
            volume.uuid for volume in instance.all_volumes if volume.type == DATA_VOLUME_TYPE
        )
        return DeletionPlan(
            instance_uuid=instance_uuid,
            data_volume_uuids=volume_uuids,
            expunge=expunge,
        )

    def execute(self, plan: DeletionPlan) -> DeletionReport:
        """Issue the delete calls for a plan.

        Raises:
            RemoteOperationError: On the first failing call.
        """
        report = DeletionReport(instance_uuid=plan.instance_uuid)
        if plan.already_deleted:
            return report

        logger.info(
            "Deleting VM instance",
            extra={
                "instance_uuid": plan.instance_uuid,
                "data_volume_count": len(plan.data_volume_uuids),
                "expunge": plan.expunge,
            },
        )

        self._client.destroy_vm_instance(plan.instance_uuid, DeleteMode.PERMISSIVE)
        report.instance_destroyed = True

        for volume_uuid in plan.data_volume_uuids:
            self._client.delete_data_volume(volume_uuid, DeleteMode.PERMISSIVE)
            report.deleted_volume_uuids.append(volume_uuid)

        if not plan.expunge:
            return report

        logger.info("Expunging VM instance", extra={"instance_uuid": plan.instance_uuid})
        self._client.expunge_vm_instance(plan.instance_uuid)
        report.instance_expunged = True

        for volume_uuid in plan.data_volume_uuids:
            self._client.expunge_data_volume(volume_uuid)
            report.expunged_volume_uuids.append(volume_uuid)

        return report

    def delete(self, instance_uuid: str, expunge: bool = False) -> DeletionReport:
        """Plan and execute in one step."""
        return self.execute(self.plan(instance_uuid, expunge=expunge))
