"""Lifecycle orchestration for a single VM instance.

Sequences Create / Read / Delete and owns normalization of the platform's
responses into stored state:

    Absent -> Creating -> Present -> Refreshing -> Present | Absent
                          Present -> Deleting   -> Absent

"Present" means the create call returned, not that the guest has booted.
Nothing here polls, retries or locks; the caller serializes operations on
one instance.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum

from .client import CloudApiClient, CreateVmInstanceRequest, VmInstance, Volume
from .deletion import CascadingDeletionPlanner, DeletionReport
from .errors import NotFoundDrift, ResourceNotFoundError
from .models import DiskSpec, VmInstanceSpec, VmInstanceState, VolumeState
from .nic_reconciler import (
    build_vm_nics,
    merge_created_interfaces,
    reconcile_network_interfaces,
)
from .provenance import LifecycleProvenance, ProvenanceLogger, get_provenance_logger
from .request_builder import ProvisioningRequestBuilder, validate_spec
from .units import bytes_to_mb

logger = logging.getLogger(__name__)


class LifecyclePhase(str, Enum):
    """Lifecycle phases of a managed instance."""

    ABSENT = "Absent"
    CREATING = "Creating"
    PRESENT = "Present"
    REFRESHING = "Refreshing"
    DELETING = "Deleting"


def build_volumes(volumes: list[Volume]) -> list[VolumeState]:
    return [
        VolumeState(
            uuid=volume.uuid,
            type=volume.type,
            size=volume.size,
            format=volume.format,
            primary_storage_uuid=volume.primary_storage_uuid,
            state=volume.state,
            status=volume.status,
        )
        for volume in volumes
    ]


def place_data_disks(disks: list[DiskSpec], volumes: list[Volume]) -> list[DiskSpec]:
    """Copy realized storage placement onto configured data disks.

    Correspondence is positional: the i-th configured disk takes the i-th
    realized Data volume. The platform carries no per-disk correlation key.
    """
    data_volumes = [volume for volume in volumes if volume.type == "Data"]
    placed: list[DiskSpec] = []
    for index, disk in enumerate(disks):
        if index < len(data_volumes):
            disk = disk.model_copy(
                update={"primary_storage_uuid": data_volumes[index].primary_storage_uuid}
            )
        placed.append(disk)
    return placed


class InstanceLifecycle:
    """Create, refresh and delete one VM instance through an injected client."""

    def __init__(
        self,
        client: CloudApiClient,
        provenance_logger: ProvenanceLogger | None = None,
    ) -> None:
        self._client = client
        self._builder = ProvisioningRequestBuilder(client)
        self._deletion = CascadingDeletionPlanner(client)
        self._provenance = provenance_logger or get_provenance_logger()
        self._phase = LifecyclePhase.ABSENT

    @property
    def phase(self) -> LifecyclePhase:
        return self._phase

    def plan(self, spec: VmInstanceSpec) -> CreateVmInstanceRequest:
        """Build the provisioning request without creating anything."""
        return self._builder.build(spec)

    def create(self, spec: VmInstanceSpec) -> VmInstanceState:
        """Provision the instance and return its normalized stored state.

        Raises:
            ConfigurationError: Spec is invalid; no remote call was made.
            PreconditionError: Image or storage lookups failed a precondition.
            RemoteOperationError: The create call failed; no state is recorded.
        """
        with self._track("create", spec.name) as provenance:
            self._phase = LifecyclePhase.CREATING
            try:
                request = self._builder.build(spec)
                instance = self._client.create_vm_instance(request)
            except Exception:
                self._phase = LifecyclePhase.ABSENT
                raise

            state = self._normalize_created(spec, instance)
            provenance.instance_uuid = instance.uuid
            self._phase = LifecyclePhase.PRESENT

            logger.info(
                "Created VM instance",
                extra={"instance_uuid": instance.uuid, "instance_name": instance.name},
            )
            return state

    def read(self, state: VmInstanceState) -> VmInstanceState:
        """Refresh stored state from the platform.

        A missing instance is not an error: the returned state has its uuid
        cleared, telling the caller to re-create on the next apply.

        Raises:
            RemoteOperationError: The lookup failed for a reason other than
                the instance being gone.
        """
        if not state.is_present:
            logger.debug("VM instance not yet created, nothing to refresh")
            self._phase = LifecyclePhase.ABSENT
            return state

        with self._track("read", state.name, state.uuid) as provenance:
            self._phase = LifecyclePhase.REFRESHING
            try:
                instance = self._fetch(state.uuid)
            except NotFoundDrift as drift:
                logger.warning(
                    "Cannot read VM instance, it may have been deleted; clearing uuid",
                    extra={"instance_uuid": drift.instance_uuid},
                )
                provenance.identity_cleared = True
                self._phase = LifecyclePhase.ABSENT
                return state.model_copy(update={"uuid": None})
            except Exception:
                self._phase = LifecyclePhase.PRESENT
                raise

            refreshed = self._normalize_observed(state, instance)
            self._phase = LifecyclePhase.PRESENT
            return refreshed

    def delete(self, state: VmInstanceState) -> DeletionReport | None:
        """Tear down the instance and its data volumes.

        Returns:
            The deletion report, or None when there was nothing to delete.

        Raises:
            RemoteOperationError: On the first failing teardown call. Calls
                already issued are not rolled back.
        """
        if not state.is_present:
            logger.warning("VM uuid is empty, nothing to delete")
            self._phase = LifecyclePhase.ABSENT
            return None

        with self._track("delete", state.name, state.uuid) as provenance:
            self._phase = LifecyclePhase.DELETING
            report = self._deletion.delete(state.uuid, expunge=state.expunge)
            provenance.data_volumes_deleted = len(report.deleted_volume_uuids)
            provenance.expunged = report.instance_expunged
            self._phase = LifecyclePhase.ABSENT
            return report

    def apply(
        self, spec: VmInstanceSpec, state: VmInstanceState | None = None
    ) -> VmInstanceState:
        """Create when absent, otherwise refresh.

        Updating a live instance in place is not supported, so an existing
        instance is only refreshed. The spec is still checked statically
        either way.

        Raises:
            ConfigurationError: The spec is invalid; no remote call was made.
        """
        validate_spec(spec)

        if state is not None and state.is_present:
            refreshed = self.read(state)
            if refreshed.is_present:
                return refreshed
            logger.info(
                "Stored VM instance is gone, re-creating",
                extra={"instance_name": spec.name},
            )
        return self.create(spec)

    def _fetch(self, instance_uuid: str) -> VmInstance:
        try:
            return self._client.get_vm_instance(instance_uuid)
        except ResourceNotFoundError as e:
            raise NotFoundDrift(instance_uuid) from e

    def _normalize_created(self, spec: VmInstanceSpec, instance: VmInstance) -> VmInstanceState:
        state = VmInstanceState.from_spec(spec)
        return state.model_copy(
            update={
                "uuid": instance.uuid,
                "name": instance.name or spec.name,
                "description": instance.description or None,
                "memory_size": bytes_to_mb(instance.memory_size) or None,
                "cpu_num": instance.cpu_num or None,
                "network_interfaces": merge_created_interfaces(
                    spec.network_interfaces, instance.vm_nics
                ),
                "data_disks": place_data_disks(spec.data_disks, instance.all_volumes),
                "vm_nics": build_vm_nics(instance.vm_nics),
                "volumes": build_volumes(instance.all_volumes),
                "default_l3_network_uuid": instance.default_l3_network_uuid or None,
            }
        )

    def _normalize_observed(
        self, state: VmInstanceState, instance: VmInstance
    ) -> VmInstanceState:
        return state.model_copy(
            update={
                "uuid": instance.uuid,
                "name": instance.name or state.name,
                "description": instance.description or None,
                "image_uuid": instance.image_uuid or state.image_uuid,
                "memory_size": bytes_to_mb(instance.memory_size) or None,
                "cpu_num": instance.cpu_num or None,
                "network_interfaces": reconcile_network_interfaces(
                    state.network_interfaces,
                    instance.vm_nics,
                    instance.default_l3_network_uuid,
                ),
                "vm_nics": build_vm_nics(instance.vm_nics),
                "volumes": build_volumes(instance.all_volumes),
                "default_l3_network_uuid": instance.default_l3_network_uuid or None,
            }
        )

    @contextmanager
    def _track(
        self,
        operation: str,
        instance_name: str,
        instance_uuid: str | None = None,
    ) -> Iterator[LifecycleProvenance]:
        provenance = self._provenance.create_provenance(operation, instance_name, instance_uuid)
        start = time.monotonic()
        try:
            yield provenance
        except Exception as e:
            provenance.record_error(e)
            raise
        finally:
            provenance.final_phase = self._phase.value
            provenance.duration_seconds = time.monotonic() - start
            self._provenance.log_provenance(provenance)
