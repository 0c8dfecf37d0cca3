"""Tests for instance lifecycle orchestration against the mock platform."""

import logging

import pytest
from zsphere_mock import MockZSphereClient

from zsphere_operator.client import Volume
from zsphere_operator.errors import (
    ConfigurationError,
    PreconditionError,
    RemoteOperationError,
)
from zsphere_operator.lifecycle import InstanceLifecycle, LifecyclePhase, place_data_disks
from zsphere_operator.models import DiskSpec, VmInstanceSpec, VmInstanceState
from zsphere_operator.provenance import ProvenanceLogger


@pytest.fixture
def lifecycle(mock_client: MockZSphereClient) -> InstanceLifecycle:
    return InstanceLifecycle(mock_client, ProvenanceLogger())


def _spec(spec_data: dict, **overrides) -> VmInstanceSpec:
    return VmInstanceSpec.model_validate({**spec_data, **overrides})


class TestCreate:
    """Tests for InstanceLifecycle.create."""

    def test_create_records_identity(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        state = lifecycle.create(_spec(spec_data))

        assert state.uuid in mock_client.inventory.instances
        assert state.is_present
        assert state.name == "web-01"
        assert state.cpu_num == 2
        assert state.memory_size == 4096
        assert state.default_l3_network_uuid == "l3-public"
        assert len(state.vm_nics) == 1
        assert state.root_volume() is not None
        assert lifecycle.phase is LifecyclePhase.PRESENT

    def test_create_records_assigned_ip(
        self, lifecycle: InstanceLifecycle, spec_data: dict
    ) -> None:
        state = lifecycle.create(_spec(spec_data))

        assert state.network_interfaces[0].static_ip == state.vm_nics[0].ip
        assert state.network_interfaces[0].default_l3 is True

    def test_create_with_static_ip(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        nics = [{"l3NetworkUuid": "l3-public", "defaultL3": True, "staticIp": "10.9.9.9"}]
        state = lifecycle.create(_spec(spec_data, networkInterfaces=nics))

        assert state.vm_nics[0].ip == "10.9.9.9"
        assert state.network_interfaces[0].static_ip == "10.9.9.9"
        assert "staticIp::l3-public::10.9.9.9" in mock_client.create_requests[0].system_tags

    def test_aarch64_image_creates_with_uefi(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        lifecycle.create(_spec(spec_data, imageUuid="img-arm"))

        assert "bootMode::UEFI" in mock_client.create_requests[0].system_tags

    def test_x86_image_creates_with_legacy(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        lifecycle.create(_spec(spec_data))

        assert "bootMode::Legacy" in mock_client.create_requests[0].system_tags

    def test_data_disk_placement_recorded(
        self, lifecycle: InstanceLifecycle, spec_data: dict
    ) -> None:
        disks = [{"size": 10, "primaryStorageUuid": "ps-ceph-1", "cephPoolName": "pool-hdd"},
                 {"size": 5}]
        state = lifecycle.create(_spec(spec_data, dataDisks=disks))

        assert [d.primary_storage_uuid for d in state.data_disks] == ["ps-ceph-1", "ps-ceph-1"]
        assert [v.size_gb for v in state.data_volumes()] == [10, 5]

    def test_invalid_strategy_makes_no_calls(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        with pytest.raises(ConfigurationError):
            lifecycle.create(_spec(spec_data, strategy="Whenever"))

        assert mock_client.call_count() == 0
        assert lifecycle.phase is LifecyclePhase.ABSENT

    def test_precondition_failure_creates_nothing(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        with pytest.raises(PreconditionError):
            lifecycle.create(_spec(spec_data, imageUuid="img-gone"))

        assert mock_client.call_count("CreateVmInstance") == 0
        assert mock_client.inventory.instances == {}

    def test_create_failure_returns_to_absent(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        mock_client.fail("CreateVmInstance", message="no host available")

        with pytest.raises(RemoteOperationError, match="no host available"):
            lifecycle.create(_spec(spec_data))

        assert lifecycle.phase is LifecyclePhase.ABSENT


class TestRead:
    """Tests for InstanceLifecycle.read."""

    def test_read_is_stable(self, lifecycle: InstanceLifecycle, spec_data: dict) -> None:
        """Two refreshes without remote changes produce identical state."""
        created = lifecycle.create(_spec(spec_data))

        first = lifecycle.read(created)
        second = lifecycle.read(first)

        assert first.to_json() == second.to_json()
        assert lifecycle.phase is LifecyclePhase.PRESENT

    def test_static_ip_kept_when_unchanged(
        self, lifecycle: InstanceLifecycle, spec_data: dict
    ) -> None:
        nics = [{"l3NetworkUuid": "l3-public", "defaultL3": True, "staticIp": "10.9.9.9"}]
        created = lifecycle.create(_spec(spec_data, networkInterfaces=nics))

        refreshed = lifecycle.read(created)

        assert refreshed.network_interfaces[0].static_ip == "10.9.9.9"
        assert refreshed.network_interfaces[0].default_l3 is True

    def test_static_ip_cleared_when_readdressed(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        nics = [{"l3NetworkUuid": "l3-public", "defaultL3": True, "staticIp": "10.9.9.9"}]
        created = lifecycle.create(_spec(spec_data, networkInterfaces=nics))
        mock_client.set_nic_ip(created.uuid, "l3-public", "10.9.9.10")

        refreshed = lifecycle.read(created)

        assert refreshed.network_interfaces[0].static_ip is None
        assert refreshed.vm_nics[0].ip == "10.9.9.10"

    def test_missing_instance_clears_uuid(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        created = lifecycle.create(_spec(spec_data))
        mock_client.remove_instance(created.uuid)

        with caplog.at_level(logging.WARNING):
            refreshed = lifecycle.read(created)

        assert refreshed.uuid is None
        assert refreshed.name == created.name
        assert lifecycle.phase is LifecyclePhase.ABSENT
        assert "may have been deleted" in caplog.text

    def test_other_errors_propagate(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        created = lifecycle.create(_spec(spec_data))
        mock_client.fail("GetVmInstance", message="unauthorized")

        with pytest.raises(RemoteOperationError, match="unauthorized"):
            lifecycle.read(created)

        assert lifecycle.phase is LifecyclePhase.PRESENT

    def test_read_without_uuid_is_noop(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        state = VmInstanceState.from_spec(_spec(spec_data))

        assert lifecycle.read(state) is state
        assert mock_client.call_count() == 0

    def test_read_reports_platform_sizing(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        created = lifecycle.create(_spec(spec_data))
        instance = mock_client.inventory.instances[created.uuid]
        instance.cpu_num = 8
        instance.memory_size = 8192 * 1024 * 1024 + 12345

        refreshed = lifecycle.read(created)

        assert refreshed.cpu_num == 8
        assert refreshed.memory_size == 8192


class TestDelete:
    """Tests for InstanceLifecycle.delete."""

    def test_delete_cascades(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        """Root plus data volumes A and B: destroy once, delete two, expunge none."""
        created = lifecycle.create(_spec(spec_data, dataDisks=[{"size": 10}, {"size": 5}]))
        mock_client.calls.clear()

        report = lifecycle.delete(created)

        assert mock_client.call_count("DestroyVmInstance") == 1
        assert mock_client.call_count("DeleteDataVolume") == 2
        assert mock_client.call_count("ExpungeVmInstance") == 0
        assert mock_client.call_count("ExpungeDataVolume") == 0
        assert report.deleted_volume_uuids == [v.uuid for v in created.data_volumes()]
        assert lifecycle.phase is LifecyclePhase.ABSENT

    def test_delete_with_expunge(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        created = lifecycle.create(_spec(spec_data, dataDisks=[{"size": 10}], expunge=True))

        report = lifecycle.delete(created)

        assert report.instance_expunged
        assert mock_client.call_count("ExpungeDataVolume") == 1
        assert created.uuid not in mock_client.inventory.instances

    def test_delete_without_uuid(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        state = VmInstanceState.from_spec(_spec(spec_data))

        assert lifecycle.delete(state) is None
        assert mock_client.call_count() == 0

    def test_delete_failure_propagates(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        created = lifecycle.create(_spec(spec_data, dataDisks=[{"size": 10}]))
        mock_client.fail("DeleteDataVolume", message="volume busy")

        with pytest.raises(RemoteOperationError, match="volume busy"):
            lifecycle.delete(created)


class TestApply:
    """Tests for InstanceLifecycle.apply."""

    def test_apply_creates_when_no_state(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        state = lifecycle.apply(_spec(spec_data))

        assert state.is_present
        assert mock_client.call_count("CreateVmInstance") == 1

    def test_apply_refreshes_existing(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        created = lifecycle.apply(_spec(spec_data))

        again = lifecycle.apply(_spec(spec_data), created)

        assert again.uuid == created.uuid
        assert mock_client.call_count("CreateVmInstance") == 1

    def test_apply_rejects_invalid_spec_for_existing_instance(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        """An edited spec is checked even when the instance only gets refreshed."""
        created = lifecycle.apply(_spec(spec_data))
        mock_client.calls.clear()

        with pytest.raises(ConfigurationError, match="strategy Later is invalid"):
            lifecycle.apply(_spec(spec_data, strategy="Later"), created)

        assert mock_client.call_count() == 0

    def test_apply_recreates_after_drift(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict
    ) -> None:
        created = lifecycle.apply(_spec(spec_data))
        mock_client.remove_instance(created.uuid)

        recreated = lifecycle.apply(_spec(spec_data), created)

        assert recreated.uuid != created.uuid
        assert mock_client.call_count("CreateVmInstance") == 2


class TestProvenance:
    """Tests for audit records emitted by lifecycle operations."""

    def test_create_emits_record(
        self, lifecycle: InstanceLifecycle, spec_data: dict, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger="zsphere_operator.provenance"):
            state = lifecycle.create(_spec(spec_data))

        records = [r for r in caplog.records if r.getMessage() == "Lifecycle provenance"]
        assert len(records) == 1
        assert records[0].provenance["operation"] == "create"
        assert records[0].provenance["instance_uuid"] == state.uuid
        assert records[0].provenance["final_phase"] == "Present"

    def test_failure_record_at_error(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        mock_client.fail("CreateVmInstance", message="quota exceeded")

        with caplog.at_level(logging.INFO, logger="zsphere_operator.provenance"):
            with pytest.raises(RemoteOperationError):
                lifecycle.create(_spec(spec_data))

        record = next(r for r in caplog.records if r.getMessage() == "Lifecycle provenance")
        assert record.levelno == logging.ERROR
        assert record.provenance["error_type"] == "RemoteOperationError"
        assert record.provenance["final_phase"] == "Absent"

    def test_identity_cleared_record_at_warning(
        self, lifecycle: InstanceLifecycle, mock_client: MockZSphereClient, spec_data: dict,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        created = lifecycle.create(_spec(spec_data))
        mock_client.remove_instance(created.uuid)

        with caplog.at_level(logging.INFO, logger="zsphere_operator.provenance"):
            lifecycle.read(created)

        record = next(r for r in caplog.records if r.getMessage() == "Lifecycle provenance")
        assert record.levelno == logging.WARNING
        assert record.provenance["identity_cleared"] is True


class TestPlaceDataDisks:
    """Tests for positional data disk placement."""

    def test_positional_onto_data_volumes(self) -> None:
        disks = [DiskSpec(size=10), DiskSpec(size=5)]
        volumes = [
            Volume(uuid="v-root", type="Root", primary_storage_uuid="ps-root"),
            Volume(uuid="v-a", type="Data", primary_storage_uuid="ps-a"),
            Volume(uuid="v-b", type="Data", primary_storage_uuid="ps-b"),
        ]

        placed = place_data_disks(disks, volumes)

        assert [d.primary_storage_uuid for d in placed] == ["ps-a", "ps-b"]
        assert [d.size for d in placed] == [10, 5]

    def test_fewer_volumes_than_disks(self) -> None:
        disks = [DiskSpec(size=10), DiskSpec(size=5)]
        volumes = [Volume(uuid="v-a", type="Data", primary_storage_uuid="ps-a")]

        placed = place_data_disks(disks, volumes)

        assert placed[1].primary_storage_uuid is None
