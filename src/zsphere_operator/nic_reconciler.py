"""Network interface reconciliation between desired and observed NICs.

The platform does not echo static IP intent back. Intent is reconstructed
by comparing the IP previously stored for a network with the IP the
platform now reports on that network:

- same IP  -> still pinned, keep it
- otherwise -> not pinned, report None (even if the platform IP is stable)
"""

from __future__ import annotations

from .client import VmNic
from .models import NetworkInterfaceSpec, VmNicState


def remembered_static_ips(interfaces: list[NetworkInterfaceSpec]) -> dict[str, str]:
    """Collect stored static IPs keyed by L3 network UUID."""
    return {nic.l3_network_uuid: nic.static_ip for nic in interfaces if nic.static_ip}


def reconcile_network_interfaces(
    previous: list[NetworkInterfaceSpec],
    observed: list[VmNic],
    default_l3_network_uuid: str | None,
) -> list[NetworkInterfaceSpec]:
    """Rebuild the desired-shape NIC list from what the platform reports.

    Args:
        previous: NIC entries from the last stored state.
        observed: NICs currently realized on the instance.
        default_l3_network_uuid: The platform's default-route network.

    Returns:
        One entry per observed NIC, in platform order.
    """
    remembered = remembered_static_ips(previous)

    reconciled: list[NetworkInterfaceSpec] = []
    for nic in observed:
        pinned = remembered.get(nic.l3_network_uuid)
        reconciled.append(
            NetworkInterfaceSpec(
                l3_network_uuid=nic.l3_network_uuid,
                default_l3=bool(default_l3_network_uuid)
                and nic.l3_network_uuid == default_l3_network_uuid,
                static_ip=pinned if pinned is not None and pinned == nic.ip else None,
            )
        )
    return reconciled


def merge_created_interfaces(
    requested: list[NetworkInterfaceSpec],
    realized: list[VmNic],
) -> list[NetworkInterfaceSpec]:
    """Fill in realized IPs for requested NICs right after creation.

    Requested order and default flags are kept. A NIC without a requested
    static IP records the IP the platform assigned on the same network.
    """
    merged: list[NetworkInterfaceSpec] = []
    for nic in requested:
        realized_ip = next(
            (vm_nic.ip for vm_nic in realized if vm_nic.l3_network_uuid == nic.l3_network_uuid),
            None,
        )
        merged.append(
            nic.model_copy(update={"static_ip": nic.static_ip or realized_ip or None})
        )
    return merged


def build_vm_nics(realized: list[VmNic]) -> list[VmNicState]:
    """Copy realized NICs into stored form."""
    return [
        VmNicState(
            uuid=nic.uuid,
            l3_network_uuid=nic.l3_network_uuid,
            ip=nic.ip or None,
            netmask=nic.netmask or None,
            gateway=nic.gateway or None,
        )
        for nic in realized
    ]
