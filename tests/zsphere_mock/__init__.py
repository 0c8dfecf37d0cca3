"""ZSphere Cloud API Mock for Testing.

In-memory implementation of the CloudApiClient contract that enables
lifecycle testing without a management node.

Key Features:
- In-memory inventory of images, primary storages, instances and volumes
- Static IP system tags honored on create, auto-allocated IPs otherwise
- Call log for ordering and count assertions
- Error injection per operation (optionally per resource UUID)

Usage:
    from zsphere_mock import MockZSphereClient

    client = MockZSphereClient()
    client.add_image()
    lifecycle = InstanceLifecycle(client)
    state = lifecycle.create(spec)

    assert client.call_count("CreateVmInstance") == 1
"""

from .resources import (
    DEFAULT_IMAGE_UUID,
    DEFAULT_PRIMARY_STORAGE_UUID,
    MockCall,
    MockFailure,
    MockInventory,
    MockZSphereClient,
)

__all__ = [
    "DEFAULT_IMAGE_UUID",
    "DEFAULT_PRIMARY_STORAGE_UUID",
    "MockCall",
    "MockFailure",
    "MockInventory",
    "MockZSphereClient",
]
