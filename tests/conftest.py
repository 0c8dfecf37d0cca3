"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for zsphere_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from zsphere_mock import MockZSphereClient  # noqa: E402


@pytest.fixture
def mock_client() -> MockZSphereClient:
    """Mock client seeded with a ready x86_64 image and two primary storages."""
    client = MockZSphereClient()
    client.add_image()
    client.add_image("img-arm", architecture="aarch64")
    client.add_primary_storage()
    client.add_primary_storage("ps-ceph-1", pools=["pool-ssd", "pool-hdd"])
    return client


@pytest.fixture
def spec_data() -> dict:
    """Minimal valid spec in YAML/camelCase form."""
    return {
        "name": "web-01",
        "imageUuid": "img-centos-x86",
        "cpuNum": 2,
        "memorySize": 4096,
        "networkInterfaces": [
            {"l3NetworkUuid": "l3-public", "defaultL3": True},
        ],
    }
