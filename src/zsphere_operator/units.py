"""Capacity unit conversion at the API boundary.

Users speak GB (disks) and MB (memory); the platform speaks bytes.
Conversion back to user units truncates, matching the platform.
"""

from __future__ import annotations

MB = 1024 * 1024
GB = 1024 * MB


def gb_to_bytes(gb: int) -> int:
    return gb * GB


def bytes_to_gb(size: int) -> int:
    return size // GB


def mb_to_bytes(mb: int) -> int:
    return mb * MB


def bytes_to_mb(size: int) -> int:
    return size // MB
