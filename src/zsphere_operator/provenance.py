"""Audit records for lifecycle operations.

Every create, read and delete emits exactly one structured record that
answers:
- "What happened to instance X, and when?"
- "Which operator version did it?"
- "Did it fail, and with what?"
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

# Version is set at build time or falls back to dev
OPERATOR_VERSION = os.environ.get("OPERATOR_VERSION", "dev")


@dataclass
class LifecycleProvenance:
    """Provenance record for a single lifecycle operation."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    operation: str = ""
    instance_name: str = ""
    instance_uuid: str = ""
    operator_version: str = OPERATOR_VERSION
    operator_instance_id: str = ""

    # Outcome
    final_phase: str = ""
    identity_cleared: bool = False
    data_volumes_deleted: int = 0
    expunged: bool = False

    duration_seconds: float = 0.0

    error: str | None = None
    error_type: str | None = None

    def record_error(self, error: BaseException) -> None:
        self.error = str(error)
        self.error_type = type(error).__name__

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        return result


class ProvenanceLogger:
    """Logs provenance records to the structured logger."""

    def __init__(self) -> None:
        self._instance_id = os.environ.get("OPERATOR_INSTANCE_ID", "")

    def create_provenance(
        self,
        operation: str,
        instance_name: str,
        instance_uuid: str | None = None,
    ) -> LifecycleProvenance:
        """Start a provenance record for an operation."""
        return LifecycleProvenance(
            operation=operation,
            instance_name=instance_name,
            instance_uuid=instance_uuid or "",
            operator_version=OPERATOR_VERSION,
            operator_instance_id=self._instance_id,
        )

    def log_provenance(self, provenance: LifecycleProvenance) -> None:
        """Log a completed provenance record.

        Failures log at ERROR, cleared identities at WARNING.
        """
        log_level = logging.INFO
        if provenance.error:
            log_level = logging.ERROR
        elif provenance.identity_cleared:
            log_level = logging.WARNING

        logger.log(
            log_level,
            "Lifecycle provenance",
            extra={
                "provenance": provenance.to_dict(),
                "operation": provenance.operation,
                "instance_uuid": provenance.instance_uuid,
                "final_phase": provenance.final_phase,
                "operator_version": provenance.operator_version,
                "duration_seconds": provenance.duration_seconds,
            },
        )


_provenance_logger: ProvenanceLogger | None = None


def get_provenance_logger() -> ProvenanceLogger:
    """Get the global provenance logger instance."""
    global _provenance_logger
    if _provenance_logger is None:
        _provenance_logger = ProvenanceLogger()
    return _provenance_logger
