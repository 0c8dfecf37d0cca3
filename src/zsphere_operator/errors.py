"""Error taxonomy for the instance lifecycle.

Errors are grouped by when they can be detected:
- ConfigurationError: from the desired spec alone, before any remote call
- PreconditionError: from remote lookups that gate provisioning
- RemoteOperationError: a Cloud API call itself failed
- NotFoundDrift: refresh found the instance gone (not a failure)
"""

from __future__ import annotations


class ConfigurationError(Exception):
    """Raised when desired state or operator configuration is invalid."""

    pass


class PreconditionError(Exception):
    """Raised when a remote precondition for provisioning is not met."""

    pass


class StoragePlacementError(ConfigurationError, PreconditionError):
    """Raised when a referenced primary storage or Ceph pool does not exist.

    The reference is user configuration, but it can only be checked against
    the platform, so it is both kinds of error.
    """

    pass


class RemoteOperationError(Exception):
    """Raised when a Cloud API call fails.

    Attributes:
        operation: Name of the client operation (e.g. "DestroyVmInstance").
        resource_uuid: Resource the call targeted, if any.
    """

    def __init__(
        self,
        operation: str,
        message: str,
        resource_uuid: str | None = None,
    ) -> None:
        self.operation = operation
        self.resource_uuid = resource_uuid
        target = f" [{resource_uuid}]" if resource_uuid else ""
        super().__init__(f"{operation}{target} failed: {message}")


class ResourceNotFoundError(RemoteOperationError):
    """Raised by the client when the requested resource does not exist."""

    pass


class NotFoundDrift(Exception):
    """Signal that a stored instance no longer exists on the platform.

    Used inside the refresh path to clear local identity. Not a real error.
    """

    def __init__(self, instance_uuid: str) -> None:
        self.instance_uuid = instance_uuid
        super().__init__(f"VM instance {instance_uuid} not found on platform")
