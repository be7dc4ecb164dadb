"""
Resource handler interface and capability interfaces.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from ..errors import UnsupportedOperation
from ..model import Delta, DesiredState, ResourceHandle


class ResourceHandler(ABC):
    """
    One handler per resource kind; the only code that talks to the cloud.

    list/get/create/delete are used by the inventory builder and the
    teardown scheduler; find/update are used by the reconciler.
    """

    kind: str = ""
    # Capability interfaces this handler provides, looked up by the registry.
    capabilities: Tuple[type, ...] = ()

    @abstractmethod
    def list(self, cluster_name: str) -> List[ResourceHandle]:
        """Return every live resource of this kind owned by the cluster."""

    @abstractmethod
    def get(self, resource_id: str) -> ResourceHandle:
        """
        Return the resource with this ID.

        Raises:
            NotFound: the resource does not exist or is being deleted
        """

    @abstractmethod
    def create(self, desired: DesiredState) -> ResourceHandle:
        """Create one resource from desired and wait until it is usable."""

    @abstractmethod
    def delete(self, handle: ResourceHandle) -> None:
        """
        Delete the resource and wait until it is gone.

        Raises:
            NotFound: the resource was already gone
        """

    @abstractmethod
    def find(self, desired: DesiredState) -> Optional[DesiredState]:
        """
        Look up the resource matching desired's natural key.

        Returns:
            The observed state, or None when absent
        """

    def update(self, actual: DesiredState, desired: DesiredState, delta: Delta) -> None:
        """Apply the mutable changes in delta."""
        raise UnsupportedOperation(self.kind, "update")


class PowerControl(ABC):
    """Capability: servers whose power state can be driven."""

    @abstractmethod
    def power_state(self, server_id: str) -> str:
        """Current power state; a PowerState value or a transitional state."""

    @abstractmethod
    def power_action(self, server_id: str, action) -> None:
        """Issue one PowerAction without waiting."""

    @abstractmethod
    def attached_volumes(self, server_id: str) -> List[str]:
        """IDs of volumes attached to the server."""

    @abstractmethod
    def volume_state(self, volume_id: str) -> str:
        """"available" once the volume is not in a transitional state."""
