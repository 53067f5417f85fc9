"""Capability interfaces consumed by the sequencer.

Concrete implementations live in ``azure`` (control plane), ``keyvault``
(secrets) and ``ssh_transport`` (remote execution). Tests substitute
in-memory fakes.
"""

from abc import ABC, abstractmethod

from runnervm.provisioning.types import ExitStatus, Region, RemoteCommandBatch, VmCreateSpec


class ProvisioningClient(ABC):
    """Cloud control-plane operations used during provisioning."""

    @abstractmethod
    async def resolve_family(self, sku: str, region: Region) -> str | None:
        """VM family of *sku* in *region*, or None if it cannot be determined."""
        ...

    @abstractmethod
    async def get_quota(self, family: str, region: Region) -> tuple[int, int] | None:
        """(current_usage, limit) for *family* in *region*, or None if unknown."""
        ...

    @abstractmethod
    async def create_resource_group(self, name: str, region: Region) -> bool:
        ...

    @abstractmethod
    async def delete_resource_group(self, name: str) -> bool:
        """Request deletion without waiting for it to finish."""
        ...

    @abstractmethod
    async def resolve_subnet(self, region: Region) -> str | None:
        ...

    @abstractmethod
    async def resolve_image(self, name: str) -> str | None:
        ...

    @abstractmethod
    async def create_vm(self, spec: VmCreateSpec) -> bool:
        """Create a VM, returning once the control plane reports completion."""
        ...

    @abstractmethod
    async def get_private_address(self, name: str, resource_group: str) -> str | None:
        ...


class SecretStore(ABC):
    @abstractmethod
    async def get_secret(self, ref: str) -> str:
        """Return the secret value, raising SecretUnavailable on failure."""
        ...


class RemoteSession(ABC):
    @abstractmethod
    async def reset_trust(self, address: str) -> None:
        """Forget any known-hosts entry for *address* so trust is re-established on first use."""
        ...

    @abstractmethod
    async def run(self, address: str, credential_ref: str, batch: RemoteCommandBatch) -> ExitStatus:
        """Run *batch* on *address* as one remote invocation.

        Raises:
            ConnectionFailed: the session could not be established.
            RemoteCommandFailed: a command exited non-zero.
        """
        ...
