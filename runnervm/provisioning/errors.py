"""Failure taxonomy for provisioning and remote execution."""


class ProvisioningError(Exception):
    """Base class. ``reason`` is the operator-facing failure string."""

    prefix = "provisioning failed"

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    @property
    def reason(self) -> str:
        return f"{self.prefix}: {self.message}"


class InvalidSku(ProvisioningError, ValueError):
    prefix = "invalid sku"

    def __init__(self, sku):
        super().__init__(f"cannot extract vCPU count from SKU '{sku}'")
        self.sku = sku


class NoCapacity(ProvisioningError):
    prefix = "no capacity"

    def __init__(self, sku, candidates=()):
        where = ", ".join(candidates) if candidates else "no candidate regions"
        super().__init__(f"no location with sufficient vCPU quota for SKU {sku} (tried: {where})")
        self.sku = sku
        self.candidates = tuple(candidates)


class ResourceGroupCreateFailed(ProvisioningError):
    prefix = "resource group create failed"


class VmCreateFailed(ProvisioningError):
    prefix = "vm create failed"


class AddressUnavailable(ProvisioningError):
    prefix = "address unavailable"


class SecretUnavailable(ProvisioningError):
    prefix = "secret unavailable"


class ConnectionFailed(ProvisioningError):
    prefix = "connection failed"


class RemoteCommandFailed(ProvisioningError):
    """A command in a remote batch exited non-zero; later commands did not run."""

    prefix = "remote command failed"

    def __init__(self, exit_code, command=None, index=None, output=""):
        where = f"command {index + 1} ({command!r})" if index is not None else "remote batch"
        super().__init__(f"{where} exited with status {exit_code}")
        self.exit_code = exit_code
        self.command = command
        self.index = index
        self.output = output
