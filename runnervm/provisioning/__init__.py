"""VM provisioning for CI build agents: quota-aware placement, lifecycle, SSH batches."""

from runnervm.provisioning.azure import AzureCliClient
from runnervm.provisioning.cleanup import CleanupGuard
from runnervm.provisioning.errors import (
    AddressUnavailable,
    ConnectionFailed,
    InvalidSku,
    NoCapacity,
    ProvisioningError,
    RemoteCommandFailed,
    ResourceGroupCreateFailed,
    SecretUnavailable,
    VmCreateFailed,
)
from runnervm.provisioning.interfaces import ProvisioningClient, RemoteSession, SecretStore
from runnervm.provisioning.keyvault import KeyVaultSecretStore
from runnervm.provisioning.quota import LocationSelector, QuotaOracle
from runnervm.provisioning.sequencer import ProvisioningSequencer
from runnervm.provisioning.ssh import wait_for_ssh
from runnervm.provisioning.ssh_transport import SshRemoteSession
from runnervm.provisioning.types import (
    CleanupReport,
    ExitStatus,
    ProvisionedVm,
    ProvisionRequest,
    QuotaStatus,
    RemoteCommandBatch,
    RunOutcome,
    SequencerState,
    VmCreateSpec,
    VmSku,
)

__all__ = [
    "AzureCliClient",
    "KeyVaultSecretStore",
    "SshRemoteSession",
    "ProvisioningClient",
    "SecretStore",
    "RemoteSession",
    "QuotaOracle",
    "LocationSelector",
    "ProvisioningSequencer",
    "CleanupGuard",
    "wait_for_ssh",
    "VmSku",
    "QuotaStatus",
    "ProvisionRequest",
    "VmCreateSpec",
    "ProvisionedVm",
    "RemoteCommandBatch",
    "ExitStatus",
    "SequencerState",
    "CleanupReport",
    "RunOutcome",
    "ProvisioningError",
    "InvalidSku",
    "NoCapacity",
    "ResourceGroupCreateFailed",
    "VmCreateFailed",
    "AddressUnavailable",
    "SecretUnavailable",
    "ConnectionFailed",
    "RemoteCommandFailed",
]
