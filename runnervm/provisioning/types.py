"""Shared data types for the provisioning sequencer."""

import enum
import os
import re
import uuid
from dataclasses import dataclass, field

from runnervm.provisioning.errors import InvalidSku

# Location identifier, e.g. "eastus".
Region = str

# "Standard_D16s_v5" -> 16, "Standard_E4ds_v5" -> 4
_SKU_CORES_RE = re.compile(r"^Standard_[A-Za-z]+(\d+)")


@dataclass(frozen=True)
class VmSku:
    """A VM size identifier with its vCPU count encoded in the name."""

    name: str

    def __post_init__(self):
        if not _SKU_CORES_RE.match(self.name):
            raise InvalidSku(self.name)

    @property
    def core_count(self) -> int:
        return int(_SKU_CORES_RE.match(self.name).group(1))

    def __str__(self):
        return self.name


@dataclass(frozen=True)
class QuotaStatus:
    """Compute quota usage for one VM family in one region."""

    family: str
    region: Region
    current_usage: int
    limit: int

    @property
    def headroom(self) -> int:
        """Remaining cores. Zero or negative when usage exceeds the limit."""
        return self.limit - self.current_usage


def _default_run_id() -> str:
    return os.environ.get("GITHUB_RUN_ID") or uuid.uuid4().hex[:8]


@dataclass(frozen=True)
class ProvisionRequest:
    """Everything needed to provision one build VM."""

    arch: str
    sku: VmSku
    os_disk_size_gb: int
    resource_group: str
    public_key_ref: str
    admin_username: str = "azureuser"
    run_id: str = field(default_factory=_default_run_id)

    def image_name(self, region: Region) -> str:
        """Per-region image prepared by the image pipeline (e.g. 'x86_64_eastus_image')."""
        return f"{self.arch}_{region}_image"

    def vm_name(self, region: Region) -> str:
        """VM name, e.g. 'x86-64-eastus-1234'. Azure Linux VM names reject underscores."""
        return f"{self.arch}-{region}-{self.run_id}".replace("_", "-")


@dataclass(frozen=True)
class VmCreateSpec:
    """Arguments for a single VM create call."""

    name: str
    resource_group: str
    region: Region
    sku: str
    subnet_id: str
    image_id: str
    os_disk_size_gb: int
    admin_username: str
    public_key: str
    public_ip_sku: str = "Standard"
    storage_sku: str = "Premium_LRS"
    security_type: str = "Standard"


@dataclass
class ProvisionedVm:
    """A VM that exists and has a private address assigned."""

    name: str
    resource_group: str
    region: Region
    private_address: str
    admin_username: str = ""

    @property
    def address(self) -> str:
        """SSH address string (user@host)."""
        return f"{self.admin_username}@{self.private_address}" if self.admin_username else self.private_address


@dataclass(frozen=True)
class RemoteCommandBatch:
    """Ordered shell commands executed as one remote invocation."""

    commands: tuple[str, ...]
    name: str = "batch"

    def __post_init__(self):
        # Accept any iterable (lists from YAML) but store a tuple.
        object.__setattr__(self, "commands", tuple(self.commands))


@dataclass(frozen=True)
class ExitStatus:
    exit_code: int
    output: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class SequencerState(enum.Enum):
    IDLE = "idle"
    LOCATION_SELECTED = "location_selected"
    RESOURCE_GROUP_READY = "resource_group_ready"
    VM_CREATED = "vm_created"
    ADDRESS_RESOLVED = "address_resolved"
    HANDED_OFF = "handed_off"
    TORN_DOWN = "torn_down"
    FAILED = "failed"


@dataclass
class CleanupReport:
    """What a CleanupGuard release actually did."""

    resource_group: str | None
    resource_group_deleted: bool = False
    credentials_removed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.errors


@dataclass
class RunOutcome:
    """Boolean result of a whole provision/build/teardown run plus a reason."""

    success: bool
    reason: str
    private_address: str = ""
