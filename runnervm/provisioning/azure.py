"""Azure provider: resource groups, quota lookups and VMs via the az CLI."""

import json
import logging

from runnervm.provisioning.interfaces import ProvisioningClient
from runnervm.provisioning.shell import run_shell_cmd
from runnervm.provisioning.types import VmCreateSpec

logger = logging.getLogger(__name__)

# ── Command builders ───────────────────────────────────────────────


def _az_login_cmd(client_id=None):
    """Build az command to log in with the host's managed identity."""
    cmd = ["az", "login", "--identity"]
    if client_id:
        cmd.extend(["--client-id", client_id])
    return cmd


def _az_family_cmd(sku, region):
    """Build az command to look up the VM family of a SKU in a region."""
    return [
        "az", "vm", "list-skus",
        "--size", sku,
        "--location", region,
        "--resource-type", "virtualMachines",
        "--query", "[0].family",
        "-o", "tsv",
    ]


def _az_usage_cmd(family, region):
    """Build az command to get quota usage for one VM family."""
    return [
        "az", "vm", "list-usage",
        "--location", region,
        "--query", f"[?name.value=='{family}'] | [0]",
        "-o", "json",
    ]


def _az_group_create_cmd(name, region):
    return ["az", "group", "create", "--name", name, "--location", region, "-o", "none"]


def _az_group_exists_cmd(name):
    return ["az", "group", "exists", "--name", name]


def _az_group_delete_cmd(name):
    """Build az command to delete a resource group without waiting."""
    return ["az", "group", "delete", "--name", name, "--yes", "--no-wait"]


def _az_subnet_cmd(runner_resource_group, region):
    """Build az command to list the subnets of the runner vnet in a region."""
    return [
        "az", "network", "vnet", "list",
        "--resource-group", runner_resource_group,
        "--query", f"[?location=='{region}'].{{SUBNETS:subnets}}",
        "-o", "json",
    ]


def _az_image_cmd(runner_resource_group, image_name):
    return [
        "az", "image", "show",
        "--resource-group", runner_resource_group,
        "--name", image_name,
        "--query", "id",
        "-o", "tsv",
    ]


def _az_vm_create_cmd(spec: VmCreateSpec):
    """Build az command to create a VM with a private address only."""
    return [
        "az", "vm", "create",
        "--resource-group", spec.resource_group,
        "--name", spec.name,
        "--subnet", spec.subnet_id,
        "--size", spec.sku,
        "--location", spec.region,
        "--image", spec.image_id,
        "--os-disk-size-gb", str(spec.os_disk_size_gb),
        "--public-ip-sku", spec.public_ip_sku,
        "--storage-sku", spec.storage_sku,
        "--public-ip-address", "",
        "--admin-username", spec.admin_username,
        "--ssh-key-values", spec.public_key,
        "--security-type", spec.security_type,
        "--output", "json",
    ]


def _az_private_ip_cmd(name, resource_group):
    return ["az", "vm", "show", "-g", resource_group, "-n", name, "-d", "--query", "privateIps", "-o", "tsv"]


# ── Output parsing ─────────────────────────────────────────────────


def _parse_usage(stdout):
    """Parse a single list-usage entry into (current, limit), or None."""
    text = stdout.strip()
    if not text or text == "null":
        return None
    try:
        usage = json.loads(text)
        return int(usage["currentValue"]), int(usage["limit"])
    except (ValueError, KeyError, TypeError):
        logger.warning(f"Unexpected quota usage output: {text}")
        return None


def _parse_subnet(stdout):
    """First subnet id from the vnet list output, or None."""
    try:
        vnets = json.loads(stdout or "[]")
        return vnets[0]["SUBNETS"][0]["id"] or None
    except (ValueError, LookupError, TypeError):
        return None


def _parse_private_ip(stdout):
    """First address of a possibly comma-separated privateIps value."""
    first = stdout.strip().split(",")[0].strip()
    return first or None


# ── Client ─────────────────────────────────────────────────────────


class AzureCliClient(ProvisioningClient):
    """ProvisioningClient backed by the az CLI.

    Args:
        runner_resource_group: resource group holding the runner vnets and
            the per-region images.
        timeout: per-command timeout in seconds. ``az vm create`` blocks until
            the VM exists, so this bounds the whole create.
        dry_run: log commands instead of running them; lookups return
            placeholder values so a full sequence can be rehearsed.
    """

    def __init__(self, runner_resource_group, timeout=1800, dry_run=False):
        self.runner_resource_group = runner_resource_group
        self.timeout = timeout
        self.dry_run = dry_run

    async def _run(self, cmd):
        return await run_shell_cmd(cmd, dry_run=self.dry_run, timeout=self.timeout)

    async def login(self, client_id=None):
        """Log in with the managed identity. Returns True on success."""
        logger.info("Logging into Azure CLI using managed identity")
        rc, _, stderr = await self._run(_az_login_cmd(client_id))
        if rc != 0:
            logger.error(f"az login failed: {stderr.strip()}")
            return False
        return True

    async def resolve_family(self, sku, region):
        rc, stdout, stderr = await self._run(_az_family_cmd(sku, region))
        if self.dry_run:
            return "dryRunFamily"
        if rc != 0:
            logger.warning(f"az vm list-skus failed in {region}: {stderr.strip()}")
            return None
        return stdout.strip() or None

    async def get_quota(self, family, region):
        rc, stdout, stderr = await self._run(_az_usage_cmd(family, region))
        if self.dry_run:
            return 0, 1_000_000
        if rc != 0:
            logger.warning(f"az vm list-usage failed in {region}: {stderr.strip()}")
            return None
        return _parse_usage(stdout)

    async def create_resource_group(self, name, region):
        logger.info(f"Creating resource group '{name}' in {region}...")
        rc, _, stderr = await self._run(_az_group_create_cmd(name, region))
        if rc != 0:
            logger.error(f"Failed to create resource group: {stderr.strip()}")
            return False
        logger.info("Resource group created.")
        return True

    async def resource_group_exists(self, name):
        rc, stdout, _ = await self._run(_az_group_exists_cmd(name))
        if self.dry_run:
            return True
        return rc == 0 and stdout.strip() == "true"

    async def delete_resource_group(self, name):
        if not await self.resource_group_exists(name):
            logger.info(f"Resource group '{name}' does not exist. Skipping deletion.")
            return True
        logger.info(f"Requesting deletion of resource group '{name}'...")
        rc, _, stderr = await self._run(_az_group_delete_cmd(name))
        if rc != 0:
            logger.error(f"Failed to delete resource group '{name}': {stderr.strip()}")
            return False
        return True

    async def resolve_subnet(self, region):
        rc, stdout, stderr = await self._run(_az_subnet_cmd(self.runner_resource_group, region))
        if self.dry_run:
            return f"/dry-run/{region}/subnets/default"
        if rc != 0:
            logger.error(f"az network vnet list failed: {stderr.strip()}")
            return None
        return _parse_subnet(stdout)

    async def resolve_image(self, name):
        rc, stdout, stderr = await self._run(_az_image_cmd(self.runner_resource_group, name))
        if self.dry_run:
            return f"/dry-run/images/{name}"
        if rc != 0:
            logger.error(f"az image show failed: {stderr.strip()}")
            return None
        return stdout.strip() or None

    async def create_vm(self, spec):
        logger.info(f"Creating {spec.sku} VM '{spec.name}' in {spec.region}...")
        rc, _, stderr = await self._run(_az_vm_create_cmd(spec))
        if rc != 0:
            logger.error(f"Failed to create VM: {stderr.strip()}")
            return False
        logger.info("VM created.")
        return True

    async def get_private_address(self, name, resource_group):
        rc, stdout, stderr = await self._run(_az_private_ip_cmd(name, resource_group))
        if self.dry_run:
            return "10.0.0.4"
        if rc != 0:
            logger.error(f"az vm show failed: {stderr.strip()}")
            return None
        return _parse_private_ip(stdout)
