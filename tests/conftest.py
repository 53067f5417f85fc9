"""Shared pytest fixtures and in-memory fakes for the capability interfaces."""

import os
import subprocess
import sys

import pytest
import yaml

from runnervm.provisioning.errors import RemoteCommandFailed, SecretUnavailable
from runnervm.provisioning.interfaces import ProvisioningClient, RemoteSession, SecretStore
from runnervm.provisioning.types import ExitStatus, ProvisionRequest, VmSku

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))


# ── Fakes ───────────────────────────────────────────────────────────


class FakeProvisioningClient(ProvisioningClient):
    """Scriptable control plane that records every call.

    Args:
        families: region -> family (missing region = unresolvable).
        quotas: region -> (current, limit).
        fail: set of operation names that should report failure
            ("create_resource_group", "create_vm", "delete_resource_group").
    """

    def __init__(self, families=None, quotas=None, fail=(), subnet="subnet-1", image="image-1", address="10.1.0.4"):
        self.families = families or {}
        self.quotas = quotas or {}
        self.fail = set(fail)
        self.subnet = subnet
        self.image = image
        self.address = address
        self.calls = []

    def names(self):
        return [c[0] for c in self.calls]

    def count(self, name):
        return self.names().count(name)

    async def resolve_family(self, sku, region):
        self.calls.append(("resolve_family", sku, region))
        return self.families.get(region)

    async def get_quota(self, family, region):
        self.calls.append(("get_quota", family, region))
        return self.quotas.get(region)

    async def create_resource_group(self, name, region):
        self.calls.append(("create_resource_group", name, region))
        return "create_resource_group" not in self.fail

    async def delete_resource_group(self, name):
        self.calls.append(("delete_resource_group", name))
        return "delete_resource_group" not in self.fail

    async def resolve_subnet(self, region):
        self.calls.append(("resolve_subnet", region))
        return self.subnet

    async def resolve_image(self, name):
        self.calls.append(("resolve_image", name))
        return self.image

    async def create_vm(self, spec):
        self.calls.append(("create_vm", spec))
        return "create_vm" not in self.fail

    async def get_private_address(self, name, resource_group):
        self.calls.append(("get_private_address", name, resource_group))
        return self.address


class FakeSecretStore(SecretStore):
    def __init__(self, secrets=None):
        self.secrets = secrets if secrets is not None else {"pub-key": "ssh-rsa AAAA test@ci", "priv-key": "PRIVATE"}
        self.requested = []

    async def get_secret(self, ref):
        self.requested.append(ref)
        if ref not in self.secrets:
            raise SecretUnavailable(f"no secret '{ref}'")
        return self.secrets[ref]


class FakeRemoteSession(RemoteSession):
    """Runs batches in memory; *exit_codes* maps command -> status (default 0)."""

    def __init__(self, exit_codes=None):
        self.exit_codes = exit_codes or {}
        self.executed = []
        self.trust_reset = []
        self.batches = []

    async def reset_trust(self, address):
        self.trust_reset.append(address)

    async def run(self, address, credential_ref, batch):
        self.batches.append((address, credential_ref, batch))
        for index, command in enumerate(batch.commands):
            self.executed.append(command)
            status = self.exit_codes.get(command, 0)
            if status != 0:
                raise RemoteCommandFailed(status, command=command, index=index, output=f"{command}: failed")
        return ExitStatus(exit_code=0)


# ── Fixtures ────────────────────────────────────────────────────────


@pytest.fixture
def make_client():
    return FakeProvisioningClient


@pytest.fixture
def make_secrets():
    return FakeSecretStore


@pytest.fixture
def secrets():
    return FakeSecretStore()


@pytest.fixture
def make_remote():
    return FakeRemoteSession


@pytest.fixture
def remote():
    return FakeRemoteSession()


@pytest.fixture
def request_4_cores():
    """Request for a 4-core SKU in resource group CI-42."""
    return ProvisionRequest(
        arch="x86_64",
        sku=VmSku("Standard_D4s_v5"),
        os_disk_size_gb=512,
        resource_group="CI-42",
        public_key_ref="pub-key",
        admin_username="builder",
        run_id="42",
    )


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def run_cli(project_root):
    """Return a callable that invokes the runnervm CLI as a subprocess."""

    def _run(*args, env=None):
        result = subprocess.run(
            [sys.executable, "-m", "runnervm.runnervm", *args],
            capture_output=True,
            text=True,
            cwd=project_root,
            env={**os.environ, **(env or {})},
        )
        return result.returncode, result.stdout, result.stderr

    return _run


@pytest.fixture
def config_file(tmp_path):
    """Write a runnervm.yaml with two regions and return its path."""
    config = {
        "azure": {
            "runner_resource_group": "ci-runners",
            "key_vault": "ci-vault",
            "admin_username": "builder",
        },
        "regions": {
            "eastus": "https://acct.blob.core.windows.net/vhds",
            "westus": "https://acct.blob.core.windows.net/vhds",
        },
        "secrets": {"public_key": "pub-key", "private_key": "priv-key"},
    }
    path = tmp_path / "runnervm.yaml"
    path.write_text(yaml.dump(config, sort_keys=False))
    return str(path)


@pytest.fixture
def steps_file(tmp_path):
    steps = {
        "steps": [
            {"name": "install", "commands": ["sudo tdnf install -y git", "git clone https://example.com/repo.git"]},
            {"name": "build", "commands": ["cd repo", "cargo build --workspace"]},
        ]
    }
    path = tmp_path / "steps.yaml"
    path.write_text(yaml.dump(steps, sort_keys=False))
    return str(path)
