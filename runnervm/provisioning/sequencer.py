"""Provisioning sequencer: location → resource group → VM → address → hand-off.

One sequencer instance drives one provisioning attempt through::

    IDLE → LOCATION_SELECTED → RESOURCE_GROUP_READY → VM_CREATED
         → ADDRESS_RESOLVED → HANDED_OFF → TORN_DOWN

with FAILED reachable from every non-terminal state. Once the resource
group create has been attempted a CleanupGuard exists, and every failure or
cancellation from then on releases it before the error propagates.
"""

import asyncio
import contextlib
import logging

from runnervm.provisioning.cleanup import CleanupGuard
from runnervm.provisioning.errors import (
    AddressUnavailable,
    ProvisioningError,
    ResourceGroupCreateFailed,
    SecretUnavailable,
    VmCreateFailed,
)
from runnervm.provisioning.interfaces import ProvisioningClient, RemoteSession, SecretStore
from runnervm.provisioning.quota import LocationSelector
from runnervm.provisioning.types import ProvisionedVm, ProvisionRequest, Region, SequencerState, VmCreateSpec

logger = logging.getLogger(__name__)

S = SequencerState

_TRANSITIONS = {
    S.IDLE: {S.LOCATION_SELECTED, S.FAILED},
    S.LOCATION_SELECTED: {S.RESOURCE_GROUP_READY, S.FAILED},
    S.RESOURCE_GROUP_READY: {S.VM_CREATED, S.FAILED},
    S.VM_CREATED: {S.ADDRESS_RESOLVED, S.FAILED},
    S.ADDRESS_RESOLVED: {S.HANDED_OFF, S.FAILED},
    S.HANDED_OFF: {S.TORN_DOWN, S.FAILED},
    S.TORN_DOWN: set(),
    S.FAILED: set(),
}


class ProvisioningSequencer:
    """Drive one provisioning attempt end to end.

    Args:
        client: cloud control plane.
        secrets: secret store holding the VM's SSH public key.
        session: remote session whose known-host record is reset for the new
            address. Optional; without it the trust reset is skipped.
        selector: location selector, built from *client* when omitted.
    """

    def __init__(
        self,
        client: ProvisioningClient,
        secrets: SecretStore,
        session: RemoteSession | None = None,
        selector: LocationSelector | None = None,
    ):
        self.client = client
        self.secrets = secrets
        self.session = session
        self.selector = selector or LocationSelector(client)
        self.state = S.IDLE
        self.history = [S.IDLE]
        self.failure: ProvisioningError | None = None
        self.guard: CleanupGuard | None = None
        self.vm: ProvisionedVm | None = None

    def _transition(self, new_state):
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal sequencer transition {self.state.name} -> {new_state.name}")
        logger.debug(f"Sequencer: {self.state.name} -> {new_state.name}")
        self.state = new_state
        self.history.append(new_state)

    def _on_guard_release(self, report):
        if self.state is S.HANDED_OFF:
            self._transition(S.TORN_DOWN)

    async def _fail(self, error):
        """Record *error*, move to FAILED and release the guard if one exists."""
        if isinstance(error, ProvisioningError):
            self.failure = error
            logger.error(f"Provisioning failed: {error.reason}")
        if self.state not in (S.FAILED, S.TORN_DOWN):
            self._transition(S.FAILED)
        if self.guard is not None:
            await self.guard.release()

    async def provision(self, request: ProvisionRequest, candidates: list[Region]) -> tuple[ProvisionedVm, CleanupGuard]:
        """Provision a VM and hand it to the caller with its CleanupGuard.

        The caller owns the guard and must release it (or use
        :meth:`session_scope`, which does so automatically).

        Raises:
            NoCapacity, ResourceGroupCreateFailed, VmCreateFailed,
            AddressUnavailable.
        """
        if self.state is not S.IDLE:
            raise RuntimeError(f"Sequencer already used (state: {self.state.name})")

        # 1. Location. Nothing exists yet, so nothing to clean up.
        try:
            region = await self.selector.select_location(candidates, request.sku)
        except ProvisioningError as e:
            await self._fail(e)
            raise
        self._transition(S.LOCATION_SELECTED)

        self.guard = CleanupGuard(self.client, request.resource_group, on_release=self._on_guard_release)
        try:
            vm = await self._provision_in(request, region)
        except ProvisioningError as e:
            await self._fail(e)
            raise
        except (Exception, asyncio.CancelledError):
            logger.warning("Provisioning interrupted, releasing resources")
            await asyncio.shield(self._fail(None))
            raise

        self.vm = vm
        self._transition(S.HANDED_OFF)
        return vm, self.guard

    async def _provision_in(self, request, region):
        # 2. Resource group
        if not await self.client.create_resource_group(request.resource_group, region):
            raise ResourceGroupCreateFailed(f"could not create resource group '{request.resource_group}' in {region}")
        self._transition(S.RESOURCE_GROUP_READY)

        # 3. Inputs for the create call, all checked before paying for it
        vm_name = request.vm_name(region)
        image_name = request.image_name(region)
        subnet_id = await self.client.resolve_subnet(region)
        if not subnet_id:
            raise VmCreateFailed(f"no subnet found for region {region}")
        image_id = await self.client.resolve_image(image_name)
        if not image_id:
            raise VmCreateFailed(f"image '{image_name}' not found")
        try:
            public_key = await self.secrets.get_secret(request.public_key_ref)
        except SecretUnavailable as e:
            raise VmCreateFailed(f"public key unavailable: {e.message}") from e

        # 4. VM
        spec = VmCreateSpec(
            name=vm_name,
            resource_group=request.resource_group,
            region=region,
            sku=request.sku.name,
            subnet_id=subnet_id,
            image_id=image_id,
            os_disk_size_gb=request.os_disk_size_gb,
            admin_username=request.admin_username,
            public_key=public_key,
        )
        if not await self.client.create_vm(spec):
            raise VmCreateFailed(f"could not create VM '{vm_name}' ({request.sku}) in {region}")
        self._transition(S.VM_CREATED)

        # 5. Address, fetched once
        address = await self.client.get_private_address(vm_name, request.resource_group)
        if not address:
            raise AddressUnavailable(f"VM '{vm_name}' has no private address")
        self._transition(S.ADDRESS_RESOLVED)
        logger.info(f"Private IP: {address}")

        # 6. The address may have belonged to another VM in an earlier run
        if self.session is not None:
            await self.session.reset_trust(address)

        return ProvisionedVm(
            name=vm_name,
            resource_group=request.resource_group,
            region=region,
            private_address=address,
            admin_username=request.admin_username,
        )

    @contextlib.asynccontextmanager
    async def session_scope(self, request: ProvisionRequest, candidates: list[Region]):
        """Provision, yield the VM, and always release the guard on exit.

        The guard is yielded alongside the VM so callers can track extra
        credential files on it.
        """
        vm, guard = await self.provision(request, candidates)
        try:
            yield vm, guard
        finally:
            await asyncio.shield(guard.release())
