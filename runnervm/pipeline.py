"""Build pipeline: provision a VM, run remote batches, tear everything down."""

import logging

from runnervm.provisioning.errors import ProvisioningError
from runnervm.provisioning.interfaces import RemoteSession
from runnervm.provisioning.sequencer import ProvisioningSequencer
from runnervm.provisioning.types import ProvisionRequest, RemoteCommandBatch, RunOutcome

logger = logging.getLogger(__name__)


async def run_batches(session: RemoteSession, address, credential_ref, batches: list[RemoteCommandBatch]):
    """Run *batches* in order on *address*; the first failure stops the rest."""
    for batch in batches:
        status = await session.run(address, credential_ref, batch)
        logger.info(f"Batch '{batch.name}' completed (exit {status.exit_code}).")


async def run_build(
    sequencer: ProvisioningSequencer,
    session: RemoteSession,
    request: ProvisionRequest,
    candidates: list[str],
    batches: list[RemoteCommandBatch],
    credential_ref: str,
    key_path=None,
    before_batches=None,
) -> RunOutcome:
    """Provision, run *batches*, and always release the attempt's resources.

    Args:
        key_path: local private key file to delete during cleanup.
        before_batches: optional ``async (vm) -> bool`` hook run after hand-off
            (e.g. waiting for SSH); returning False fails the run.

    Returns:
        RunOutcome. The reason separates capacity problems ("no capacity: ...")
        from build problems ("remote command failed: ...").
    """
    try:
        async with sequencer.session_scope(request, candidates) as (vm, guard):
            if key_path:
                guard.track_credential(key_path)
            if before_batches is not None and not await before_batches(vm):
                return RunOutcome(False, f"connection failed: {vm.address} did not become reachable", vm.private_address)
            await run_batches(session, vm.private_address, credential_ref, batches)
            outcome = RunOutcome(True, "build and test completed successfully", vm.private_address)
    except ProvisioningError as e:
        logger.error(f"Error: {e.reason}")
        address = sequencer.vm.private_address if sequencer.vm else ""
        return RunOutcome(False, e.reason, address)

    logger.info(outcome.reason)
    return outcome
