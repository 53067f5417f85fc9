"""SSH readiness polling for freshly created VMs."""

import asyncio
import logging

from runnervm.provisioning.shell import run_shell_cmd
from runnervm.provisioning.ssh_transport import ssh_base_args

logger = logging.getLogger(__name__)


async def wait_for_ssh(address, username, ssh_key_path, ssh_port=22, timeout=120, interval=5, dry_run=False):
    """Poll SSH connectivity until success or timeout.

    RemoteSession never retries, so callers that start a batch right after
    provisioning poll here first.

    Returns:
        True if SSH connected, False on timeout.
    """
    server = f"{username}@{address}" if username else address
    args = ssh_base_args(server, ssh_key_path, ssh_port, connect_timeout=5) + ["true"]
    if dry_run:
        logger.info(f"[dry-run] Poll SSH every {interval}s (up to {timeout}s): {' '.join(args)}")
        return True

    elapsed = 0
    while elapsed < timeout:
        rc, _, _ = await run_shell_cmd(args, timeout=30)
        if rc == 0:
            return True
        await asyncio.sleep(interval)
        elapsed += interval

    logger.error(f"Timeout after {timeout}s waiting for SSH connectivity to {server}:{ssh_port}")
    return False
