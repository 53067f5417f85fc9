"""Guaranteed teardown of a provisioning attempt's resources."""

import asyncio
import logging
import os

from runnervm.provisioning.interfaces import ProvisioningClient
from runnervm.provisioning.types import CleanupReport

logger = logging.getLogger(__name__)


class CleanupGuard:
    """Deletes a resource group and ephemeral key files, once.

    ``release()`` may be called any number of times (directly, from
    ``async with``, from a failure path); only the first call starts the
    cleanup and every call awaits that same cleanup. Cancelling a caller does
    not abandon a delete request already in flight. Deletion failures are
    logged as leaked resources and never raised, so a finished build is not
    failed by its own cleanup.

    Args:
        client: control plane used to delete the resource group.
        resource_group: group to delete, or None to clean credentials only.
        on_release: optional callback invoked with the report after release.
    """

    def __init__(self, client: ProvisioningClient, resource_group: str | None, on_release=None):
        self.client = client
        self.resource_group = resource_group
        self.credential_paths: list[str] = []
        self._on_release = on_release
        self._report: CleanupReport | None = None
        self._task: asyncio.Future | None = None

    @property
    def released(self) -> bool:
        return self._task is not None

    @property
    def report(self) -> CleanupReport | None:
        return self._report

    def track_credential(self, path):
        """Remove *path* (and *path*.pub) on release."""
        path = os.path.expanduser(path)
        if path not in self.credential_paths:
            self.credential_paths.append(path)

    async def release(self) -> CleanupReport:
        if self._task is None:
            self._task = asyncio.ensure_future(self._release())
        return await asyncio.shield(self._task)

    async def _release(self) -> CleanupReport:
        report = CleanupReport(resource_group=self.resource_group)
        self._report = report

        if self.resource_group:
            try:
                ok = await self.client.delete_resource_group(self.resource_group)
            except asyncio.CancelledError:
                report.errors.append(f"resource group '{self.resource_group}': delete request cancelled")
                logger.error(f"LEAKED RESOURCE: resource group '{self.resource_group}' may still exist")
                raise
            except Exception as e:
                logger.exception(f"Error requesting deletion of resource group '{self.resource_group}'")
                ok = False
                report.errors.append(f"resource group '{self.resource_group}': {e}")
            else:
                if not ok:
                    report.errors.append(f"resource group '{self.resource_group}': delete request failed")
            report.resource_group_deleted = ok
            if not ok:
                logger.error(f"LEAKED RESOURCE: resource group '{self.resource_group}' may still exist")

        for path in self.credential_paths:
            for candidate in (path, f"{path}.pub"):
                if not os.path.exists(candidate):
                    continue
                try:
                    os.remove(candidate)
                except OSError as e:
                    logger.error(f"Failed to remove key file {candidate}: {e}")
                    report.errors.append(f"key file {candidate}: {e}")
                else:
                    report.credentials_removed.append(candidate)
                    logger.info(f"SSH key '{candidate}' deleted.")

        logger.info("Cleanup completed." if report.clean else "Cleanup completed with errors.")
        if self._on_release is not None:
            self._on_release(report)
        return report

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.release()
        return False
