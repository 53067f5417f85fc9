"""Quota lookups and quota-aware location selection."""

import logging

from runnervm.provisioning.errors import NoCapacity
from runnervm.provisioning.interfaces import ProvisioningClient
from runnervm.provisioning.types import QuotaStatus, Region, VmSku

logger = logging.getLogger(__name__)


class QuotaOracle:
    """Remaining compute quota for a VM family in a region."""

    def __init__(self, client: ProvisioningClient):
        self.client = client

    async def query(self, family: str, region: Region) -> QuotaStatus | None:
        usage = await self.client.get_quota(family, region)
        if usage is None:
            return None
        current, limit = usage
        return QuotaStatus(family=family, region=region, current_usage=current, limit=limit)


class LocationSelector:
    """Pick the first candidate region with enough quota for a SKU.

    Candidate order expresses preference (cost, proximity); a region with
    more headroom later in the list never wins over an earlier one that
    suffices.
    """

    def __init__(self, client: ProvisioningClient, oracle: QuotaOracle | None = None):
        self.client = client
        self.oracle = oracle or QuotaOracle(client)

    async def select_location(self, candidates: list[Region], sku: VmSku, required_cores: int | None = None) -> Region:
        """Return the first region with ``headroom >= required_cores``.

        Regions where the SKU's family cannot be resolved are skipped rather
        than treated as zero quota.

        Raises:
            NoCapacity: no candidate has sufficient quota.
        """
        if required_cores is None:
            required_cores = sku.core_count

        for region in candidates:
            family = await self.client.resolve_family(sku.name, region)
            if not family:
                logger.info(f"Cannot determine VM family for SKU {sku} in {region}, skipping")
                continue

            quota = await self.oracle.query(family, region)
            if quota is None:
                logger.info(f"No quota entry for family {family} in {region}, skipping")
                continue

            logger.info(
                f"{region}: {family} usage {quota.current_usage}/{quota.limit} "
                f"(headroom {quota.headroom}, need {required_cores})"
            )
            if quota.headroom >= required_cores:
                logger.info(f"Sufficient quota found in {region}")
                return region

        raise NoCapacity(sku.name, candidates)
