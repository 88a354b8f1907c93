"""Packages available in a region and their cadence-specific line totals."""

from __future__ import annotations

import structlog

from src.dealdesk.backend.adapter import OperationsBackend
from src.dealdesk.backend.errors import BackendError
from src.dealdesk.wizard.generation import Generation
from src.dealdesk.wizard.locations import RegionDirectory
from src.dealdesk.wizard.schemas import BillingCadence, LineTotal, PackageOffering

logger = structlog.get_logger(__name__)


def compute_line_totals(package: PackageOffering, cadence: BillingCadence) -> list[LineTotal]:
    """Pick each bundled service's monthly or yearly fee."""
    return [
        LineTotal(
            service_id=service.service_id,
            name=service.name,
            fee=service.monthly_fee if cadence == BillingCadence.MONTHLY else service.yearly_fee,
        )
        for service in package.services
    ]


class PackageResolver:
    """Loads a region's packages; applies only the latest region's list.

    Args:
        backend: Operations backend providing list_packages().
        regions: Session region directory (region name -> id).
    """

    def __init__(self, backend: OperationsBackend, regions: RegionDirectory) -> None:
        self._backend = backend
        self._regions = regions
        self._generation = Generation()

        self.region: str = ""
        self.packages: list[PackageOffering] = []

    async def list_packages(self, region: str) -> list[PackageOffering]:
        """Load packages for a region and return the list now visible."""
        generation = self._generation.issue()
        self.region = region or ""
        if not region:
            self.packages = []
            return []

        packages: list[PackageOffering] = []
        region_record = await self._regions.resolve(region)
        if region_record is None:
            logger.warning("packages.unknown_region", region=region)
        else:
            try:
                packages = await self._backend.list_packages(region_record.id)
            except BackendError as exc:
                logger.warning("packages.load_failed", region=region, error=str(exc))

        if not self._generation.is_current(generation):
            logger.debug("packages.stale_discarded", region=region, current_region=self.region)
            return list(self.packages)

        self.packages = packages
        return packages

    def find(self, package_id: int | None) -> PackageOffering | None:
        for package in self.packages:
            if package.package_id == package_id:
                return package
        return None

    def line_totals(self, package_id: int | None, cadence: BillingCadence | None) -> list[LineTotal]:
        """Line totals for a loaded package; switching cadence never refetches."""
        package = self.find(package_id)
        if package is None:
            return []
        return compute_line_totals(package, cadence or BillingCadence.YEARLY)

    def clear(self) -> None:
        self._generation.issue()
        self.region = ""
        self.packages = []
