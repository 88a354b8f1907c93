"""Per-service pricing for the current (region, selected services) key.

PricingEngine.quote() is called whenever the service region or the selected
service ids change. Quotes are only ever valid for the key that produced
them:

- if either half of the key is empty, quotes are cleared and nothing is
  fetched;
- each request carries a generation; a response whose generation is no
  longer current is dropped on arrival, whatever order responses arrive in;
- a failed lookup clears the quotes (the user may still proceed).
"""

from __future__ import annotations

import structlog

from src.dealdesk.backend.adapter import OperationsBackend
from src.dealdesk.backend.errors import BackendError
from src.dealdesk.wizard.generation import Generation
from src.dealdesk.wizard.locations import RegionDirectory
from src.dealdesk.wizard.schemas import PricingQuote

logger = structlog.get_logger(__name__)

PricingKey = tuple[str, tuple[int, ...]]


class PricingEngine:
    """Region-dependent fee lookup with last-key-wins application.

    Args:
        backend: Operations backend providing quote_pricing().
        regions: Session region directory (region name -> id).
    """

    def __init__(self, backend: OperationsBackend, regions: RegionDirectory) -> None:
        self._backend = backend
        self._regions = regions
        self._generation = Generation()

        self.key: PricingKey | None = None
        self.quotes: list[PricingQuote] = []

    async def quote(self, region: str, service_ids: list[int]) -> list[PricingQuote]:
        """Recompute quotes for a key and return the quotes now visible."""
        generation = self._generation.issue()
        key: PricingKey = (region or "", tuple(service_ids))
        self.key = key

        if not region or not service_ids:
            self.quotes = []
            return []

        quotes: list[PricingQuote] = []
        region_record = await self._regions.resolve(region)
        if region_record is None:
            logger.warning("pricing.unknown_region", region=region)
        else:
            try:
                quotes = await self._backend.quote_pricing(region_record.id, list(service_ids))
            except BackendError as exc:
                logger.warning(
                    "pricing.quote_failed",
                    region=region,
                    service_ids=list(service_ids),
                    error=str(exc),
                )

        if not self._generation.is_current(generation):
            logger.debug(
                "pricing.stale_discarded",
                region=region,
                service_ids=list(service_ids),
                current_key=self.key,
            )
            return list(self.quotes)

        self.quotes = quotes
        logger.debug("pricing.applied", region=region, count=len(quotes))
        return quotes

    def clear(self) -> None:
        """Invalidate any in-flight request and drop the current quotes."""
        self._generation.issue()
        self.key = None
        self.quotes = []

    def quote_for(self, service_id: int) -> PricingQuote | None:
        for quote in self.quotes:
            if quote.service_id == service_id:
                return quote
        return None
