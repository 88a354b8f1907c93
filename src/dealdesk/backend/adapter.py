"""Operations backend abstract base class -- the contract the wizard consumes.

Every backend (the HTTP client for the remote operations API, in-memory
fakes in tests) implements this ABC. Implementations raise BackendError
subclasses on failure and return internal models, never wire dicts.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.dealdesk.wizard.schemas import (
    CategoryRecord,
    CompanyRecord,
    DealRecord,
    PackageOffering,
    PricingQuote,
    RegionRecord,
    SearchPage,
    ServiceCatalogEntry,
)


class OperationsBackend(ABC):
    """Abstract interface for the remote operations API.

    Methods:
        search_companies: One page of the associate's company registry.
        search_customers: One page of the associate's customer registry.
        get_company_detail: Full company record with associated customers.
        get_customer_detail: Full customer identity fields.
        list_service_categories: All service categories.
        list_services_by_category: Services belonging to one category.
        list_regions: Service regions (states) with their identifiers.
        quote_pricing: Per-service fee breakdown for a region.
        list_packages: Packages offered in a region.
        create_deal: Convert a new deal, return its identifier.
        update_deal: Update an existing deal, return the server message.
        get_deal_detail: Fetch a deal to seed edit mode.
    """

    @abstractmethod
    async def search_companies(
        self, query: str, page: int, page_size: int, associate_id: int | None = None
    ) -> SearchPage:
        ...

    @abstractmethod
    async def search_customers(
        self, query: str, page: int, page_size: int, associate_id: int | None = None
    ) -> SearchPage:
        ...

    @abstractmethod
    async def get_company_detail(self, company_id: int | str) -> CompanyRecord:
        ...

    @abstractmethod
    async def get_customer_detail(self, customer_id: int | str) -> dict[str, Any]:
        """Return internal identity fields for a customer."""
        ...

    @abstractmethod
    async def list_service_categories(self) -> list[CategoryRecord]:
        ...

    @abstractmethod
    async def list_services_by_category(self, category_id: int) -> list[ServiceCatalogEntry]:
        ...

    @abstractmethod
    async def list_regions(self) -> list[RegionRecord]:
        ...

    @abstractmethod
    async def quote_pricing(self, region_id: int, service_ids: list[int]) -> list[PricingQuote]:
        ...

    @abstractmethod
    async def list_packages(self, region_id: int) -> list[PackageOffering]:
        ...

    @abstractmethod
    async def create_deal(self, payload: dict[str, Any]) -> int | str | None:
        """Submit a create payload, return the new deal id (may be None)."""
        ...

    @abstractmethod
    async def update_deal(self, payload: dict[str, Any]) -> str | None:
        """Submit an update payload, return the server message."""
        ...

    @abstractmethod
    async def get_deal_detail(self, deal_id: int | str) -> DealRecord:
        ...
