"""Shared fixtures for the deal intake wizard tests.

Provides:
- Test settings (no debounce delay, small search pages, single HTTP attempt)
- A session identity
- An AsyncMock OperationsBackend pre-loaded with a small Kerala/Tamil Nadu
  catalog -- no real API calls
- An opened WizardController wired to that backend
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from src.dealdesk.backend.adapter import OperationsBackend
from src.dealdesk.config import Settings
from src.dealdesk.wizard.controller import WizardController
from src.dealdesk.wizard.schemas import (
    CategoryRecord,
    PackageOffering,
    PackageService,
    PricingQuote,
    RegionRecord,
    SearchPage,
    ServiceCatalogEntry,
    SessionIdentity,
)

REGIONS = [
    RegionRecord(id=18, name="Kerala"),
    RegionRecord(id=31, name="Tamil Nadu"),
]

CATEGORIES = [
    CategoryRecord(id=5, name="Registrations"),
    CategoryRecord(id=6, name="Tax Filing"),
]

SERVICES = {
    5: [
        ServiceCatalogEntry(service_id=256, name="GST Registration", category_id=5, code="GST-REG"),
        ServiceCatalogEntry(service_id=257, name="MSME Registration", category_id=5, code="MSME"),
    ],
    6: [
        ServiceCatalogEntry(service_id=301, name="GST Return Filing", category_id=6, code="GSTR"),
    ],
}

PACKAGES = [
    PackageOffering(
        package_id=9,
        name="Startup Essentials",
        services=[
            PackageService(service_id=256, name="GST Registration", monthly_fee=250.0, yearly_fee=2500.0),
            PackageService(service_id=301, name="GST Return Filing", monthly_fee=400.0, yearly_fee=4000.0),
        ],
    )
]


def make_quote(service_id: int, region_id: int = 18) -> PricingQuote:
    """Deterministic fee breakdown: every component scales with the region id."""
    return PricingQuote(
        service_id=service_id,
        name=f"Service {service_id}",
        professional_fee=float(region_id * 10),
        vendor_fee=50.0,
        contractor_fee=0.0,
        govt_fee=100.0,
        total=float(region_id * 10) + 150.0,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        API_BASE_URL="http://ops.test/api",
        SEARCH_DEBOUNCE_SECONDS=0.0,
        SEARCH_PAGE_SIZE=2,
        HTTP_MAX_RETRIES=1,
    )


@pytest.fixture
def identity() -> SessionIdentity:
    return SessionIdentity(associate_id=77, employee_id=9, franchisee_id=1)


@pytest.fixture
def backend() -> AsyncMock:
    """AsyncMock backend with a small, consistent catalog."""
    mock = AsyncMock(spec=OperationsBackend)
    mock.list_regions.return_value = list(REGIONS)
    mock.list_service_categories.return_value = list(CATEGORIES)
    mock.list_services_by_category.side_effect = lambda category_id: list(
        SERVICES.get(category_id, [])
    )
    mock.quote_pricing.side_effect = lambda region_id, service_ids: [
        make_quote(service_id, region_id) for service_id in service_ids
    ]
    mock.list_packages.return_value = list(PACKAGES)
    mock.search_companies.return_value = SearchPage()
    mock.search_customers.return_value = SearchPage()
    mock.create_deal.return_value = 1001
    mock.update_deal.return_value = "Deal updated"
    return mock


@pytest_asyncio.fixture
async def wizard(backend, identity, settings) -> WizardController:
    """A create-mode wizard, opened and ready for input."""
    controller = WizardController(backend, identity, settings=settings)
    await controller.open()
    return controller
