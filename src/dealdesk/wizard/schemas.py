"""Pydantic schemas for the deal intake wizard.

Defines all structured types that flow through the wizard:
- Enums: WizardStep, ServiceMode, BillingCadence, EntityMode, EntityKind, DealOperation
- Session: SessionIdentity (injected ownership stamps)
- Registry: EntitySummary, SearchPage, EntityReference
- Catalog: RegionRecord, CategoryRecord, ServiceCatalogEntry
- Pricing: PricingQuote, PackageService, PackageOffering, LineTotal
- Draft: DealDraft (the single in-progress form model), DealRecord
- Submission: SubmissionResult
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ── Enums ───────────────────────────────────────────────────────────────────


class WizardStep(str, Enum):
    """Wizard steps in forward order."""

    COMPANY = "company"
    SERVICE = "service"
    CUSTOMER = "customer"


STEP_ORDER: list[WizardStep] = [
    WizardStep.COMPANY,
    WizardStep.SERVICE,
    WizardStep.CUSTOMER,
]


class ServiceMode(str, Enum):
    """How the service offering is chosen."""

    INDIVIDUAL = "individual"
    PACKAGE = "package"


class BillingCadence(str, Enum):
    """Package billing cadence."""

    MONTHLY = "monthly"
    YEARLY = "yearly"


class EntityMode(str, Enum):
    """Whether an entity is entered by hand or referenced from the registry."""

    NEW = "new"
    EXISTING = "existing"


class EntityKind(str, Enum):
    """Registry entity types resolved by the wizard."""

    COMPANY = "company"
    CUSTOMER = "customer"


class DealOperation(str, Enum):
    """Which remote operation a submission performs."""

    CREATE = "create"
    UPDATE = "update"


# ── Session ─────────────────────────────────────────────────────────────────


class SessionIdentity(BaseModel):
    """Current logged-in identity used to stamp ownership fields on create."""

    associate_id: int | None = None
    employee_id: int | None = None
    franchisee_id: int | None = None
    default_region: str = ""


# ── Registry ────────────────────────────────────────────────────────────────


class EntitySummary(BaseModel):
    """A search hit from the company or customer registry.

    `fields` carries whatever identity fields the list endpoint returned,
    already converted to internal keys. It is the fallback when detail
    hydration fails.
    """

    id: int | str
    name: str = ""
    mobile: str = ""
    tax_id: str = ""
    code: str = ""
    fields: dict[str, Any] = Field(default_factory=dict)


class SearchPage(BaseModel):
    """One page of registry search results."""

    items: list[EntitySummary] = Field(default_factory=list)
    has_more: bool = False


class EntityReference(BaseModel):
    """New-entry or existing-record reference for a Company or Customer."""

    mode: EntityMode = EntityMode.NEW
    id: int | str | None = None
    fields: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_existing(self) -> bool:
        return self.mode == EntityMode.EXISTING

    @classmethod
    def new(cls, fields: dict[str, Any] | None = None) -> EntityReference:
        return cls(mode=EntityMode.NEW, id=None, fields=dict(fields or {}))

    @classmethod
    def existing(cls, entity_id: int | str, fields: dict[str, Any]) -> EntityReference:
        return cls(mode=EntityMode.EXISTING, id=entity_id, fields=dict(fields))


class CompanyRecord(BaseModel):
    """Hydrated company detail including its associated customers."""

    id: int | str
    fields: dict[str, Any] = Field(default_factory=dict)
    customers: list[EntitySummary] = Field(default_factory=list)


# ── Catalog ─────────────────────────────────────────────────────────────────


class RegionRecord(BaseModel):
    """A service region (state) known to the remote API."""

    id: int
    name: str


class CategoryRecord(BaseModel):
    """A service category."""

    id: int
    name: str


class ServiceCatalogEntry(BaseModel):
    """A single orderable service within a category."""

    service_id: int
    name: str
    category_id: int | None = None
    code: str = ""
    description: str = ""


# ── Pricing ─────────────────────────────────────────────────────────────────


class PricingQuote(BaseModel):
    """Fee breakdown for one service in one region."""

    service_id: int
    name: str = ""
    professional_fee: float = 0.0
    vendor_fee: float = 0.0
    contractor_fee: float = 0.0
    govt_fee: float = 0.0
    total: float = 0.0


class PackageService(BaseModel):
    """A service bundled inside a package, with both cadence fees."""

    service_id: int
    name: str = ""
    monthly_fee: float = 0.0
    yearly_fee: float = 0.0


class PackageOffering(BaseModel):
    """A pre-defined bundle of services offered in a region."""

    package_id: int
    name: str
    services: list[PackageService] = Field(default_factory=list)


class LineTotal(BaseModel):
    """Cadence-specific fee for one service of a chosen package."""

    service_id: int
    name: str = ""
    fee: float = 0.0


# ── Draft ───────────────────────────────────────────────────────────────────


class DealDraft(BaseModel):
    """The in-progress deal model accumulated across wizard steps.

    Company and customer identity live in their EntityReference `fields`
    (keys: name, tax_id, mobile, email, country, pincode, region, district,
    language, communication_consent, closure_date, followup_note). The
    service selection lives on the draft itself.
    """

    company: EntityReference = Field(default_factory=EntityReference)
    customer: EntityReference = Field(default_factory=EntityReference)

    service_region: str = ""
    service_mode: ServiceMode = ServiceMode.INDIVIDUAL
    service_category: int | None = None
    selected_service_ids: list[int] = Field(default_factory=list)
    selected_package_id: int | None = None
    billing_cadence: BillingCadence | None = None

    # Identifiers of the deal being edited; all None for a create.
    deal_id: int | str | None = None
    deal_company_id: int | str | None = None
    deal_customer_id: int | str | None = None
    converted_at: str | None = None
    lead_id: int | None = None

    @property
    def is_edit(self) -> bool:
        return self.deal_id is not None


class DealRecord(BaseModel):
    """A remote deal as returned by the detail endpoint, used to seed edit mode."""

    id: int | str
    company_id: int | str | None = None
    customer_id: int | str | None = None
    converted_at: str | None = None
    company_fields: dict[str, Any] = Field(default_factory=dict)
    customer_fields: dict[str, Any] = Field(default_factory=dict)
    service_region: str = ""
    service_mode: ServiceMode = ServiceMode.INDIVIDUAL
    service_category: int | None = None
    service_ids: list[int] = Field(default_factory=list)
    package_id: int | None = None
    billing_cadence: BillingCadence | None = None


# ── Submission ──────────────────────────────────────────────────────────────


class SubmissionResult(BaseModel):
    """Outcome of a create or update submission."""

    success: bool
    deal_id: int | str | None = None
    message: str | None = None
    submitted_at: datetime | None = None
