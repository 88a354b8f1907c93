"""Create/update request bodies and their submission.

Two pure builders turn the same DealDraft into one of two payload shapes:

- build_create_payload(): nested `company` and `customer` objects. A new entry
  carries its full identity; an existing one carries only its id plus the
  `isExisting` flag (a customer also carries the deal-scoped closure date,
  follow-up note and consent). Ownership is stamped from the session identity.
- build_update_payload(): flat body carrying the edited deal's identifiers
  unchanged plus the current customer values.

Both share a `services` array. Package selections are expanded into one line
per bundled service carrying PackageID/PackageName and the cadence fee, so
downstream consumers handle individual and package deals alike.

PayloadComposer.submit() never raises for a rejected or failed submission; it
returns a SubmissionResult the controller shows as a form-level error.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.dealdesk.backend.adapter import OperationsBackend
from src.dealdesk.backend.errors import BackendError
from src.dealdesk.wizard.schemas import (
    BillingCadence,
    DealDraft,
    DealOperation,
    EntityReference,
    LineTotal,
    PackageOffering,
    PricingQuote,
    RegionRecord,
    ServiceCatalogEntry,
    ServiceMode,
    SessionIdentity,
    SubmissionResult,
)

logger = structlog.get_logger(__name__)

DEAL_TYPE: dict[ServiceMode, str] = {
    ServiceMode.INDIVIDUAL: "Individual",
    ServiceMode.PACKAGE: "Package",
}


class PayloadError(ValueError):
    """Raised when a draft cannot be composed into the requested payload."""


# ── Wire Models ─────────────────────────────────────────────────────────────


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ServiceLine(BaseModel):
    """One flattened service line, individual or package-derived."""

    model_config = ConfigDict(populate_by_name=True)

    service_id: int = Field(alias="ServiceID")
    service_name: str = Field(default="", alias="ServiceName")
    category_id: int | None = Field(default=None, alias="CategoryID")
    category_name: str | None = Field(default=None, alias="CategoryName")
    state_id: int | None = Field(default=None, alias="StateID")
    state_name: str | None = Field(default=None, alias="StateName")
    professional_fee: float = Field(default=0.0, alias="ProfessionalFee")
    vendor_fee: float = Field(default=0.0, alias="VendorFee")
    contract_fee: float = Field(default=0.0, alias="ContractFee")
    government_fee: float = Field(default=0.0, alias="GovernmentFee")
    total_fee: float = Field(default=0.0, alias="TotalFee")
    package_id: int | None = Field(default=None, alias="PackageID")
    package_name: str | None = Field(default=None, alias="PackageName")
    is_monthly: int | None = Field(default=None, alias="IsMonthly")


class NewCompanyPayload(_CamelModel):
    name: str
    gst: str = ""
    mobile: str = ""
    email: str = ""
    country: str = ""
    state: str = ""
    district: str = ""
    preferred_language: str = ""
    is_associate: bool = True


class ExistingCompanyPayload(_CamelModel):
    existing_company_id: int | str
    is_existing: bool = True
    is_associate: bool = True


class NewCustomerPayload(_CamelModel):
    name: str
    mobile: str = ""
    email: str = ""
    country: str = ""
    pincode: str = ""
    state: str = ""
    district: str = ""
    preferred_language: str = ""
    communication: bool = False
    followup_note: str = ""
    closure_date: str = ""
    is_associate: bool = True


class ExistingCustomerPayload(_CamelModel):
    existing_customer_id: int | str
    is_existing: bool = True
    communication: bool = False
    followup_note: str = ""
    closure_date: str = ""
    is_associate: bool = True


class CreateDealPayload(_CamelModel):
    kind: Literal["create"] = Field(default="create", exclude=True)
    deal_type: str
    company: NewCompanyPayload | ExistingCompanyPayload
    customer: NewCustomerPayload | ExistingCustomerPayload
    services: list[ServiceLine] = Field(default_factory=list)
    franchisee_id: int | None = None
    employee_id: int | None = None
    is_associate: bool = True
    associate_id: int | None = Field(default=None, alias="AssociateID")
    lead_id: int | None = None


class UpdateDealPayload(_CamelModel):
    kind: Literal["update"] = Field(default="update", exclude=True)
    id: int | str
    company_id: int | str | None = None
    customer_id: int | str | None = None
    converted_at: str | None = None
    deal_type: str
    name: str = ""
    mobile: str = ""
    email: str = ""
    state: str = ""
    district: str = ""
    preferred_language: str = ""
    closure_date: str = ""
    followup_note: str = ""
    services: list[ServiceLine] = Field(default_factory=list)


DealPayload = Annotated[Union[CreateDealPayload, UpdateDealPayload], Field(discriminator="kind")]


def to_wire(payload: CreateDealPayload | UpdateDealPayload) -> dict[str, Any]:
    """Serialize a payload with its wire aliases."""
    return payload.model_dump(by_alias=True, mode="json")


# ── Service Lines ───────────────────────────────────────────────────────────


def build_service_lines(
    draft: DealDraft,
    *,
    region: RegionRecord | None,
    quotes: list[PricingQuote] | None = None,
    catalog: list[ServiceCatalogEntry] | None = None,
    category_name: str | None = None,
    package: PackageOffering | None = None,
    line_totals: list[LineTotal] | None = None,
) -> list[ServiceLine]:
    """Flatten the draft's service selection into wire service lines.

    Individual mode yields one line per selected service with its quote (fees
    default to zero when no quote arrived). Package mode yields one line per
    bundled service with the cadence-specific fee as its total.
    """
    state_id = region.id if region else None
    state_name = draft.service_region or None

    if draft.service_mode == ServiceMode.PACKAGE:
        if package is None:
            return []
        is_monthly = 1 if draft.billing_cadence == BillingCadence.MONTHLY else 0
        return [
            ServiceLine(
                service_id=line.service_id,
                service_name=line.name,
                state_id=state_id,
                state_name=state_name,
                total_fee=line.fee,
                package_id=package.package_id,
                package_name=package.name,
                is_monthly=is_monthly,
            )
            for line in line_totals or []
        ]

    quotes_by_id = {quote.service_id: quote for quote in quotes or []}
    entries_by_id = {entry.service_id: entry for entry in catalog or []}
    lines: list[ServiceLine] = []
    for service_id in draft.selected_service_ids:
        quote = quotes_by_id.get(service_id)
        entry = entries_by_id.get(service_id)
        lines.append(
            ServiceLine(
                service_id=service_id,
                service_name=(entry.name if entry else "") or (quote.name if quote else ""),
                category_id=draft.service_category,
                category_name=category_name or None,
                state_id=state_id,
                state_name=state_name,
                professional_fee=quote.professional_fee if quote else 0.0,
                vendor_fee=quote.vendor_fee if quote else 0.0,
                contract_fee=quote.contractor_fee if quote else 0.0,
                government_fee=quote.govt_fee if quote else 0.0,
                total_fee=quote.total if quote else 0.0,
            )
        )
    return lines


# ── Builders ────────────────────────────────────────────────────────────────


def _text(fields: dict[str, Any], key: str, default: str = "") -> str:
    value = fields.get(key)
    return str(value) if value not in (None, "") else default


def _company_payload(
    ref: EntityReference, default_country: str
) -> NewCompanyPayload | ExistingCompanyPayload:
    if ref.is_existing:
        return ExistingCompanyPayload(existing_company_id=ref.id)
    fields = ref.fields
    return NewCompanyPayload(
        name=_text(fields, "name"),
        gst=_text(fields, "tax_id"),
        mobile=_text(fields, "mobile"),
        email=_text(fields, "email"),
        country=_text(fields, "country", default_country),
        state=_text(fields, "region"),
        district=_text(fields, "district"),
        preferred_language=_text(fields, "language"),
    )


def _customer_payload(
    ref: EntityReference, default_country: str
) -> NewCustomerPayload | ExistingCustomerPayload:
    fields = ref.fields
    if ref.is_existing:
        return ExistingCustomerPayload(
            existing_customer_id=ref.id,
            communication=bool(fields.get("communication_consent")),
            followup_note=_text(fields, "followup_note"),
            closure_date=_text(fields, "closure_date"),
        )
    return NewCustomerPayload(
        name=_text(fields, "name"),
        mobile=_text(fields, "mobile"),
        email=_text(fields, "email"),
        country=_text(fields, "country", default_country),
        pincode=_text(fields, "pincode"),
        state=_text(fields, "region"),
        district=_text(fields, "district"),
        preferred_language=_text(fields, "language"),
        communication=bool(fields.get("communication_consent")),
        followup_note=_text(fields, "followup_note"),
        closure_date=_text(fields, "closure_date"),
    )


def build_create_payload(
    draft: DealDraft,
    company_ref: EntityReference,
    customer_ref: EntityReference,
    services: list[ServiceLine],
    identity: SessionIdentity,
    *,
    default_country: str = "India",
) -> CreateDealPayload:
    """Compose the conversion (create) body."""
    return CreateDealPayload(
        deal_type=DEAL_TYPE[draft.service_mode],
        company=_company_payload(company_ref, default_country),
        customer=_customer_payload(customer_ref, default_country),
        services=services,
        franchisee_id=identity.franchisee_id,
        employee_id=identity.employee_id,
        associate_id=identity.associate_id,
        lead_id=draft.lead_id,
    )


def build_update_payload(
    draft: DealDraft,
    customer_ref: EntityReference,
    services: list[ServiceLine],
) -> UpdateDealPayload:
    """Compose the edit (update) body for a previously created deal."""
    if draft.deal_id is None:
        raise PayloadError("an update needs the id of the deal being edited")
    fields = customer_ref.fields
    return UpdateDealPayload(
        id=draft.deal_id,
        company_id=draft.deal_company_id,
        customer_id=draft.deal_customer_id,
        converted_at=draft.converted_at,
        deal_type=DEAL_TYPE[draft.service_mode],
        name=_text(fields, "name"),
        mobile=_text(fields, "mobile"),
        email=_text(fields, "email"),
        state=_text(fields, "region"),
        district=_text(fields, "district"),
        preferred_language=_text(fields, "language"),
        closure_date=_text(fields, "closure_date"),
        followup_note=_text(fields, "followup_note"),
        services=services,
    )


# ── Composer ────────────────────────────────────────────────────────────────


class PayloadComposer:
    """Builds the request body for an operation and submits it.

    Args:
        backend: Operations backend providing create_deal()/update_deal().
        identity: Session identity stamped on created deals.
        default_country: Country used when a new entry leaves it blank.
    """

    def __init__(
        self,
        backend: OperationsBackend,
        identity: SessionIdentity,
        *,
        default_country: str = "India",
    ) -> None:
        self._backend = backend
        self._identity = identity
        self._default_country = default_country

    def compose(
        self,
        draft: DealDraft,
        company_ref: EntityReference,
        customer_ref: EntityReference,
        services: list[ServiceLine],
        operation: DealOperation,
    ) -> CreateDealPayload | UpdateDealPayload:
        if operation == DealOperation.UPDATE:
            return build_update_payload(draft, customer_ref, services)
        return build_create_payload(
            draft,
            company_ref,
            customer_ref,
            services,
            self._identity,
            default_country=self._default_country,
        )

    async def submit(self, payload: CreateDealPayload | UpdateDealPayload) -> SubmissionResult:
        """Send a composed payload; failures come back as a SubmissionResult."""
        body = to_wire(payload)
        try:
            if isinstance(payload, UpdateDealPayload):
                message = await self._backend.update_deal(body)
                deal_id = payload.id
            else:
                deal_id = await self._backend.create_deal(body)
                message = None
        except BackendError as exc:
            logger.warning(
                "deal.submit_failed",
                operation=payload.kind,
                status_code=exc.status_code,
                error=exc.message,
            )
            default = "Failed to create deal" if payload.kind == "create" else "Failed to update deal"
            return SubmissionResult(success=False, message=exc.message or default)

        logger.info("deal.submitted", operation=payload.kind, deal_id=deal_id)
        return SubmissionResult(
            success=True,
            deal_id=deal_id,
            message=message,
            submitted_at=datetime.now(timezone.utc),
        )
