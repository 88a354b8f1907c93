"""Wire-format mappings between the remote operations API and internal models.

Defines:
- COMPANY_FIELD_MAP / CUSTOMER_FIELD_MAP: internal identity keys mapped to the
  candidate wire keys the registry endpoints use (first non-empty wins).
- to_entity_fields(): Converts a registry record to internal identity fields.
- to_entity_summary(): Converts a registry list item to an EntitySummary.
- to_company_record(): Converts a company detail (with nested customers).
- to_service_entry() / to_pricing_quote() / to_package_offering(): Catalog rows.
- to_deal_record(): Converts a deal detail into a DealRecord for edit mode.
"""

from __future__ import annotations

from typing import Any

from src.dealdesk.wizard.schemas import (
    BillingCadence,
    CategoryRecord,
    CompanyRecord,
    DealRecord,
    EntityKind,
    EntitySummary,
    PackageOffering,
    PackageService,
    PricingQuote,
    RegionRecord,
    ServiceCatalogEntry,
    ServiceMode,
)


# ── Registry Field Maps ────────────────────────────────────────────────────

COMPANY_FIELD_MAP: dict[str, list[str]] = {
    "name": ["BusinessName", "CompanyName", "name"],
    "tax_id": ["GSTNumber", "gst"],
    "mobile": ["CompanyMobile", "Mobile", "mobile"],
    "email": ["CompanyEmail", "Email", "email"],
    "country": ["Country", "country"],
    "region": ["State", "state"],
    "district": ["District", "district", "City", "city"],
    "language": ["PreferredLanguage", "preferredLanguage"],
}

CUSTOMER_FIELD_MAP: dict[str, list[str]] = {
    "name": ["CustomerName", "name"],
    "mobile": ["Mobile", "mobile"],
    "email": ["Email", "email"],
    "country": ["Country", "country"],
    "pincode": ["PinCode", "pincode"],
    "region": ["State", "state"],
    "district": ["District", "district", "City", "city"],
    "language": ["PreferredLanguage", "preferredLanguage"],
    "code": ["CustomerCode"],
}

_ID_KEYS: dict[EntityKind, list[str]] = {
    EntityKind.COMPANY: ["CompanyID", "id"],
    EntityKind.CUSTOMER: ["CustomerID", "id"],
}


def _first(record: dict[str, Any], keys: list[str]) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def _field_map(kind: EntityKind) -> dict[str, list[str]]:
    return COMPANY_FIELD_MAP if kind == EntityKind.COMPANY else CUSTOMER_FIELD_MAP


# ── Registry Conversion ────────────────────────────────────────────────────


def to_entity_fields(record: dict[str, Any], kind: EntityKind) -> dict[str, Any]:
    """Convert a registry record to internal identity fields.

    Keys whose wire value is missing or empty are omitted, so partial
    summaries produce partial field dicts.
    """
    fields: dict[str, Any] = {}
    for internal_name, wire_keys in _field_map(kind).items():
        value = _first(record, wire_keys)
        if value is not None:
            fields[internal_name] = value

    if kind == EntityKind.CUSTOMER and "name" not in fields:
        joined = " ".join(
            part for part in (record.get("FirstName"), record.get("LastName")) if part
        ).strip()
        if joined:
            fields["name"] = joined

    return fields


def entity_id(record: dict[str, Any], kind: EntityKind) -> Any:
    """Extract the registry identifier of a company or customer record."""
    return _first(record, _ID_KEYS[kind])


def to_entity_summary(record: dict[str, Any], kind: EntityKind) -> EntitySummary:
    """Convert a registry list item to an EntitySummary."""
    fields = to_entity_fields(record, kind)
    return EntitySummary(
        id=entity_id(record, kind),
        name=str(fields.get("name", "")),
        mobile=str(fields.get("mobile", "")),
        tax_id=str(fields.get("tax_id", "")),
        code=str(fields.get("code", "")),
        fields=fields,
    )


def to_company_record(record: dict[str, Any]) -> CompanyRecord:
    """Convert a company detail record including its nested customers."""
    customers = [
        to_entity_summary(item, EntityKind.CUSTOMER)
        for item in record.get("Customers") or record.get("customers") or []
        if entity_id(item, EntityKind.CUSTOMER) is not None
    ]
    return CompanyRecord(
        id=entity_id(record, EntityKind.COMPANY),
        fields=to_entity_fields(record, EntityKind.COMPANY),
        customers=customers,
    )


# ── Catalog Conversion ─────────────────────────────────────────────────────


def to_region(record: dict[str, Any]) -> RegionRecord:
    return RegionRecord(id=int(record["ID"]), name=str(record["state_name"]))


def to_category(record: dict[str, Any]) -> CategoryRecord:
    return CategoryRecord(
        id=int(_first(record, ["CategoryID", "ID", "id"])),
        name=str(_first(record, ["CategoryName", "name"]) or ""),
    )


def to_service_entry(record: dict[str, Any], category_id: int | None) -> ServiceCatalogEntry:
    return ServiceCatalogEntry(
        service_id=int(record["ServiceID"]),
        name=str(record.get("ServiceName") or ""),
        category_id=record.get("CategoryID", category_id),
        code=str(record.get("ServiceCode") or ""),
        description=str(record.get("Description") or ""),
    )


def _fee(record: dict[str, Any], *keys: str) -> float:
    value = _first(record, list(keys))
    return float(value) if value is not None else 0.0


def to_pricing_quote(record: dict[str, Any]) -> PricingQuote:
    return PricingQuote(
        service_id=int(record["ServiceID"]),
        name=str(record.get("ServiceName") or ""),
        professional_fee=_fee(record, "ProfessionalFee"),
        vendor_fee=_fee(record, "VendorFee"),
        contractor_fee=_fee(record, "ContractFee", "ContractorFee"),
        govt_fee=_fee(record, "GovernmentFee", "GovtFee"),
        total=_fee(record, "TotalFee", "Total"),
    )


def to_package_offering(record: dict[str, Any]) -> PackageOffering:
    services = [
        PackageService(
            service_id=int(item["ServiceID"]),
            name=str(item.get("ServiceName") or ""),
            monthly_fee=_fee(item, "TotalFeeMonthly", "MonthlyFee", "TotalFee"),
            yearly_fee=_fee(item, "TotalFeeYearly", "YearlyFee", "TotalFee"),
        )
        for item in record.get("Services") or record.get("services") or []
    ]
    return PackageOffering(
        package_id=int(_first(record, ["PackageID", "id", "packageId"])),
        name=str(_first(record, ["PackageName", "name", "packageName"]) or ""),
        services=services,
    )


# ── Deal Conversion ────────────────────────────────────────────────────────


def to_deal_record(record: dict[str, Any]) -> DealRecord:
    """Convert a deal detail record into the DealRecord used to seed edit mode.

    Customer identity sits at the top level of the deal; company identity is
    nested under `Company` when present.
    """
    services = record.get("DealServices") or record.get("services") or []
    first_service = services[0] if services else {}

    package_id = _first(record, ["packageId", "PackageID"]) or _first(
        first_service, ["PackageID"]
    )
    mode = ServiceMode.PACKAGE if package_id else ServiceMode.INDIVIDUAL

    cadence = None
    if mode == ServiceMode.PACKAGE:
        is_monthly = _first(record, ["IsMonthly"]) or _first(first_service, ["IsMonthly"])
        cadence = BillingCadence.MONTHLY if is_monthly else BillingCadence.YEARLY

    customer_fields = to_entity_fields(record, EntityKind.CUSTOMER)
    closure_date = _first(record, ["ClosureDate", "closureDate"])
    if closure_date:
        customer_fields["closure_date"] = closure_date
    followup = _first(record, ["remarks", "followupNote"])
    if followup:
        customer_fields["followup_note"] = followup

    company_raw = record.get("Company") or {}
    company_fields = to_entity_fields(company_raw, EntityKind.COMPANY)
    if "name" not in company_fields and record.get("CompanyName"):
        company_fields["name"] = record["CompanyName"]

    category = _first(first_service, ["CategoryID"])

    return DealRecord(
        id=record["id"],
        company_id=_first(record, ["CompanyID", "companyId"]),
        customer_id=_first(record, ["CustomerID", "customerId"]),
        converted_at=_first(record, ["convertedAt", "ConvertedAt", "createdAt"]),
        company_fields=company_fields,
        customer_fields=customer_fields,
        service_region=str(
            _first(first_service, ["StateName"]) or customer_fields.get("region", "")
        ),
        service_mode=mode,
        service_category=int(category) if category is not None else None,
        service_ids=[int(item["ServiceID"]) for item in services if "ServiceID" in item]
        if mode == ServiceMode.INDIVIDUAL
        else [],
        package_id=int(package_id) if package_id else None,
        billing_cadence=cadence,
    )
