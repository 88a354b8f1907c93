"""Per-step required-field validation for the deal intake wizard.

Each validator returns a field -> message map; an empty map means the step
may be left. Field keys match the keys accepted by update_field():
entity fields are prefixed (`company.name`, `customer.closure_date`),
service fields are bare (`service_region`, `selected_service_ids`).
"""

from __future__ import annotations

from typing import Any

from src.dealdesk.wizard.schemas import DealDraft, ServiceMode, WizardStep

REQUIRED = "Required"

COMPANY_REQUIRED: list[str] = ["name", "region", "district"]
CUSTOMER_REQUIRED: list[str] = ["name", "mobile", "email", "region", "district", "closure_date"]

# Every key a step's validator can report, used to clear a step's errors.
STEP_FIELDS: dict[WizardStep, set[str]] = {
    WizardStep.COMPANY: {f"company.{name}" for name in COMPANY_REQUIRED},
    WizardStep.SERVICE: {
        "service_region",
        "service_category",
        "selected_service_ids",
        "selected_package_id",
    },
    WizardStep.CUSTOMER: {f"customer.{name}" for name in CUSTOMER_REQUIRED},
}


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def validate_company(draft: DealDraft) -> dict[str, str]:
    fields = draft.company.fields
    return {
        f"company.{name}": REQUIRED for name in COMPANY_REQUIRED if _is_blank(fields.get(name))
    }


def validate_service(draft: DealDraft) -> dict[str, str]:
    errors: dict[str, str] = {}
    if _is_blank(draft.service_region):
        errors["service_region"] = REQUIRED

    if draft.service_mode == ServiceMode.INDIVIDUAL:
        if draft.service_category is None:
            errors["service_category"] = REQUIRED
        if not draft.selected_service_ids:
            errors["selected_service_ids"] = "Select at least one service"
    elif draft.selected_package_id is None:
        errors["selected_package_id"] = REQUIRED

    return errors


def validate_customer(draft: DealDraft) -> dict[str, str]:
    fields = draft.customer.fields
    return {
        f"customer.{name}": REQUIRED for name in CUSTOMER_REQUIRED if _is_blank(fields.get(name))
    }


_VALIDATORS = {
    WizardStep.COMPANY: validate_company,
    WizardStep.SERVICE: validate_service,
    WizardStep.CUSTOMER: validate_customer,
}


def validate_step(step: WizardStep, draft: DealDraft) -> dict[str, str]:
    """Run the validator for one step."""
    return _VALIDATORS[step](draft)
