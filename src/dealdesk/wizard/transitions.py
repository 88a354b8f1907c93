"""Draft reducer -- every DealDraft mutation and its clearing rules in one place.

reduce_draft(draft, action) returns a new DealDraft; the input is never
mutated. Clearing rules:

- changing an entity's region clears that entity's district;
- leaving individual mode clears the selected services; leaving package mode
  clears the selected package and billing cadence;
- changing the service category clears the selected services;
- changing the service region in package mode clears the selected package;
- selecting an existing entity replaces its fields; clearing it resets the
  reference to an empty new entry.
"""

from __future__ import annotations

from typing import Any, Union

from pydantic import BaseModel, Field

from src.dealdesk.wizard.schemas import (
    BillingCadence,
    DealDraft,
    EntityKind,
    EntityReference,
    ServiceMode,
)

COMPANY_FIELDS: frozenset[str] = frozenset(
    {"name", "tax_id", "mobile", "email", "country", "region", "district", "language"}
)
CUSTOMER_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "mobile",
        "email",
        "country",
        "pincode",
        "region",
        "district",
        "language",
        "communication_consent",
        "closure_date",
        "followup_note",
    }
)
SERVICE_FIELDS: frozenset[str] = frozenset(
    {
        "service_region",
        "service_mode",
        "service_category",
        "selected_service_ids",
        "selected_package_id",
        "billing_cadence",
    }
)

_ENTITY_FIELDS: dict[EntityKind, frozenset[str]] = {
    EntityKind.COMPANY: COMPANY_FIELDS,
    EntityKind.CUSTOMER: CUSTOMER_FIELDS,
}


class InvalidFieldError(ValueError):
    """Raised when a field key is unknown or a value breaks a draft invariant."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"{key}: {reason}")


# ── Actions ─────────────────────────────────────────────────────────────────


class FieldChanged(BaseModel):
    key: str
    value: Any = None


class EntitySelected(BaseModel):
    kind: EntityKind
    entity_id: int | str
    fields: dict[str, Any] = Field(default_factory=dict)


class EntityCleared(BaseModel):
    kind: EntityKind


DraftAction = Union[FieldChanged, EntitySelected, EntityCleared]


def split_key(key: str) -> tuple[EntityKind | None, str]:
    """Split `company.name` into (COMPANY, "name"); bare keys map to (None, key)."""
    prefix, dot, name = key.partition(".")
    if not dot:
        if key not in SERVICE_FIELDS:
            raise InvalidFieldError(key, "unknown field")
        return None, key
    try:
        kind = EntityKind(prefix)
    except ValueError:
        raise InvalidFieldError(key, "unknown entity") from None
    if name not in _ENTITY_FIELDS[kind]:
        raise InvalidFieldError(key, "unknown field")
    return kind, name


# ── Reducer ─────────────────────────────────────────────────────────────────


def reduce_draft(draft: DealDraft, action: DraftAction) -> DealDraft:
    """Apply one action to a draft and return the resulting draft."""
    draft = draft.model_copy(deep=True)

    if isinstance(action, EntitySelected):
        _set_ref(draft, action.kind, EntityReference.existing(action.entity_id, action.fields))
        return draft

    if isinstance(action, EntityCleared):
        _set_ref(draft, action.kind, EntityReference.new())
        return draft

    kind, name = split_key(action.key)
    if kind is not None:
        _change_entity_field(_get_ref(draft, kind), name, action.value)
    else:
        _change_service_field(draft, name, action.value)
    return draft


def _get_ref(draft: DealDraft, kind: EntityKind) -> EntityReference:
    return draft.company if kind == EntityKind.COMPANY else draft.customer


def _set_ref(draft: DealDraft, kind: EntityKind, ref: EntityReference) -> None:
    if kind == EntityKind.COMPANY:
        draft.company = ref
    else:
        draft.customer = ref


def _change_entity_field(ref: EntityReference, name: str, value: Any) -> None:
    if name == "region" and value != ref.fields.get("region"):
        ref.fields["district"] = ""
    ref.fields[name] = value


def _change_service_field(draft: DealDraft, name: str, value: Any) -> None:
    if name == "service_mode":
        _switch_mode(draft, ServiceMode(value))

    elif name == "service_region":
        value = value or ""
        if value != draft.service_region and draft.service_mode == ServiceMode.PACKAGE:
            draft.selected_package_id = None
        draft.service_region = value

    elif name == "service_category":
        category = int(value) if value not in (None, "") else None
        if category != draft.service_category:
            draft.selected_service_ids = []
        draft.service_category = category

    elif name == "selected_service_ids":
        ids = [int(item) for item in value or []]
        if ids and draft.service_mode != ServiceMode.INDIVIDUAL:
            raise InvalidFieldError(name, "services can only be selected in individual mode")
        # Keep selection order, drop duplicates.
        draft.selected_service_ids = list(dict.fromkeys(ids))

    elif name == "selected_package_id":
        package_id = int(value) if value not in (None, "") else None
        if package_id is not None and draft.service_mode != ServiceMode.PACKAGE:
            raise InvalidFieldError(name, "a package can only be selected in package mode")
        draft.selected_package_id = package_id
        if package_id is not None and draft.billing_cadence is None:
            draft.billing_cadence = BillingCadence.YEARLY

    elif name == "billing_cadence":
        if draft.service_mode != ServiceMode.PACKAGE and value is not None:
            raise InvalidFieldError(name, "cadence only applies in package mode")
        draft.billing_cadence = BillingCadence(value) if value is not None else None


def _switch_mode(draft: DealDraft, mode: ServiceMode) -> None:
    if mode == draft.service_mode:
        return
    if draft.service_mode == ServiceMode.INDIVIDUAL:
        draft.selected_service_ids = []
    else:
        draft.selected_package_id = None
        draft.billing_cadence = None
    draft.service_mode = mode
