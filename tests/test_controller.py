"""Unit tests for the wizard controller.

Tests step gating, retreat, field side effects (services, pricing,
packages), edit-mode hydration, pre-filled defaults, and submission
success/failure handling. The backend is an AsyncMock.
"""

from __future__ import annotations

import asyncio
from itertools import combinations

import pytest

from src.dealdesk.backend.errors import BackendRejectedError, BackendUnavailableError
from src.dealdesk.wizard.controller import WizardController, WizardStateError
from src.dealdesk.wizard.schemas import (
    BillingCadence,
    DealDraft,
    DealOperation,
    DealRecord,
    EntityKind,
    EntityReference,
    EntitySummary,
    ServiceMode,
    WizardStep,
)
from src.dealdesk.wizard.transitions import InvalidFieldError
from src.dealdesk.wizard.validation import COMPANY_REQUIRED, CUSTOMER_REQUIRED

COMPANY_VALUES = {"name": "Acme Traders", "region": "Kerala", "district": "Ernakulam"}
CUSTOMER_VALUES = {
    "name": "Anita Menon",
    "mobile": "9847012345",
    "email": "anita@example.com",
    "region": "Kerala",
    "district": "Thrissur",
    "closure_date": "2026-11-30",
}


# ── Helpers ────────────────────────────────────────────────────────────────


async def _fill(wizard: WizardController, prefix: str, values: dict) -> None:
    # Region before district so the district is accepted.
    ordered = sorted(values.items(), key=lambda item: item[0] != "region")
    for name, value in ordered:
        assert await wizard.update_field(f"{prefix}.{name}", value)


async def _fill_service(wizard: WizardController) -> None:
    await wizard.update_field("service_region", "Kerala")
    await wizard.update_field("service_category", 5)
    await wizard.update_field("selected_service_ids", [256, 257])


def _missing_subsets(required: list[str]) -> list[tuple[str, ...]]:
    return [
        subset
        for size in range(1, len(required) + 1)
        for subset in combinations(required, size)
    ]


async def _wait_for(predicate, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def _make_deal_record(**overrides) -> DealRecord:
    defaults = {
        "id": 555,
        "company_id": 42,
        "customer_id": 7,
        "converted_at": "2026-09-01T10:00:00Z",
        "company_fields": dict(COMPANY_VALUES),
        "customer_fields": dict(CUSTOMER_VALUES),
        "service_region": "Kerala",
        "service_category": 5,
        "service_ids": [256],
    }
    defaults.update(overrides)
    return DealRecord(**defaults)


# ── Lifecycle ──────────────────────────────────────────────────────────────


class TestLifecycle:
    async def test_input_before_open_is_refused(self, backend, identity, settings):
        controller = WizardController(backend, identity, settings=settings)

        with pytest.raises(WizardStateError):
            await controller.update_field("company.name", "Acme")
        with pytest.raises(WizardStateError):
            controller.advance()

    async def test_open_loads_regions_and_categories(self, wizard, backend):
        assert wizard.is_open is True
        assert wizard.operation == DealOperation.CREATE
        assert [c.id for c in wizard.catalog.categories] == [5, 6]
        backend.list_regions.assert_awaited_once()

    async def test_close_discards_draft_and_caches(self, wizard):
        await _fill(wizard, "company", COMPANY_VALUES)
        await wizard.update_field("service_category", 5)

        wizard.close()

        assert wizard.is_open is False
        assert wizard.draft.company.fields == {}
        assert wizard.catalog.is_cached(5) is False

    async def test_close_forgets_regions(self, wizard, backend):
        assert [r.name for r in wizard.regions.regions] == ["Kerala", "Tamil Nadu"]

        wizard.close()

        assert wizard.regions.regions == []
        await wizard.open()
        assert backend.list_regions.await_count == 2

    async def test_unknown_key_raises(self, wizard):
        with pytest.raises(InvalidFieldError):
            await wizard.update_field("company.shoe_size", 44)


# ── Step gating ────────────────────────────────────────────────────────────


class TestStepGating:
    """advance() moves only when every required field is present."""

    @pytest.mark.parametrize("missing", _missing_subsets(COMPANY_REQUIRED))
    async def test_company_step_blocks_on_exactly_missing_fields(self, wizard, missing):
        values = {k: v for k, v in COMPANY_VALUES.items() if k not in missing}
        wizard.draft = DealDraft(company=EntityReference.new(values))

        assert wizard.advance() is False
        assert wizard.current_step == WizardStep.COMPANY
        assert set(wizard.errors) == {f"company.{name}" for name in missing}

    @pytest.mark.parametrize("missing", _missing_subsets(CUSTOMER_REQUIRED))
    async def test_customer_step_blocks_on_exactly_missing_fields(self, wizard, missing):
        values = {k: v for k, v in CUSTOMER_VALUES.items() if k not in missing}
        wizard.draft = DealDraft(customer=EntityReference.new(values))
        wizard.current_step = WizardStep.CUSTOMER

        assert wizard.advance() is False
        assert set(wizard.errors) == {f"customer.{name}" for name in missing}

    async def test_full_walk_forward(self, wizard):
        await _fill(wizard, "company", COMPANY_VALUES)
        assert wizard.advance() is True
        assert wizard.current_step == WizardStep.SERVICE

        assert wizard.advance() is False
        await _fill_service(wizard)
        assert wizard.advance() is True
        assert wizard.current_step == WizardStep.CUSTOMER

        await _fill(wizard, "customer", CUSTOMER_VALUES)
        assert wizard.advance() is True
        assert wizard.current_step == WizardStep.CUSTOMER
        assert wizard.errors == {}

    async def test_editing_a_field_clears_its_error(self, wizard):
        wizard.advance()
        assert "company.name" in wizard.errors

        await wizard.update_field("company.name", "Acme Traders")

        assert "company.name" not in wizard.errors
        assert "company.region" in wizard.errors

    async def test_retreat_keeps_data_and_errors(self, wizard):
        await _fill(wizard, "company", COMPANY_VALUES)
        wizard.advance()
        wizard.advance()
        service_errors = dict(wizard.errors)

        assert wizard.retreat() is True

        assert wizard.current_step == WizardStep.COMPANY
        assert wizard.draft.company.fields["name"] == "Acme Traders"
        assert wizard.errors == service_errors

    async def test_retreat_on_first_step_stays(self, wizard):
        assert wizard.retreat() is True
        assert wizard.current_step == WizardStep.COMPANY


# ── Field side effects ─────────────────────────────────────────────────────


class TestFieldSideEffects:
    async def test_district_outside_region_is_refused(self, wizard):
        await wizard.update_field("company.region", "Kerala")

        accepted = await wizard.update_field("company.district", "Chennai")

        assert accepted is False
        assert "company.district" in wizard.errors
        assert wizard.draft.company.fields["district"] == ""

    async def test_region_change_clears_district(self, wizard):
        await _fill(wizard, "company", COMPANY_VALUES)

        await wizard.update_field("company.region", "Tamil Nadu")

        assert wizard.draft.company.fields["district"] == ""
        assert "Chennai" in wizard.district_options(EntityKind.COMPANY)

    async def test_category_change_loads_services_once(self, wizard, backend):
        await wizard.update_field("service_category", 5)
        await wizard.update_field("service_category", 6)
        await wizard.update_field("service_category", 5)

        assert [s.service_id for s in wizard.catalog.services] == [256, 257]
        assert backend.list_services_by_category.await_count == 2

    async def test_services_and_region_drive_pricing(self, wizard, backend):
        await _fill_service(wizard)
        assert [q.service_id for q in wizard.pricing.quotes] == [256, 257]

        await wizard.update_field("service_region", "Tamil Nadu")

        assert backend.quote_pricing.await_args.args == (31, [256, 257])
        assert wizard.pricing.quote_for(256).professional_fee == 310.0

    async def test_package_mode_loads_packages_and_clears_pricing(self, wizard, backend):
        await _fill_service(wizard)

        await wizard.update_field("service_mode", "package")

        assert wizard.draft.selected_service_ids == []
        assert wizard.pricing.quotes == []
        backend.list_packages.assert_awaited_once_with(18)

    async def test_cadence_switch_recomputes_line_totals(self, wizard, backend):
        await wizard.update_field("service_region", "Kerala")
        await wizard.update_field("service_mode", "package")
        await wizard.update_field("selected_package_id", 9)

        assert [line.fee for line in wizard.line_totals] == [2500.0, 4000.0]
        await wizard.update_field("billing_cadence", "monthly")

        assert [line.fee for line in wizard.line_totals] == [250.0, 400.0]
        backend.list_packages.assert_awaited_once()

    async def test_refused_service_selection_records_error(self, wizard):
        await wizard.update_field("service_mode", "package")

        accepted = await wizard.update_field("selected_service_ids", [256])

        assert accepted is False
        assert "selected_service_ids" in wizard.errors


# ── Opening ────────────────────────────────────────────────────────────────


class TestOpen:
    async def test_edit_hydrates_draft_before_input(self, backend, identity, settings):
        backend.get_deal_detail.return_value = _make_deal_record()
        controller = WizardController(backend, identity, settings=settings)

        assert await controller.open(555) is True

        assert controller.operation == DealOperation.UPDATE
        assert controller.draft.company.id == 42
        assert controller.draft.customer.fields["closure_date"] == "2026-11-30"
        assert controller.draft.selected_service_ids == [256]
        assert [s.service_id for s in controller.catalog.services] == [256, 257]
        assert [q.service_id for q in controller.pricing.quotes] == [256]

    async def test_edit_package_deal_loads_packages(self, backend, identity, settings):
        backend.get_deal_detail.return_value = _make_deal_record(
            service_mode=ServiceMode.PACKAGE,
            service_category=None,
            service_ids=[],
            package_id=9,
            billing_cadence=BillingCadence.MONTHLY,
        )
        controller = WizardController(backend, identity, settings=settings)

        await controller.open(555)

        assert [line.fee for line in controller.line_totals] == [250.0, 400.0]

    async def test_failed_deal_load_refuses_input(self, backend, identity, settings):
        backend.get_deal_detail.side_effect = BackendUnavailableError("timeout")
        controller = WizardController(backend, identity, settings=settings)

        assert await controller.open(555) is False

        assert controller.is_open is False
        assert controller.form_error == "timeout"

    async def test_defaults_prefill_new_draft(self, backend, identity, settings):
        identity.default_region = "Kerala"
        controller = WizardController(backend, identity, settings=settings)

        await controller.open(
            defaults={"selected_service_ids": [256], "service_category": 5, "lead_id": 31},
            start_step=WizardStep.SERVICE,
        )

        assert controller.draft.service_region == "Kerala"
        assert controller.draft.selected_service_ids == [256]
        assert controller.draft.lead_id == 31
        # Company is still empty, so the wizard resumes there.
        assert controller.current_step == WizardStep.COMPANY
        backend.quote_pricing.assert_awaited_once_with(18, [256])

    async def test_start_step_reached_when_earlier_steps_valid(self, backend, identity, settings):
        backend.get_deal_detail.return_value = _make_deal_record()
        controller = WizardController(backend, identity, settings=settings)

        await controller.open(555, start_step=WizardStep.CUSTOMER)

        assert controller.current_step == WizardStep.CUSTOMER


# ── Submission ─────────────────────────────────────────────────────────────


class TestSubmit:
    async def _complete(self, wizard: WizardController) -> None:
        await _fill(wizard, "company", COMPANY_VALUES)
        await _fill_service(wizard)
        await _fill(wizard, "customer", CUSTOMER_VALUES)

    async def test_create_submits_composed_payload(self, wizard, backend):
        await self._complete(wizard)

        result = await wizard.submit()

        assert result.success is True
        assert result.deal_id == 1001
        body = backend.create_deal.await_args.args[0]
        assert body["dealType"] == "Individual"
        assert body["company"]["name"] == "Acme Traders"
        assert body["customer"]["closureDate"] == "2026-11-30"
        assert [line["ServiceID"] for line in body["services"]] == [256, 257]
        assert body["services"][0]["StateID"] == 18
        assert body["services"][0]["CategoryName"] == "Registrations"
        assert body["AssociateID"] == 77

    async def test_incomplete_submit_jumps_to_first_invalid_step(self, wizard, backend):
        await _fill(wizard, "company", COMPANY_VALUES)
        wizard.current_step = WizardStep.CUSTOMER

        result = await wizard.submit()

        assert result.success is False
        assert wizard.current_step == WizardStep.SERVICE
        backend.create_deal.assert_not_awaited()

    async def test_rejected_submit_keeps_draft(self, wizard, backend):
        await self._complete(wizard)
        backend.create_deal.side_effect = BackendRejectedError(
            "Mobile number already registered", status_code=409
        )
        draft_before = wizard.draft.model_copy(deep=True)

        result = await wizard.submit()

        assert result.success is False
        assert result.message == "Mobile number already registered"
        assert wizard.form_error == "Mobile number already registered"
        assert wizard.draft == draft_before
        assert wizard.is_submitting is False

    async def test_existing_customer_submits_reference_only(self, wizard, backend):
        await _fill(wizard, "company", COMPANY_VALUES)
        await _fill_service(wizard)
        backend.get_customer_detail.return_value = {
            k: v for k, v in CUSTOMER_VALUES.items() if k != "closure_date"
        }
        await wizard.customer.select(EntitySummary(id=7, name="Anita Menon"))
        await wizard.update_field("customer.closure_date", "2026-12-15")

        result = await wizard.submit()

        assert result.success is True
        customer = backend.create_deal.await_args.args[0]["customer"]
        assert customer["existingCustomerId"] == 7
        assert customer["closureDate"] == "2026-12-15"
        assert "name" not in customer and "mobile" not in customer

    async def test_edit_submits_update(self, backend, identity, settings):
        backend.get_deal_detail.return_value = _make_deal_record()
        controller = WizardController(backend, identity, settings=settings)
        await controller.open(555)
        await controller.update_field("customer.followup_note", "renewal in March")

        result = await controller.submit()

        assert result.success is True
        assert result.deal_id == 555
        body = backend.update_deal.await_args.args[0]
        assert body["id"] == 555
        assert body["companyId"] == 42
        assert body["customerId"] == 7
        assert body["convertedAt"] == "2026-09-01T10:00:00Z"
        assert body["followupNote"] == "renewal in March"
        backend.create_deal.assert_not_awaited()

    async def test_success_ends_session(self, wizard, backend):
        await self._complete(wizard)

        result = await wizard.submit()

        assert result.success is True
        assert wizard.is_open is False
        assert wizard.last_result == result
        assert wizard.draft == DealDraft()
        assert wizard.current_step == WizardStep.COMPANY

    async def test_second_submit_after_success_does_not_create_again(self, wizard, backend):
        await self._complete(wizard)
        await wizard.submit()

        with pytest.raises(WizardStateError):
            await wizard.submit()

        backend.create_deal.assert_awaited_once()

    async def test_submit_while_in_flight_is_refused(self, wizard, backend):
        await self._complete(wizard)
        release = asyncio.Event()

        async def slow_create(payload):
            await release.wait()
            return 1001

        backend.create_deal.side_effect = slow_create
        first = asyncio.create_task(wizard.submit())
        await _wait_for(lambda: backend.create_deal.await_count == 1)

        assert wizard.is_submitting is True
        with pytest.raises(WizardStateError):
            await wizard.submit()

        release.set()
        result = await first
        assert result.success is True
        backend.create_deal.assert_awaited_once()
