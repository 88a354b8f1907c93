"""Deal intake wizard controller -- the step state machine.

Owns the single DealDraft of a wizard session and gates movement through
COMPANY -> SERVICE -> CUSTOMER:

- advance() validates the current step and moves forward only when every
  required field is present; otherwise it records field errors and stays.
- retreat() always moves back and never clears data or errors.
- update_field() routes every change through reduce_draft(), then triggers
  the dependent fetches: category -> services, (region, services) -> pricing,
  region -> packages.
- submit() composes the create or update payload and reports a failed
  submission as a form-level error, leaving the draft untouched.

All mutation happens on the event loop thread; handlers run to completion
between events, so no locking is needed. Stale fetch results are discarded by
the fetchers themselves (last key wins).
"""

from __future__ import annotations

from typing import Any

import structlog

from src.dealdesk.backend.adapter import OperationsBackend
from src.dealdesk.backend.errors import BackendError
from src.dealdesk.config import Settings, get_settings
from src.dealdesk.wizard.catalog import CategoryServiceCache
from src.dealdesk.wizard.entities import EntityResolver
from src.dealdesk.wizard.locations import RegionDirectory, district_options, is_valid_district
from src.dealdesk.wizard.packages import PackageResolver
from src.dealdesk.wizard.payloads import (
    CreateDealPayload,
    PayloadComposer,
    UpdateDealPayload,
    build_service_lines,
)
from src.dealdesk.wizard.pricing import PricingEngine
from src.dealdesk.wizard.schemas import (
    STEP_ORDER,
    DealDraft,
    DealOperation,
    DealRecord,
    EntityKind,
    EntityReference,
    LineTotal,
    ServiceMode,
    SessionIdentity,
    SubmissionResult,
    WizardStep,
)
from src.dealdesk.wizard.transitions import (
    DraftAction,
    FieldChanged,
    InvalidFieldError,
    reduce_draft,
    split_key,
)
from src.dealdesk.wizard.validation import STEP_FIELDS, validate_step

logger = structlog.get_logger(__name__)

# Pre-fill keys applied first so later selections satisfy the mode invariants.
_DEFAULT_ORDER = ["service_mode", "service_region", "service_category"]


class WizardStateError(RuntimeError):
    """Raised when the wizard is driven out of order (e.g. input before open())."""


def draft_from_record(record: DealRecord) -> DealDraft:
    """Seed an edit-mode draft from a remote deal."""
    company = (
        EntityReference.existing(record.company_id, record.company_fields)
        if record.company_id is not None
        else EntityReference.new(record.company_fields)
    )
    customer = (
        EntityReference.existing(record.customer_id, record.customer_fields)
        if record.customer_id is not None
        else EntityReference.new(record.customer_fields)
    )
    return DealDraft(
        company=company,
        customer=customer,
        service_region=record.service_region,
        service_mode=record.service_mode,
        service_category=record.service_category,
        selected_service_ids=list(record.service_ids),
        selected_package_id=record.package_id,
        billing_cadence=record.billing_cadence,
        deal_id=record.id,
        deal_company_id=record.company_id,
        deal_customer_id=record.customer_id,
        converted_at=record.converted_at,
    )


class WizardController:
    """Step-gated deal intake wizard.

    Args:
        backend: Operations backend for every remote lookup and submission.
        identity: Session identity (associate/employee/franchisee, default
            region), passed explicitly rather than read from global state.
        settings: Application settings; defaults to get_settings().
    """

    def __init__(
        self,
        backend: OperationsBackend,
        identity: SessionIdentity,
        *,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._backend = backend
        self._identity = identity

        self.regions = RegionDirectory(backend)
        self.catalog = CategoryServiceCache(backend)
        self.pricing = PricingEngine(backend, self.regions)
        self.packages = PackageResolver(backend, self.regions)
        self.composer = PayloadComposer(
            backend, identity, default_country=settings.DEFAULT_COUNTRY
        )

        resolver_options = {
            "debounce_seconds": settings.SEARCH_DEBOUNCE_SECONDS,
            "page_size": settings.SEARCH_PAGE_SIZE,
        }
        self.company = EntityResolver(
            EntityKind.COMPANY,
            backend,
            self.dispatch,
            lambda: self.draft.company,
            identity,
            **resolver_options,
        )
        self.customer = EntityResolver(
            EntityKind.CUSTOMER,
            backend,
            self.dispatch,
            lambda: self.draft.customer,
            identity,
            **resolver_options,
        )
        self.company.link_customers(self.customer)

        self.draft = DealDraft()
        self.current_step = WizardStep.COMPANY
        self.errors: dict[str, str] = {}
        self.form_error: str | None = None
        self.is_open = False
        self.is_submitting = False
        self.last_result: SubmissionResult | None = None

    # ── Lifecycle ──────────────────────────────────────────────────────────

    @property
    def operation(self) -> DealOperation:
        return DealOperation.UPDATE if self.draft.is_edit else DealOperation.CREATE

    async def open(
        self,
        deal_id: int | str | None = None,
        *,
        defaults: dict[str, Any] | None = None,
        start_step: WizardStep | None = None,
    ) -> bool:
        """Start a session: hydrate an existing deal or begin a new draft.

        Args:
            deal_id: Deal to edit. The draft is hydrated from the remote
                record before any input is accepted.
            defaults: Field values pre-filled into a new draft (e.g. a
                category and services chosen from the catalog).
            start_step: Step to resume at. Earlier steps must validate;
                otherwise the wizard stops at the first invalid one.

        Returns:
            True once the wizard accepts input; False if the deal to edit
            could not be loaded (form_error is set).
        """
        self._reset()

        if deal_id is not None:
            try:
                record = await self._backend.get_deal_detail(deal_id)
            except BackendError as exc:
                logger.warning("wizard.deal_load_failed", deal_id=deal_id, error=str(exc))
                self.form_error = exc.message or "Could not load the deal"
                return False
            self.draft = draft_from_record(record)
        else:
            draft = DealDraft(service_region=self._identity.default_region)
            for key, value in _ordered(defaults or {}):
                if key == "lead_id":
                    draft = draft.model_copy(update={"lead_id": value})
                else:
                    draft = reduce_draft(draft, FieldChanged(key=key, value=value))
            self.draft = draft

        await self.regions.load()
        await self.catalog.load_categories()
        await self._refresh_dependents(None)

        if start_step is not None:
            self.current_step = self._resume_step(start_step)

        self.is_open = True
        logger.info(
            "wizard.opened",
            operation=self.operation.value,
            deal_id=self.draft.deal_id,
            step=self.current_step.value,
        )
        return True

    def close(self) -> None:
        """Destroy the draft and every session cache."""
        self._reset()
        logger.debug("wizard.closed")

    def _reset(self) -> None:
        self.draft = DealDraft()
        self.current_step = WizardStep.COMPANY
        self.errors = {}
        self.form_error = None
        self.is_open = False
        self.is_submitting = False
        self.last_result = None
        self.regions.clear()
        self.catalog.clear()
        self.pricing.clear()
        self.packages.clear()
        for resolver in (self.company, self.customer):
            resolver.reset()

    def _require_open(self) -> None:
        if not self.is_open:
            raise WizardStateError("open() the wizard before driving it")

    def _resume_step(self, target: WizardStep) -> WizardStep:
        for step in STEP_ORDER[: STEP_ORDER.index(target)]:
            if validate_step(step, self.draft):
                return step
        return target

    # ── Draft mutation ─────────────────────────────────────────────────────

    def dispatch(self, action: DraftAction) -> None:
        """Apply a draft action (used by the entity resolvers)."""
        self.draft = reduce_draft(self.draft, action)

    async def update_field(self, key: str, value: Any) -> bool:
        """Change one field and run its side effects.

        Returns False (and records a field error) when the value is refused,
        e.g. a district outside the selected region.

        Raises:
            InvalidFieldError: If the key is not a known field.
        """
        self._require_open()
        kind, name = split_key(key)

        if kind is not None and name == "district":
            region = self._entity_ref(kind).fields.get("region", "")
            if not is_valid_district(region, value or ""):
                self.errors[key] = "Select a district of the chosen region"
                return False

        before = self.draft
        try:
            self.dispatch(FieldChanged(key=key, value=value))
        except InvalidFieldError as exc:
            self.errors[key] = exc.reason
            return False

        self.errors.pop(key, None)
        self.form_error = None
        await self._refresh_dependents(before)
        return True

    def _entity_ref(self, kind: EntityKind) -> EntityReference:
        return self.draft.company if kind == EntityKind.COMPANY else self.draft.customer

    async def _refresh_dependents(self, before: DealDraft | None) -> None:
        """Refetch whatever depends on the fields that changed.

        With no previous draft (on open) everything present is fetched.
        """
        draft = self.draft

        def changed(attr: str) -> bool:
            return before is None or getattr(before, attr) != getattr(draft, attr)

        if changed("service_category"):
            await self.catalog.select(draft.service_category)

        mode_changed = changed("service_mode")
        if draft.service_mode == ServiceMode.INDIVIDUAL:
            if mode_changed:
                self.packages.clear()
            if mode_changed or changed("service_region") or changed("selected_service_ids"):
                await self.pricing.quote(draft.service_region, draft.selected_service_ids)
        else:
            if mode_changed:
                self.pricing.clear()
            if mode_changed or changed("service_region"):
                await self.packages.list_packages(draft.service_region)

    # ── Read-side helpers ──────────────────────────────────────────────────

    def district_options(self, kind: EntityKind) -> list[str]:
        """Districts selectable for an entity under its current region."""
        return district_options(self._entity_ref(kind).fields.get("region", ""))

    @property
    def line_totals(self) -> list[LineTotal]:
        """Cadence-specific totals of the selected package."""
        return self.packages.line_totals(
            self.draft.selected_package_id, self.draft.billing_cadence
        )

    # ── Navigation ─────────────────────────────────────────────────────────

    def advance(self) -> bool:
        """Validate the current step and move forward if it passes.

        On the last step a passing validation returns True without moving;
        submit() completes the wizard.
        """
        self._require_open()
        step = self.current_step
        step_errors = validate_step(step, self.draft)

        # Replace this step's errors with exactly the fields now missing.
        self.errors = {
            key: message for key, message in self.errors.items() if key not in STEP_FIELDS[step]
        }
        if step_errors:
            self.errors.update(step_errors)
            logger.debug("wizard.advance_blocked", step=step.value, missing=sorted(step_errors))
            return False

        index = STEP_ORDER.index(step)
        if index + 1 < len(STEP_ORDER):
            self.current_step = STEP_ORDER[index + 1]
            logger.debug("wizard.advanced", from_step=step.value, to_step=self.current_step.value)
        return True

    def retreat(self) -> bool:
        """Move back one step; data and errors are kept."""
        self._require_open()
        index = STEP_ORDER.index(self.current_step)
        if index > 0:
            self.current_step = STEP_ORDER[index - 1]
        return True

    # ── Submission ─────────────────────────────────────────────────────────

    async def compose(self) -> CreateDealPayload | UpdateDealPayload:
        """Build the payload for the current draft and operation."""
        draft = self.draft
        region = await self.regions.resolve(draft.service_region)
        package = self.packages.find(draft.selected_package_id)
        services = build_service_lines(
            draft,
            region=region,
            quotes=self.pricing.quotes,
            catalog=self.catalog.services,
            category_name=self.catalog.category_name(draft.service_category),
            package=package,
            line_totals=self.line_totals,
        )
        return self.composer.compose(
            draft, draft.company, draft.customer, services, self.operation
        )

    async def submit(self) -> SubmissionResult:
        """Validate every step, then create or update the deal.

        A failure is returned, never raised: form_error carries its message
        and the draft stays as entered. A success ends the session: the draft
        and caches are discarded and only last_result is kept.

        Raises:
            WizardStateError: If the wizard is not open or a submission is
                already in flight.
        """
        self._require_open()
        if self.is_submitting:
            raise WizardStateError("a submission is already in flight")

        for step in STEP_ORDER:
            step_errors = validate_step(step, self.draft)
            if step_errors:
                self.errors.update(step_errors)
                self.current_step = step
                result = SubmissionResult(
                    success=False, message="Please complete the required fields"
                )
                self.last_result = result
                return result

        operation = self.operation
        self.is_submitting = True
        try:
            payload = await self.compose()
            result = await self.composer.submit(payload)
        finally:
            self.is_submitting = False

        logger.info(
            "wizard.submitted",
            operation=operation.value,
            success=result.success,
            deal_id=result.deal_id,
        )
        if result.success:
            self._reset()
        else:
            self.form_error = result.message
        self.last_result = result
        return result


def _ordered(defaults: dict[str, Any]) -> list[tuple[str, Any]]:
    first = [(key, defaults[key]) for key in _DEFAULT_ORDER if key in defaults]
    rest = [(key, value) for key, value in defaults.items() if key not in _DEFAULT_ORDER]
    return first + rest
