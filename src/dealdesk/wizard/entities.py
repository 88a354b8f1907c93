"""Company/Customer entity resolution: manual entry vs. existing registry record.

One EntityResolver exists per entity kind. It owns only its entity's
EntityReference inside the draft and changes it exclusively through draft
actions dispatched to the controller:

- toggle_existing_mode() opens or closes the registry search, or, when an
  existing record is already referenced, reverts to a new entry;
- select() hydrates the chosen record's full detail and references it; if
  hydration fails the search hit's own summary fields are used instead;
- clear_to_new_entry() discards the reference and every hydrated value.

Only the latest selection is applied: a hydration that completes after a
newer select() or clear_to_new_entry() is dropped.

Selecting an existing company seeds the linked customer resolver with the
company's customers and opens its search over that pool. When the company
detail cannot be fetched the customer search stays on the associate-scoped
registry; it is never widened to a broader list.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog

from src.dealdesk.backend.adapter import OperationsBackend
from src.dealdesk.backend.errors import BackendError
from src.dealdesk.wizard.generation import Generation
from src.dealdesk.wizard.schemas import (
    CompanyRecord,
    EntityKind,
    EntityReference,
    EntitySummary,
    SearchPage,
    SessionIdentity,
)
from src.dealdesk.wizard.search import DebouncedSearchClient
from src.dealdesk.wizard.transitions import DraftAction, EntityCleared, EntitySelected

logger = structlog.get_logger(__name__)


class EntityResolver:
    """Resolves one entity kind to a new entry or an existing record.

    Args:
        kind: COMPANY or CUSTOMER.
        backend: Operations backend for search and detail hydration.
        dispatch: Applies a draft action on the owning controller.
        get_reference: Returns this entity's current EntityReference.
        identity: Session identity; scopes registry search to the associate.
        debounce_seconds: Search debounce window.
        page_size: Search page size.
    """

    def __init__(
        self,
        kind: EntityKind,
        backend: OperationsBackend,
        dispatch: Callable[[DraftAction], None],
        get_reference: Callable[[], EntityReference],
        identity: SessionIdentity,
        *,
        debounce_seconds: float = 0.3,
        page_size: int = 50,
    ) -> None:
        self.kind = kind
        self._backend = backend
        self._dispatch = dispatch
        self._get_reference = get_reference
        self._identity = identity
        self._linked_customers: EntityResolver | None = None
        self._generation = Generation()

        self.search = DebouncedSearchClient(
            self._search,
            debounce_seconds=debounce_seconds,
            page_size=page_size,
            name=kind.value,
        )
        self.searching = False
        self.hydration_failed = False

    @property
    def reference(self) -> EntityReference:
        return self._get_reference()

    @property
    def in_existing_mode(self) -> bool:
        """True while searching the registry or referencing an existing record."""
        return self.searching or self.reference.is_existing

    def link_customers(self, customers: EntityResolver) -> None:
        """Route a selected company's customers into the customer resolver."""
        if self.kind != EntityKind.COMPANY or customers.kind != EntityKind.CUSTOMER:
            raise ValueError("only a company resolver can be linked to a customer resolver")
        self._linked_customers = customers

    async def _search(self, query: str, page: int, page_size: int) -> SearchPage:
        if self.kind == EntityKind.COMPANY:
            return await self._backend.search_companies(
                query, page, page_size, self._identity.associate_id
            )
        return await self._backend.search_customers(
            query, page, page_size, self._identity.associate_id
        )

    # ── Mode switching ─────────────────────────────────────────────────────

    def toggle_existing_mode(self) -> None:
        """Flip between manual entry and registry search.

        When an existing record is referenced this reverts to a new entry.
        Opening the search issues the current query (must be called from a
        running event loop unless a candidate pool is seeded).
        """
        if self.reference.is_existing:
            self.clear_to_new_entry()
            return

        self.searching = not self.searching
        if self.searching:
            self.search.set_query(self.search.query)
        logger.debug("entity.search_toggled", kind=self.kind.value, searching=self.searching)

    def seed_candidates(self, candidates: list[EntitySummary]) -> None:
        """Restrict search to a known candidate list; open it when non-empty."""
        if candidates:
            self.search.set_pool(candidates)
            if not self.reference.is_existing:
                self.searching = True
        else:
            self.search.clear_pool()
        logger.debug("entity.candidates_seeded", kind=self.kind.value, count=len(candidates))

    # ── Selection ──────────────────────────────────────────────────────────

    async def select(self, hit: EntitySummary) -> EntityReference:
        """Reference an existing record, hydrating its full detail.

        Returns the reference now visible, which is unchanged when a newer
        selection or clear superseded this one while it was hydrating.
        """
        generation = self._generation.issue()
        record: CompanyRecord | None = None
        fields: dict[str, Any]
        try:
            if self.kind == EntityKind.COMPANY:
                record = await self._backend.get_company_detail(hit.id)
                fields = record.fields
            else:
                fields = await self._backend.get_customer_detail(hit.id)
        except BackendError as exc:
            logger.warning(
                "entity.hydration_failed",
                kind=self.kind.value,
                entity_id=hit.id,
                error=str(exc),
            )
            fields = {}

        if not self._generation.is_current(generation):
            logger.debug("entity.hydration_superseded", kind=self.kind.value, entity_id=hit.id)
            return self.reference

        self.hydration_failed = not fields
        if self.hydration_failed:
            fields = _summary_fields(hit)

        self._dispatch(EntitySelected(kind=self.kind, entity_id=hit.id, fields=fields))
        self.searching = False
        logger.info(
            "entity.selected",
            kind=self.kind.value,
            entity_id=hit.id,
            hydrated=not self.hydration_failed,
        )

        if self._linked_customers is not None:
            self._linked_customers.seed_candidates(record.customers if record else [])

        return self.reference

    def clear_to_new_entry(self) -> EntityReference:
        """Reset to an empty new entry; hydrated values are discarded."""
        self._generation.issue()
        self._dispatch(EntityCleared(kind=self.kind))
        self.searching = False
        self.hydration_failed = False
        if self._linked_customers is not None:
            self._linked_customers.seed_candidates([])
        logger.debug("entity.cleared", kind=self.kind.value)
        return self.reference

    def reset(self) -> None:
        """Drop session state (wizard closed); in-flight hydrations are ignored."""
        self._generation.issue()
        self.searching = False
        self.hydration_failed = False
        self.search.clear_pool()


def _summary_fields(hit: EntitySummary) -> dict[str, Any]:
    fields = dict(hit.fields)
    for key in ("name", "mobile", "tax_id", "code"):
        value = getattr(hit, key)
        if value and key not in fields:
            fields[key] = value
    return fields
