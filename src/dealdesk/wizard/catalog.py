"""Category -> service list lookups memoized for one wizard session.

The first request for a category fetches and stores the list; later requests
return the stored list without a network call. Concurrent first requests for
the same category share one fetch. Failed fetches are not cached, so the
next request tries again. Nothing is invalidated within a session; the cache
is discarded with the wizard.

select() is the reactive entry point used when the Service step's category
changes: it applies the looked-up list only if the category is still the
selected one when the lookup completes.
"""

from __future__ import annotations

import asyncio

import structlog

from src.dealdesk.backend.adapter import OperationsBackend
from src.dealdesk.backend.errors import BackendError
from src.dealdesk.wizard.generation import Generation
from src.dealdesk.wizard.schemas import CategoryRecord, ServiceCatalogEntry

logger = structlog.get_logger(__name__)


class CategoryServiceCache:
    """Session-scoped service catalog keyed by category id.

    Args:
        backend: Operations backend used for category and service lookups.
    """

    def __init__(self, backend: OperationsBackend) -> None:
        self._backend = backend
        self._entries: dict[int, list[ServiceCatalogEntry]] = {}
        self._inflight: dict[int, asyncio.Task] = {}
        self._generation = Generation()
        self._epoch = Generation()

        self.categories: list[CategoryRecord] = []
        self.category_id: int | None = None
        self.services: list[ServiceCatalogEntry] = []

    def is_cached(self, category_id: int) -> bool:
        return category_id in self._entries

    async def load_categories(self) -> list[CategoryRecord]:
        """Load the category list; a failure leaves it empty."""
        try:
            self.categories = await self._backend.list_service_categories()
        except BackendError as exc:
            logger.warning("catalog.categories_failed", error=str(exc))
            self.categories = []
        return self.categories

    def category_name(self, category_id: int | None) -> str:
        for category in self.categories:
            if category.id == category_id:
                return category.name
        return ""

    async def get_services(self, category_id: int) -> list[ServiceCatalogEntry]:
        """Return the services for a category, fetching only on first use."""
        if category_id in self._entries:
            logger.debug("catalog.cache_hit", category_id=category_id)
            return list(self._entries[category_id])

        task = self._inflight.get(category_id)
        if task is None:
            task = asyncio.ensure_future(self._fetch(category_id))
            self._inflight[category_id] = task
        return list(await task)

    async def _fetch(self, category_id: int) -> list[ServiceCatalogEntry]:
        epoch = self._epoch.current
        try:
            services = await self._backend.list_services_by_category(category_id)
        except BackendError as exc:
            logger.warning(
                "catalog.services_failed",
                category_id=category_id,
                error=str(exc),
            )
            return []
        else:
            if not self._epoch.is_current(epoch):
                logger.debug("catalog.fetch_after_clear", category_id=category_id)
                return services
            self._entries[category_id] = services
            logger.debug(
                "catalog.services_cached",
                category_id=category_id,
                count=len(services),
            )
            return services
        finally:
            if self._inflight.get(category_id) is asyncio.current_task():
                del self._inflight[category_id]

    async def select(self, category_id: int | None) -> list[ServiceCatalogEntry]:
        """Make a category current and apply its service list (last key wins)."""
        generation = self._generation.issue()
        self.category_id = category_id
        if category_id is None:
            self.services = []
            return []

        services = await self.get_services(category_id)
        if not self._generation.is_current(generation):
            logger.debug("catalog.stale_discarded", category_id=category_id)
            return list(self.services)
        self.services = services
        return services

    def find(self, service_id: int) -> ServiceCatalogEntry | None:
        """Look a service up in the current list, then in every cached list."""
        for entry in self.services:
            if entry.service_id == service_id:
                return entry
        for entries in self._entries.values():
            for entry in entries:
                if entry.service_id == service_id:
                    return entry
        return None

    def clear(self) -> None:
        """Discard everything (wizard closed); in-flight fetches are not stored."""
        self._epoch.issue()
        self._entries.clear()
        self._inflight.clear()
        self._generation.issue()
        self.categories = []
        self.category_id = None
        self.services = []
