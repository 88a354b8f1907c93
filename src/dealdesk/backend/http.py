"""Async HTTP client for the remote operations API.

Implements OperationsBackend over httpx with retry logic (tenacity,
exponential backoff 1-10s) on transient failures only. Rejections (4xx or a
`success: false` envelope) are raised immediately as BackendRejectedError.
All methods are async and log with structlog.

Every endpoint answers with a `{success, data, message}` envelope. A 200
envelope whose records cannot be mapped (missing ids, wrong types) is
reported as BackendRejectedError, so callers see one failure type.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.dealdesk.backend.adapter import OperationsBackend
from src.dealdesk.backend.errors import BackendRejectedError, BackendUnavailableError
from src.dealdesk.backend.field_mapping import (
    to_category,
    to_company_record,
    to_deal_record,
    to_entity_fields,
    to_entity_summary,
    to_package_offering,
    to_pricing_quote,
    to_region,
    to_service_entry,
)
from src.dealdesk.config import Settings, get_settings
from src.dealdesk.wizard.schemas import (
    CategoryRecord,
    CompanyRecord,
    DealRecord,
    EntityKind,
    PackageOffering,
    PricingQuote,
    RegionRecord,
    SearchPage,
    ServiceCatalogEntry,
)

logger = structlog.get_logger(__name__)


class HttpOperationsBackend(OperationsBackend):
    """httpx-backed client for the operations API.

    Args:
        settings: Application settings (base URL, token, timeouts, retries).
        transport: Optional httpx transport, used to inject a MockTransport
            in tests.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._base_url = self._settings.API_BASE_URL.rstrip("/")
        self._headers = {"Content-Type": "application/json"}
        if self._settings.API_TOKEN:
            self._headers["Authorization"] = f"Bearer {self._settings.API_TOKEN}"
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        """Create a new httpx client with specified timeout."""
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=timeout,
            transport=self._transport,
        )

    async def _send(
        self,
        method: str,
        path: str,
        *,
        timeout: float,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            async with self._client(timeout) as client:
                response = await client.request(method, path, json=json, params=params)
        except (httpx.TransportError, httpx.TimeoutException) as exc:
            raise BackendUnavailableError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 500:
            raise BackendUnavailableError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400:
            message = body.get("message") if isinstance(body, dict) else None
            raise BackendRejectedError(
                message or f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )

        if isinstance(body, dict) and body.get("success") is False:
            raise BackendRejectedError(
                body.get("message") or f"{method} {path} was not successful",
                status_code=response.status_code,
            )
        return body

    async def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: float | None = None,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send one request, retrying transient failures with backoff."""
        timeout = timeout or self._settings.HTTP_TIMEOUT_READ
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._settings.HTTP_MAX_RETRIES),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(BackendUnavailableError),
            reraise=True,
        ):
            with attempt:
                return await self._send(method, path, timeout=timeout, json=json, params=params)

    @contextmanager
    def _mapping(self, path: str) -> Iterator[None]:
        """Report a record that cannot be mapped as a rejected response."""
        try:
            yield
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("backend.malformed_response", path=path, error=str(exc))
            raise BackendRejectedError(f"malformed response from {path}") from exc

    @staticmethod
    def _data(body: Any) -> Any:
        return body.get("data") if isinstance(body, dict) else None

    # ── Registry ───────────────────────────────────────────────────────────

    async def _search(
        self,
        kind: EntityKind,
        query: str,
        page: int,
        page_size: int,
        associate_id: int | None,
    ) -> SearchPage:
        path = f"/{kind.value}/associate-list"
        body = await self._request(
            "POST",
            path,
            json={
                "AssociateID": associate_id,
                "search": query or "",
                "page": page,
                "limit": page_size,
            },
        )
        raw = self._data(body)
        if not isinstance(raw, list):
            raw = []
        with self._mapping(path):
            items = [to_entity_summary(item, kind) for item in raw]
        return SearchPage(items=items, has_more=len(raw) >= page_size)

    async def search_companies(
        self, query: str, page: int, page_size: int, associate_id: int | None = None
    ) -> SearchPage:
        return await self._search(EntityKind.COMPANY, query, page, page_size, associate_id)

    async def search_customers(
        self, query: str, page: int, page_size: int, associate_id: int | None = None
    ) -> SearchPage:
        return await self._search(EntityKind.CUSTOMER, query, page, page_size, associate_id)

    async def get_company_detail(self, company_id: int | str) -> CompanyRecord:
        path = "/company/get-details"
        body = await self._request("POST", path, json={"CompanyId": company_id})
        with self._mapping(path):
            data = dict(self._data(body) or {})
            data.setdefault("CompanyID", company_id)
            return to_company_record(data)

    async def get_customer_detail(self, customer_id: int | str) -> dict[str, Any]:
        path = "/customer/get"
        body = await self._request("POST", path, json={"CustomerID": customer_id})
        with self._mapping(path):
            return to_entity_fields(dict(self._data(body) or {}), EntityKind.CUSTOMER)

    # ── Catalog ────────────────────────────────────────────────────────────

    async def list_service_categories(self) -> list[CategoryRecord]:
        path = "/service-category"
        body = await self._request(
            "GET",
            path,
            params={"page": 1, "limit": self._settings.CATALOG_PAGE_LIMIT},
        )
        with self._mapping(path):
            return [to_category(item) for item in self._data(body) or []]

    async def list_services_by_category(self, category_id: int) -> list[ServiceCatalogEntry]:
        path = f"/service-categories/{category_id}"
        body = await self._request(
            "GET",
            path,
            params={"limit": self._settings.CATALOG_PAGE_LIMIT},
        )
        with self._mapping(path):
            data = self._data(body) or {}
            return [to_service_entry(item, category_id) for item in data.get("Services") or []]

    async def list_regions(self) -> list[RegionRecord]:
        path = "/states"
        body = await self._request("GET", path)
        with self._mapping(path):
            return [to_region(item) for item in self._data(body) or []]

    async def quote_pricing(self, region_id: int, service_ids: list[int]) -> list[PricingQuote]:
        path = "/service-price-currency"
        body = await self._request(
            "POST",
            path,
            json={
                "StateID": region_id,
                "ServiceIDs": list(service_ids),
                "isIndividual": 1,
                "packageId": None,
                "yearly": 0,
            },
        )
        with self._mapping(path):
            return [to_pricing_quote(item) for item in self._data(body) or []]

    async def list_packages(self, region_id: int) -> list[PackageOffering]:
        path = "/packages/by-state"
        body = await self._request("POST", path, json={"StateID": region_id})
        with self._mapping(path):
            data = self._data(body)
            if isinstance(data, dict):
                data = data.get("packages")
            return [to_package_offering(item) for item in data or []]

    # ── Deals ──────────────────────────────────────────────────────────────

    async def create_deal(self, payload: dict[str, Any]) -> int | str | None:
        body = await self._request(
            "POST",
            "/lead-generation/convert-to-deal",
            json=payload,
            timeout=self._settings.HTTP_TIMEOUT_MUTATE,
        )
        if not isinstance(body, dict):
            body = {}
        data = self._data(body)
        deal_id = body.get("dealId") or (data.get("id") if isinstance(data, dict) else None)
        logger.info("backend.deal_created", deal_id=deal_id)
        return deal_id

    async def update_deal(self, payload: dict[str, Any]) -> str | None:
        body = await self._request(
            "POST",
            "/edit-deal",
            json=payload,
            timeout=self._settings.HTTP_TIMEOUT_MUTATE,
        )
        logger.info("backend.deal_updated", deal_id=payload.get("id"))
        return body.get("message") if isinstance(body, dict) else None

    async def get_deal_detail(self, deal_id: int | str) -> DealRecord:
        path = "/getdeal"
        body = await self._request("POST", path, json={"id": deal_id})
        with self._mapping(path):
            data = dict(self._data(body) or {})
            data.setdefault("id", deal_id)
            return to_deal_record(data)
