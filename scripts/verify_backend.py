#!/usr/bin/env python3
"""Smoke test the remote operations API the deal intake wizard depends on.

Runs the read-only lookups the wizard performs when it opens (regions,
categories, services of the first category, a registry search page, and a
pricing quote) and reports each one.

Usage:
    python scripts/verify_backend.py \
        --base-url https://ops.example.com/api \
        --token "$API_TOKEN" \
        --associate-id 77

Exit code 0 if all checks pass, 1 if any fail.
"""

import argparse
import asyncio
import os
import sys
from typing import Awaitable, Callable, List, Tuple

# Ensure project root is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.dealdesk.backend.errors import BackendError  # noqa: E402
from src.dealdesk.backend.http import HttpOperationsBackend  # noqa: E402
from src.dealdesk.config import Settings  # noqa: E402
from src.dealdesk.core.logging import configure_structlog  # noqa: E402

Check = Tuple[str, bool, str]


async def _run(name: str, check: Callable[[], Awaitable[str]]) -> Check:
    try:
        return name, True, await check()
    except BackendError as exc:
        return name, False, exc.message


async def run_checks(backend: HttpOperationsBackend, associate_id: int | None) -> List[Check]:
    """Run every lookup in wizard-opening order; later checks reuse earlier data."""
    results: List[Check] = []
    regions = []
    categories = []
    services = []

    async def check_regions() -> str:
        regions.extend(await backend.list_regions())
        return f"{len(regions)} regions"

    async def check_categories() -> str:
        categories.extend(await backend.list_service_categories())
        return f"{len(categories)} categories"

    async def check_services() -> str:
        if not categories:
            return "skipped (no categories)"
        services.extend(await backend.list_services_by_category(categories[0].id))
        return f"{len(services)} services in '{categories[0].name}'"

    async def check_search() -> str:
        page = await backend.search_companies("", 1, 10, associate_id)
        return f"{len(page.items)} companies, has_more={page.has_more}"

    async def check_pricing() -> str:
        if not regions or not services:
            return "skipped (no region or service)"
        quotes = await backend.quote_pricing(regions[0].id, [services[0].service_id])
        total = quotes[0].total if quotes else 0.0
        return f"{regions[0].name} / {services[0].name}: total {total:.2f}"

    results.append(await _run("Regions", check_regions))
    results.append(await _run("Service categories", check_categories))
    results.append(await _run("Category services", check_services))
    results.append(await _run("Company search", check_search))
    results.append(await _run("Pricing quote", check_pricing))
    return results


def print_results(results: List[Check], base_url: str, associate_id: int | None) -> None:
    """Report each lookup against the API it ran on, failures last."""
    passed = [check for check in results if check[1]]
    failed = [check for check in results if not check[1]]
    scope = f"associate {associate_id}" if associate_id is not None else "no associate scope"
    print(f"\nOperations API {base_url} ({scope})")
    for name, _, detail in passed:
        print(f"  ok    {name}: {detail}")
    for name, _, detail in failed:
        print(f"  error {name}: {detail}")
    print(f"{len(passed)}/{len(results)} lookups succeeded\n")


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Verify the operations API used by the deal intake wizard"
    )
    parser.add_argument("--base-url", help="Operations API base URL (default: API_BASE_URL)")
    parser.add_argument("--token", help="Bearer token (default: API_TOKEN)")
    parser.add_argument(
        "--associate-id",
        type=int,
        help="Associate whose registry to search (default: ASSOCIATE_ID)",
    )
    args = parser.parse_args()

    overrides = {"HTTP_MAX_RETRIES": 1}
    if args.base_url:
        overrides["API_BASE_URL"] = args.base_url
    if args.token:
        overrides["API_TOKEN"] = args.token
    settings = Settings(**overrides)
    configure_structlog(settings)

    backend = HttpOperationsBackend(settings)
    associate_id = args.associate_id if args.associate_id is not None else settings.ASSOCIATE_ID
    results = asyncio.run(run_checks(backend, associate_id))

    print_results(results, settings.API_BASE_URL, associate_id)

    all_passed = all(passed for _, passed, _ in results)
    sys.exit(0 if all_passed else 1)


if __name__ == "__main__":
    main()
