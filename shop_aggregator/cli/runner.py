# shop_aggregator/cli/runner.py

"""Headless CLI runner: search, quota usage and cache maintenance."""

import json
import logging
import sys

from rich.console import Console
from rich.table import Table

from shop_aggregator.config.settings import Settings
from shop_aggregator.errors import AllServicesFailedError
from shop_aggregator.models.product import Product
from shop_aggregator.models.search import SearchOptions, SearchResponse
from shop_aggregator.services.aggregation_coordinator import (
    AggregationCoordinator,
)
from shop_aggregator.services.registry import build_coordinator
from shop_aggregator.storage.cache_db import SqliteCacheStore
from shop_aggregator.storage.result_cache import ResultCache

logger = logging.getLogger("shop_aggregator.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def resolve_services(service_csv: str | None) -> list[str] | None:
    """Map a comma-separated list of service IDs to validated IDs.

    Returns ``None`` (all services) when *service_csv* is ``None``.
    Raises ``SystemExit`` on unknown IDs.
    """
    if service_csv is None:
        return None
    available = {s["id"] for s in Settings.AVAILABLE_SERVICES}
    requested = [
        s.strip() for s in service_csv.split(",") if s.strip()
    ]
    unknown = [r for r in requested if r not in available]
    if unknown:
        _err.print(
            f"[red]Unknown service(s): {', '.join(unknown)}[/red]"
        )
        _err.print(f"[dim]Available: {', '.join(sorted(available))}[/dim]")
        raise SystemExit(1)
    return requested


def _products_to_dicts(products: list[Product]) -> list[dict[str, object]]:
    """Serialise a product list to plain dicts for JSON output."""
    return [p.to_dict() for p in products]


def _print_table(products: list[Product]) -> None:
    """Render a Rich table of products to stdout, in ranked order."""
    table = Table(
        title="Search Results",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Name", max_width=60)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Rating", justify="center")
    table.add_column("Service", style="magenta")
    table.add_column("URL", overflow="fold", style="dim")

    for idx, p in enumerate(products, 1):
        price_str = (
            f"{p.currency} {p.price:,.2f}"
            if p.price is not None
            else "N/A"
        )
        table.add_row(
            str(idx),
            p.name[:60],
            price_str,
            f"{p.rating:.1f}" if p.rating is not None else "—",
            p.service_id,
            p.product_url or "",
        )

    Console().print(table)


def _print_outcomes(response: SearchResponse) -> None:
    """Per-service status lines on stderr."""
    for outcome in response.outcomes:
        if outcome.ok:
            origin = " (cache)" if outcome.from_cache else ""
            _err.print(
                f"[dim]{outcome.service_id}: "
                f"{len(outcome.products)} products{origin} "
                f"in {outcome.elapsed_ms:.0f}ms[/dim]"
            )
        else:
            kind = outcome.failure.value if outcome.failure else "failed"
            _err.print(
                f"[red]{outcome.service_id}: {kind}"
                f"{' - ' + outcome.message if outcome.message else ''}"
                "[/red]"
            )


async def cli_search(
    query: str,
    service_csv: str | None,
    sort: str,
    max_results: int,
    output_format: str,
    coordinator: AggregationCoordinator | None = None,
) -> int:
    """Run a headless search and return an exit code (0=ok, 1=fail)."""
    services = resolve_services(service_csv)
    try:
        options = SearchOptions(max_results=max_results, sort_order=sort)
    except ValueError as exc:
        _err.print(f"[red]Invalid options: {exc}[/red]")
        return 1

    coordinator = coordinator or build_coordinator()
    _err.print(
        f"[bold]Searching:[/bold] {query}  "
        f"[dim]services={', '.join(services or coordinator.registered_services())}"
        f" sort={options.sort_order.value}[/dim]"
    )

    try:
        response = await coordinator.search(query, services, options)
    except AllServicesFailedError as exc:
        logger.error("Search failed: %s", exc)
        for outcome in exc.outcomes:
            _err.print(
                f"[red]{outcome.service_id}: {outcome.message}[/red]"
            )
        _err.print("[red]All services failed. Try again later.[/red]")
        return 1

    _print_outcomes(response)
    if response.from_fallback:
        _err.print(
            "[yellow]Live services failed; showing last known "
            "results.[/yellow]"
        )

    if not response.products:
        _err.print("[yellow]No products found.[/yellow]")
        return 1

    parts: list[str] = [response.summary]
    if response.deduplicated_count:
        parts.append(f"{response.deduplicated_count} deduped")
    if response.invalid_count:
        parts.append(f"{response.invalid_count} invalid")
    _err.print(
        f"[green]✓ {len(response.products)} products"
        f" ({', '.join(parts)})[/green]"
    )

    if output_format == "table":
        _print_table(response.products)
    else:
        json.dump(
            _products_to_dicts(response.products),
            sys.stdout,
            ensure_ascii=False,
            indent=2,
        )
        sys.stdout.write("\n")

    return 0


def run_usage_report(
    coordinator: AggregationCoordinator | None = None,
) -> int:
    """Print monthly quota usage for every configured service."""
    coordinator = coordinator or build_coordinator()
    report = coordinator.usage_report()

    table = Table(
        title="Quota Usage",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Service", style="bold")
    table.add_column("Used", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("24h", justify="right")
    table.add_column("7d", justify="right")
    table.add_column("Resets", style="dim")

    for service_id, stats in report.items():
        used = f"{stats.monthly_used:,}"
        if stats.is_near_limit:
            used = f"[yellow]{used}[/yellow]"
        table.add_row(
            service_id,
            used,
            f"{stats.monthly_limit:,}",
            f"{stats.remaining:,}",
            str(stats.last_24h),
            str(stats.last_7d),
            stats.reset_date.strftime("%Y-%m-%d"),
        )

    Console().print(table)
    return 0


def run_clear_cache(cache: ResultCache | None = None) -> int:
    """Purge both cache tiers."""
    cache = cache or ResultCache(store=SqliteCacheStore())
    removed = cache.clear()
    _err.print(f"[green]✓ Cache cleared ({removed} in-memory entries)[/green]")
    return 0
