"""CLI for the back-office lists: inspect any list page from the terminal."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click

from backoffice.config import BackofficeConfig, ConfigError, default_config, load_config
from backoffice.core.logging import configure_logging
from backoffice.lists.pipeline import Entity, PaginationSummary
from backoffice.pages.registry import PAGES, build_controller, get_page, page_names

logger = logging.getLogger(__name__)

_MAX_COLUMN_WIDTH = 30


@dataclass
class ListOutput:
    """What one ``backoffice list`` run shows."""

    items: list[Entity]
    summary: PaginationSummary
    warning: str | None = None


@click.group()
@click.version_option(version="0.1.0")
def cli() -> None:
    """Back-office list pages: fetch, filter, sort and page entity lists."""


@cli.command()
def pages() -> None:
    """List the known list pages and their endpoints."""
    click.echo(f"{'Page':<20} {'Entity':<14} {'Endpoint'}")
    click.echo("-" * 72)
    for name in page_names():
        spec = PAGES[name]()
        click.echo(f"{name:<20} {spec.label:<14} {spec.endpoint.path}")


@cli.command("list")
@click.argument("page_name", metavar="PAGE")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="backoffice.toml, or the directory containing it",
)
@click.option("--base-url", default=None, help="API base URL (overrides config)")
@click.option("--search", default="", help="Search term")
@click.option(
    "--facet",
    "facets",
    multiple=True,
    metavar="NAME=VALUE",
    help="Facet filter; repeatable",
)
@click.option("--sort", "sort", default=None, metavar="KEY[:asc|desc]", help="Sort column")
@click.option("--page", "page", type=int, default=1, show_default=True, help="Page number")
@click.option("--page-size", type=click.IntRange(min=1), default=None, help="Rows per page")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
def list_cmd(
    page_name: str,
    config_path: Path | None,
    base_url: str | None,
    search: str,
    facets: tuple[str, ...],
    sort: str | None,
    page: int,
    page_size: int | None,
    as_json: bool,
) -> None:
    """Fetch PAGE and print its visible rows."""
    try:
        get_page(page_name)
    except KeyError as exc:
        raise click.UsageError(exc.args[0]) from None

    parsed_facets = _parse_facets(facets)
    sort_key, sort_direction = _parse_sort(sort)

    try:
        config = load_config(config_path) if config_path is not None else default_config()
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(1)

    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_root=Path(config.logging.log_root) if config.logging.log_root else None,
    )

    output = asyncio.run(
        _run_list(
            page_name,
            config,
            base_url=base_url.rstrip("/") if base_url else None,
            search=search,
            facets=parsed_facets,
            sort_key=sort_key,
            sort_direction=sort_direction,
            page=page,
            page_size=page_size,
        )
    )

    if output.warning:
        click.echo(f"Warning: {output.warning}", err=True)

    if as_json:
        payload = {
            "page": page_name,
            "items": output.items,
            "summary": output.summary.model_dump(),
            "warning": output.warning,
        }
        click.echo(json.dumps(payload, indent=2, default=str))
        return

    _print_table(output.items)
    click.echo(output.summary.describe())


async def _run_list(
    page_name: str,
    config: BackofficeConfig,
    *,
    base_url: str | None,
    search: str,
    facets: dict[str, str],
    sort_key: str | None,
    sort_direction: str,
    page: int,
    page_size: int | None,
) -> ListOutput:
    controller = build_controller(
        page_name,
        base_url or config.base_url,
        timeout=config.timeout_s,
        page_size=page_size or config.lists.page_size,
        debounce_s=config.lists.debounce_s,
    )
    logger.debug("Listing %s from %s", page_name, base_url or config.base_url)
    async with controller:
        await controller.load()

        if search:
            controller.set_search(search)
        for name, value in facets.items():
            controller.set_facet(name, value)
        await controller.wait_idle()

        if sort_key is not None:
            if sort_key not in controller.spec.comparators:
                known = ", ".join(sorted(controller.spec.comparators)) or "(none)"
                click.echo(f"Unknown sort key {sort_key!r} ignored; known: {known}", err=True)
            controller.set_sort(sort_key, sort_direction)
        controller.set_page(page)

        return ListOutput(
            items=controller.visible_items(),
            summary=controller.pagination_summary(),
            warning=controller.warning,
        )


def _parse_facets(raw: tuple[str, ...]) -> dict[str, str]:
    facets: dict[str, str] = {}
    for item in raw:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected NAME=VALUE, got {item!r}", param_hint="--facet")
        facets[name.strip()] = value.strip()
    return facets


def _parse_sort(raw: str | None) -> tuple[str | None, str]:
    if raw is None or not raw.strip():
        return None, "asc"
    key, _, direction = raw.strip().partition(":")
    direction = direction.lower() or "asc"
    if direction not in ("asc", "desc"):
        raise click.BadParameter(
            f"direction must be 'asc' or 'desc', got {direction!r}", param_hint="--sort"
        )
    return key, direction


def _cell(value: Any) -> str:
    if isinstance(value, dict | list):
        return "…"
    text = "" if value is None else str(value)
    if len(text) > _MAX_COLUMN_WIDTH:
        return text[: _MAX_COLUMN_WIDTH - 1] + "…"
    return text


def _print_table(items: list[Entity]) -> None:
    if not items:
        click.echo("(no matching entries)")
        return

    columns: list[str] = []
    for entity in items:
        for key, value in entity.items():
            if key not in columns and not isinstance(value, dict | list):
                columns.append(key)

    widths = {
        col: max(len(col), *(len(_cell(entity.get(col))) for entity in items)) for col in columns
    }
    click.echo("  ".join(f"{col:<{widths[col]}}" for col in columns))
    click.echo("  ".join("-" * widths[col] for col in columns))
    for entity in items:
        click.echo("  ".join(f"{_cell(entity.get(col)):<{widths[col]}}" for col in columns))


if __name__ == "__main__":
    cli()
