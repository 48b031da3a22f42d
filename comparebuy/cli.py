"""Typer CLI — ``comparebuy serve`` and ``comparebuy compare`` commands."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from comparebuy.client import CatalogClient
from comparebuy.config import get_settings
from comparebuy.logging_config import configure_logging
from comparebuy.models import ComparisonTable
from comparebuy.renderer import render_html
from comparebuy.selection import SelectionFlowController, Side

app = typer.Typer(
    name="comparebuy",
    help="CompareBuy — serve the catalog API or compare two products through it.",
    no_args_is_help=True,
)
console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    settings = get_settings()
    configure_logging(settings)
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


@app.command()
def serve(
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Run the REST API with uvicorn."""
    from comparebuy.api import serve as serve_api

    settings = get_settings()
    if verbose:
        settings = settings.model_copy(update={"log_level": "DEBUG"})
    serve_api(settings)


@app.command()
def compare(
    category: str = typer.Option(..., "--category", help="Category both products belong to."),
    brand1: str = typer.Option(..., "--brand1"),
    model1: str = typer.Option(..., "--model1"),
    brand2: str = typer.Option(..., "--brand2"),
    model2: str = typer.Option(..., "--model2"),
    api: Optional[str] = typer.Option(None, "--api", help="API base URL (defaults to API_BASE_URL)."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the HTML table here instead of stdout."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Walk the category → brand → model selection and render the comparison.

    Example:

        comparebuy compare --category Phones --brand1 Samsung --model1 "Galaxy S24"
            --brand2 Apple --model2 "iPhone 15" -o compare.html
    """
    _setup_logging(verbose)
    settings = get_settings()

    errors: list[str] = []
    table = asyncio.run(_run_compare(
        api or settings.api_base_url,
        settings.client_timeout_seconds,
        category,
        (brand1, model1),
        (brand2, model2),
        errors,
    ))

    if table is None:
        for message in errors:
            console.print(f"[red]{message}[/]")
        raise typer.Exit(code=1)

    html = render_html(table)
    if output:
        output.write_text(html, encoding="utf-8")
        console.print(f"[green]Comparison written to:[/] {output}")
    else:
        typer.echo(html)


async def _run_compare(
    base_url: str,
    timeout: float,
    category: str,
    first: tuple[str, str],
    second: tuple[str, str],
    errors: list[str],
) -> Optional[ComparisonTable]:
    """Drive one selection flow end to end; failures land in ``errors``."""
    async with CatalogClient(base_url, timeout=timeout) as client:
        controller = SelectionFlowController(client, notify=errors.append)
        await controller.select_category(category)
        for side, (brand, model) in ((Side.FIRST, first), (Side.SECOND, second)):
            await controller.select_brand(side, brand)
            listed = {m.casefold(): m for m in controller.state.sides[side].models}
            if model.casefold() not in listed:
                errors.append(f"Unknown model for {brand}: {model}")
                return None
            controller.select_model(side, listed[model.casefold()])
        return await controller.compare()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
