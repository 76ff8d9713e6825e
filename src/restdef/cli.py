from __future__ import annotations

import importlib
import json
import logging
import sys
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from restdef.config import get_settings
from restdef.domain.errors import AssemblyError
from restdef.domain.models import ApiDefinition
from restdef.infrastructure.observability import setup_logging
from restdef.routing.assembler import check_coverage
from restdef.routing.decoding import shape_name
from restdef.routing.path_compiler import compile_path, join_prefix


app = typer.Typer(no_args_is_help=True, add_completion=False)

console = Console()


def _import_object(target: str) -> Any:
    """Resolve "package.module:attribute"."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise typer.BadParameter(f"Expected 'module:attribute', got {target!r}")

    # allow targets relative to the working directory
    if "" not in sys.path:
        sys.path.insert(0, "")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise typer.BadParameter(f"Cannot import module {module_name!r}: {exc}") from exc

    obj: Any = module
    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as exc:
            raise typer.BadParameter(f"{module_name!r} has no attribute {attr!r}") from exc
    return obj


def _load_api(target: str) -> ApiDefinition:
    obj = _import_object(target)
    if not isinstance(obj, ApiDefinition):
        raise typer.BadParameter(f"{target} is a {type(obj).__name__}, not an ApiDefinition")
    return obj


@app.callback()
def main_callback() -> None:
    if not logging.root.handlers:
        settings = get_settings()
        setup_logging(settings.log_level, settings.log_format)


@app.command()
def routes(
    target: str = typer.Argument(..., help="ApiDefinition to inspect, as module:attribute"),
    prefix: str = typer.Option("", help="Path prefix applied to every route"),
    format: str = typer.Option("table", help="Output format: table|json"),
) -> None:
    """Print the route table an ApiDefinition compiles to."""
    api = _load_api(target)

    fmt = format.lower().strip()
    if fmt not in ("table", "json"):
        raise typer.BadParameter("format must be one of: table, json")

    rows = []
    try:
        for name, definition in api.items():
            rows.append(
                {
                    "name": name,
                    "method": definition.method,
                    "path": compile_path(join_prefix(prefix, definition.path)),
                    "params": [p for p, _ in definition.params],
                    "body": shape_name(definition.body),
                    "query": shape_name(definition.query),
                    "response": shape_name(definition.response),
                    "summary": definition.summary,
                }
            )
    except AssemblyError as exc:
        console.print(f"[bold red]error[/bold red] {exc.message}")
        raise typer.Exit(code=1)

    if fmt == "json":
        typer.echo(json.dumps(rows, indent=2))
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("METHOD", no_wrap=True)
    table.add_column("PATH")
    table.add_column("ENDPOINT")
    table.add_column("BODY", no_wrap=True)
    table.add_column("QUERY", no_wrap=True)
    table.add_column("RESPONSE", no_wrap=True)

    for r in rows:
        table.add_row(r["method"], r["path"], r["name"], r["body"], r["query"], r["response"])

    console.print(f"[bold]Routes:[/bold] {len(rows)}")
    console.print(table)


@app.command()
def check(
    target: str = typer.Argument(..., help="ApiDefinition, as module:attribute"),
    handlers: str = typer.Argument(..., help="Handler mapping or object, as module:attribute"),
) -> None:
    """Verify that every endpoint has a handler."""
    api = _load_api(target)
    coverage = check_coverage(api, _import_object(handlers))

    for name in coverage.extra:
        console.print(f"[yellow]extra[/yellow]   {name} (no such endpoint, ignored)")
    for name in coverage.missing:
        console.print(f"[bold red]missing[/bold red] {name}")

    if not coverage.complete:
        raise typer.Exit(code=1)
    console.print(f"[bold green]ok[/bold green] {len(api)} endpoint(s) covered")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
