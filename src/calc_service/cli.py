"""
Command-line interface for Calc Service.

Provides commands for:
- Running the API server
- Evaluating an expression locally
- Submitting expressions to a running server
- Viewing the submission history
"""

import typer
from rich.console import Console
from rich.table import Table

from calc_service.config import get_settings
from calc_service.errors import CalculationError
from calc_service.parser import parse_expression
from calc_service.evaluator import evaluate

app = typer.Typer(
    name="calc",
    help="Calc Service - Arithmetic Expression Evaluation Service",
    add_completion=False,
)

console = Console()

DEFAULT_URL = "http://localhost:8080/api/v1"

STATUS_STYLES = {
    "pending": "yellow",
    "succeeded": "green",
    "failed": "red",
}


# =============================================================================
# Server Commands
# =============================================================================

@app.command()
def serve(
    host: str = typer.Option(None, "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(None, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload"),
):
    """Start the Calc Service API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.host
    port = port or settings.port

    console.print(f"[bold green]Starting Calc Service on {host}:{port}[/]")

    uvicorn.run(
        "calc_service.api:app",
        host=host,
        port=port,
        reload=reload,
    )


# =============================================================================
# Expression Commands
# =============================================================================

@app.command("eval")
def eval_expression(
    expression: str = typer.Argument(..., help="Arithmetic expression"),
):
    """Evaluate an expression locally without recording it."""
    settings = get_settings()
    try:
        tree = parse_expression(
            expression,
            max_depth=settings.max_nesting_depth,
            max_length=settings.max_expression_length,
        )
        value = evaluate(tree)
    except CalculationError as e:
        console.print(f"[red]✗ {e.code.value}[/]: {e.message}")
        raise typer.Exit(1)

    console.print(f"[green]{format_number(value)}[/]")


@app.command()
def submit(
    expression: str = typer.Argument(..., help="Arithmetic expression"),
    url: str = typer.Option(DEFAULT_URL, "--url", "-u", help="API base URL"),
):
    """Submit an expression to a running server."""
    import httpx

    try:
        response = httpx.post(f"{url}/calculate", json={"expression": expression}, timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        console.print(f"[red]Request failed: {e}[/]")
        raise typer.Exit(1)

    record = response.json()
    console.print(f"[green]✓[/] Calculation [cyan]{record['id']}[/]: {describe_outcome(record)}")


@app.command()
def history(
    url: str = typer.Option(DEFAULT_URL, "--url", "-u", help="API base URL"),
):
    """Show every submitted expression."""
    import httpx

    try:
        response = httpx.get(f"{url}/expressions", timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        console.print(f"[red]Request failed: {e}[/]")
        raise typer.Exit(1)

    records = response.json()["expressions"]
    if not records:
        console.print("[yellow]No calculations yet[/]")
        return

    table = Table(title="Calculations")
    table.add_column("ID", style="dim")
    table.add_column("Expression", style="cyan")
    table.add_column("Status")
    table.add_column("Result")

    for record in records:
        style = STATUS_STYLES.get(record["status"], "white")
        table.add_row(
            str(record["id"]),
            record["expression"],
            f"[{style}]{record['status']}[/]",
            describe_outcome(record),
        )

    console.print(table)


# =============================================================================
# Helpers
# =============================================================================

def format_number(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return repr(value)


def describe_outcome(record: dict) -> str:
    if record["status"] == "succeeded":
        return format_number(float(record["result"]))
    if record["status"] == "failed":
        return record.get("error") or "failed"
    return "pending"


if __name__ == "__main__":
    app()
