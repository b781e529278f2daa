"""CLI for Stockline database management."""

import psycopg
import typer
from rich.console import Console
from rich.panel import Panel
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateIndex, CreateTable

from stockline.config import get_settings
from stockline.core.errors import InvalidFormatError
from stockline.core.product_code import normalize
from stockline.db.schemas import Base

app = typer.Typer(
    name="stockline",
    help="Stockline CLI - manage inventory tables",
    add_completion=False,
)
console = Console()


def get_local_connection() -> psycopg.Connection:
    """Get a database connection using configured credentials."""
    return psycopg.connect(get_settings().store.conninfo)


def _connection_panel() -> None:
    settings = get_settings()
    console.print(Panel.fit(
        f"[bold]Database:[/bold] {settings.store.database}\n"
        f"[bold]Host:[/bold] {settings.store.host}\n"
        f"[bold]User:[/bold] {settings.store.user}",
        title="Store Connection",
    ))


def schema_statements() -> list[str]:
    """DDL for every table and index, in dependency order."""
    dialect = postgresql.dialect()
    statements = []
    for table in Base.metadata.sorted_tables:
        statements.append(str(CreateTable(table).compile(dialect=dialect)).strip())
        for index in sorted(table.indexes, key=lambda i: i.name):
            statements.append(str(CreateIndex(index).compile(dialect=dialect)).strip())
    return statements


@app.command()
def init_db(
    dry_run: bool = typer.Option(False, "--dry-run", help="Show SQL without executing"),
):
    """Initialize tables (drops and recreates them)."""

    drop_sql = [
        f"DROP TABLE IF EXISTS {table.name} CASCADE"
        for table in reversed(Base.metadata.sorted_tables)
    ]
    statements = drop_sql + schema_statements()

    _connection_panel()

    if dry_run:
        console.print("\n[yellow]Dry run mode - SQL that would be executed:[/yellow]\n")
        console.print(";\n\n".join(statements) + ";")
        return

    console.print("\n[blue]Initializing database tables...[/blue]")

    try:
        with get_local_connection() as conn:
            with conn.cursor() as cur:
                for statement in statements:
                    cur.execute(statement)

        console.print("[green]✓ Database tables initialized successfully![/green]")
    except psycopg.Error as e:
        console.print(f"[red]✗ Error initializing database: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def clear_db(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
):
    """Clear balances and movement history (catalog and locations are kept)."""

    _connection_panel()

    if not force:
        confirm = typer.confirm(
            "\n⚠️  This will DELETE all balances, movements and adjustments. Continue?"
        )
        if not confirm:
            console.print("[yellow]Aborted.[/yellow]")
            raise typer.Exit(0)

    console.print("\n[blue]Clearing database tables...[/blue]")

    try:
        with get_local_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM inventory_movements")
                cur.execute("DELETE FROM inventory_adjustments")
                cur.execute("DELETE FROM inventory_on_hand_by_location")
                cur.execute("DELETE FROM inventory_on_hand")

        console.print("[green]✓ All data cleared successfully![/green]")
    except psycopg.Error as e:
        console.print(f"[red]✗ Error clearing database: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def add_location(code: str = typer.Argument(..., help="Location code, e.g. SHELF-A")):
    """Register a stocking location."""
    try:
        with get_local_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO locations (location_code) VALUES (%s) RETURNING id",
                    (code,),
                )
                location_id = cur.fetchone()[0]
    except psycopg.Error as e:
        console.print(f"[red]✗ Error adding location: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Location {code} added[/green] ([cyan]{location_id}[/cyan])")


@app.command()
def add_product(
    code: str = typer.Argument(..., help="Product code, e.g. RB-10-02-16"),
    image_path: str | None = typer.Option(None, "--image", help="Path in the image bucket"),
):
    """Register a product in the catalog."""
    try:
        product_code = normalize(code)
    except InvalidFormatError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)

    try:
        with get_local_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO products_catalog (product_code, image_path) VALUES (%s, %s)",
                    (product_code, image_path),
                )
    except psycopg.Error as e:
        console.print(f"[red]✗ Error adding product: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Product {product_code} added[/green]")


@app.command(name="normalize")
def normalize_command(raw: str = typer.Argument(..., help="Scanned or typed text")):
    """Show the canonical product code for scanned or typed text."""
    try:
        console.print(normalize(raw))
    except InvalidFormatError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)


@app.command()
def status():
    """Check database connection and show table counts."""

    _connection_panel()

    console.print("\n[blue]Checking database connection...[/blue]")

    try:
        with get_local_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                console.print("[green]✓ Database connected[/green]\n")

                counts = {}
                for table in Base.metadata.sorted_tables:
                    cur.execute(f"SELECT COUNT(*) FROM {table.name}")
                    counts[table.name] = cur.fetchone()[0]

                cur.execute("SELECT COALESCE(SUM(on_hand), 0) FROM inventory_on_hand")
                total_on_hand = cur.fetchone()[0]

    except psycopg.Error as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(1)

    console.print("[bold]Table Statistics:[/bold]")
    for name, count in counts.items():
        console.print(f"  {name}: {count} rows")
    console.print(f"\n  Total units on hand: {total_on_hand}")


if __name__ == "__main__":
    app()
