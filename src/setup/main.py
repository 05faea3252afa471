"""CLI entry point for building the SQLite database from CSV files.

This module provides the command-line interface for running every table
import in sequence, with progress output and a non-zero exit status on
the first failure.
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from src.models.config import ConfigManager, SetupConfig
from src.models.data_models import ImportResult, SetupResult
from src.setup.runner import SetupRunner


console = Console()


@click.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    default="config/config.yaml",
    help="Path to configuration YAML file",
)
@click.option(
    "--imports",
    "-i",
    "imports_file",
    type=click.Path(exists=True, path_type=Path),
    help="Path to table definitions YAML file (overrides config)",
)
@click.option(
    "--database",
    "-d",
    type=click.Path(path_type=Path),
    help="SQLite database file (overrides config)",
)
@click.option(
    "--input-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding the CSV files (overrides config)",
)
@click.option(
    "--batch-size",
    "-b",
    type=int,
    help="Rows per INSERT statement (overrides config)",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (overrides config)",
)
@click.option(
    "--keep-existing",
    is_flag=True,
    help="Do not delete an existing database file before importing",
)
@click.option(
    "--no-progress",
    is_flag=True,
    help="Disable progress output (useful for CI/CD)",
)
@click.version_option(version="1.0.0", prog_name="france-stats-setup")
def main(
    config: Path,
    imports_file: Optional[Path],
    database: Optional[Path],
    input_dir: Optional[Path],
    batch_size: Optional[int],
    log_level: Optional[str],
    keep_existing: bool,
    no_progress: bool,
) -> None:
    """
    France Stats Setup - Import CSV sources into the SQLite database.

    Creates every configured table, streams its CSV file, and inserts the
    rows in transactional batches. Stops at the first failing table.

    Examples:

        # Run with default configuration
        $ python -m src.setup.main

        # Use another database file and input directory
        $ python -m src.setup.main --database /tmp/france.db --input-dir data/

        # Keep previously imported tables
        $ python -m src.setup.main --keep-existing --no-progress
    """
    try:
        cli_overrides = {}
        if imports_file is not None:
            cli_overrides["imports_file"] = str(imports_file)
        if database is not None:
            cli_overrides["database_path"] = str(database)
        if input_dir is not None:
            cli_overrides["input_directory"] = str(input_dir)
        if batch_size is not None:
            cli_overrides["batch_size"] = batch_size
        if log_level is not None:
            cli_overrides["log_level"] = log_level.upper()
        if keep_existing:
            cli_overrides["reset_database"] = False

        config_manager = ConfigManager(config)
        setup_config = config_manager.load_config(cli_overrides)

        _display_config_summary(setup_config, no_progress)

        result = asyncio.run(_run_setup_with_progress(setup_config, no_progress))

        _display_results(result, no_progress)

        sys.exit(0)

    except KeyboardInterrupt:
        console.print("\n[yellow]Setup interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[red]Error:[/red] {e}", style="bold red")
        if "--debug" in sys.argv:
            console.print_exception()
        sys.exit(1)


async def _run_setup_with_progress(config: SetupConfig, no_progress: bool) -> SetupResult:
    """
    Run the setup with progress tracking.

    Args:
        config: Setup configuration
        no_progress: Whether to disable progress output

    Returns:
        Setup execution result
    """
    runner = SetupRunner(config)

    if no_progress:
        console.print("[cyan]Importing tables...[/cyan]")
        return await runner.run()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task("[cyan]Importing tables...", total=None)

        def on_table_done(table_result: ImportResult) -> None:
            progress.console.print(
                f"✓ {table_result.table_name}: {table_result.rows_inserted} rows"
            )

        result = await runner.run(on_table_done=on_table_done)
        progress.update(task_id, completed=True)
        return result


def _display_config_summary(config: SetupConfig, no_progress: bool) -> None:
    """Display configuration summary before running."""
    if no_progress:
        return

    console.print("\n[bold cyan]Setup Configuration[/bold cyan]")
    console.print(f"  Database: {config.database_path}")
    console.print(f"  Input Directory: {config.input_directory}")
    console.print(f"  Table Definitions: {config.imports_file}")
    console.print(f"  Batch Size: {config.batch_size}")
    console.print(f"  Reset Database: {config.reset_database}")
    console.print()


def _display_results(result: SetupResult, no_progress: bool) -> None:
    """Display final results summary."""
    if no_progress:
        console.print(f"✓ Setup complete: {len(result.imports)} tables, {result.total_rows} rows")
        console.print(f"✓ Database: {result.database_path}")
        return

    console.print("\n[bold green]Setup Complete![/bold green]\n")

    table = Table(title="Imported Tables")
    table.add_column("Table", style="cyan")
    table.add_column("Read", justify="right")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Inserted", justify="right", style="green")
    table.add_column("Batches", justify="right")
    table.add_column("Time", justify="right", style="magenta")

    for table_result in result.imports:
        table.add_row(
            table_result.table_name + (" (no CSV)" if table_result.csv_missing else ""),
            str(table_result.rows_read),
            str(table_result.rows_skipped),
            str(table_result.rows_inserted),
            str(table_result.batches),
            f"{table_result.duration_seconds:.2f}s",
        )

    console.print(table)
    console.print(f"\nSearch indexes created: {result.search_indexes}")
    console.print(f"Total time: {result.duration_seconds:.2f}s")
    console.print(f"[bold]Database:[/bold] {result.database_path}")
    console.print()


if __name__ == "__main__":
    main()
