"""Rich-based console output and logging setup."""

import logging
from typing import Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Global console instance
console = Console()

# Headless mode flag
_headless = False

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ["aiohttp.access", "aiohttp.client", "asyncio", "keyring"]


def set_headless(headless: bool):
    """Set headless mode (disables rich output)."""
    global _headless
    _headless = headless


def is_headless() -> bool:
    """Check if running in headless mode."""
    return _headless


def setup_logging(verbose: bool, headless: bool):
    """Configure logging based on options."""
    level = logging.DEBUG if verbose else logging.INFO

    root_logger = logging.getLogger()

    # Clear existing handlers to allow reconfiguration
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if headless:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
    else:
        from rich.logging import RichHandler

        handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_time=True,
            show_path=verbose,
            markup=False,
        )

    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for noisy_logger in NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    set_headless(headless)


def print_header(title: str, subtitle: Optional[str] = None):
    """Print a styled header."""
    if _headless:
        console.print(f"\n=== {title} ===")
        if subtitle:
            console.print(f"    {subtitle}")
        return

    content = f"[bold magenta]{title}[/bold magenta]"
    if subtitle:
        content += f"\n[dim]{subtitle}[/dim]"

    console.print(Panel(content, box=box.DOUBLE_EDGE, padding=(1, 2)))


def print_stats_table(title: str, stats: dict):
    """Print a two-column key/value table."""
    table = Table(title=title, box=box.ROUNDED if not _headless else None)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in stats.items():
        table.add_row(key, str(value))

    console.print(table)


def print_success(message: str):
    """Print a success message."""
    console.print(f"[bold green]✓[/bold green] {message}")


def print_error(message: str):
    """Print an error message."""
    console.print(f"[bold red]✗[/bold red] {message}")


def print_warning(message: str):
    """Print a warning message."""
    console.print(f"[bold yellow]⚠[/bold yellow] {message}")


def print_info(message: str):
    """Print an info message."""
    console.print(f"[bold blue]ℹ[/bold blue] {message}")
