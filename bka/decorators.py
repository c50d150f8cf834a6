"""Decorators for bka CLI commands."""

import functools
import logging
from typing import Callable, Any
import typer
from rich.console import Console
from rich.markup import escape

from .exceptions import BackupParseError, NotFoundError, StoreError, ValidationError
from .store import BOOKS, GENRES, SERIES, WISHLIST

logger = logging.getLogger(__name__)
console = Console()

RECORD_LABELS = {
    BOOKS: 'book',
    GENRES: 'genre',
    SERIES: 'series',
    WISHLIST: 'wishlist item',
}


def handle_library_errors(func: Callable) -> Callable:
    """
    Turn bka errors raised by a command into a message and exit code 1.

    A failed store write means the whole operation was rolled back. For a
    failed import the tallies worked out before the commit are shown.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except BackupParseError as e:
            console.print(f"[bold red]Error:[/bold red] Could not read backup: {escape(str(e))}")
            raise typer.Exit(code=1)
        except ValidationError as e:
            console.print(f"[bold red]Error:[/bold red] Invalid input: {escape(str(e))}")
            raise typer.Exit(code=1)
        except NotFoundError as e:
            label = RECORD_LABELS.get(e.collection, e.collection)
            console.print(f"[bold red]Error:[/bold red] Not found: {escape(e.doc_id)} ({label})")
            raise typer.Exit(code=1)
        except StoreError as e:
            logger.error(f"{func.__name__} failed to save: {e}")
            console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
            if e.result is not None and hasattr(e.result, 'total_created'):
                console.print(f"[dim]{e.result.total_created} records were ready to import, "
                              f"{e.result.total_skipped} skipped as duplicates[/dim]")
            console.print("[yellow]No changes were saved.[/yellow]")
            raise typer.Exit(code=1)
        except (FileNotFoundError, PermissionError) as e:
            console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
            raise typer.Exit(code=1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted[/yellow]")
            raise typer.Exit(code=130)
        except Exception as e:
            logger.error(f"Unexpected error in {func.__name__}: {e}", exc_info=True)
            console.print(f"[bold red]Unexpected error:[/bold red] {escape(str(e))}")
            raise typer.Exit(code=1)

    return wrapper


def require_confirmation(message: str) -> Callable:
    """
    Ask before running a destructive command, unless ``--yes`` was given.

    ``message`` may reference the command's parameters by name, e.g.
    ``"Merge genre '{source}' into '{target}'?"``.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            if not kwargs.get('yes', False):
                prompt = message.format(**kwargs)
                if not typer.confirm(prompt, default=False):
                    console.print("[red]Operation cancelled[/red]")
                    raise typer.Exit(code=0)
            return func(*args, **kwargs)

        return wrapper
    return decorator
