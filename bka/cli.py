import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.prompt import Confirm
from rich.table import Table
from rich.traceback import install

from .config import get_config_path, load_config, update_config
from .decorators import console as error_console
from .decorators import handle_library_errors, require_confirmation
from .duplicates import MATCH_ISBN, clean_isbn, is_isbn
from .exceptions import NotFoundError, ValidationError
from .filters import BookFilters, extract_authors
from .library import Library
from .models import Book, PHYSICAL_FORMATS, READING_STATUSES, WISHLIST_PRIORITIES, canonical_format
from .normalize import contrast_color, format_date, normalize_color
from .search import HighlightSpans, highlight_match
from .services.backup_service import backup_filename, write_backup
from .services.health_service import books_with_issues, completeness_rating
from .services.lookup_service import LookupService
from .sorting import SORT_KEYS
from .status import STATUS_LABELS, derive_status
from .store import GENRES, SERIES

# Initialize Rich Traceback for better error messages
install(show_locals=True)

# Initialize Rich Console
console = Console()

# Configure logging to use Rich's RichHandler
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True)]
)
logger = logging.getLogger(__name__)

# Main app
app = typer.Typer()

# Command groups
read_app = typer.Typer(help="Track reading progress")
genre_app = typer.Typer(help="Manage genres")
series_app = typer.Typer(help="Manage series")
wishlist_app = typer.Typer(help="Manage the wishlist")

# Register command groups
app.add_typer(read_app, name="read")
app.add_typer(genre_app, name="genre")
app.add_typer(series_app, name="series")
app.add_typer(wishlist_app, name="wishlist")

COLOUR_STYLES = {'green': 'green', 'amber': 'yellow', 'red': 'red'}


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose mode"),
):
    """
    bka - Book Assembly, a personal book library.

    Catalogue books, track reading, organise genres and series, keep a
    wishlist, and back the whole library up to a JSON file.
    """
    cli_config = load_config().cli
    if not cli_config.color:
        console.no_color = True
        error_console.no_color = True
    if verbose or cli_config.verbose:
        logging.getLogger("bka").setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
        console.print("[bold green]Verbose mode enabled.[/bold green]")


def resolve_library_path(library_path: Optional[Path]) -> Path:
    """The given library path, or the configured default when none was given."""
    if library_path is not None:
        return Path(library_path)
    default = load_config().library.default_path
    if not default:
        raise ValidationError(
            "No library path given and no default set (bka config --library-path PATH)"
        )
    return Path(default).expanduser()


def open_library(library_path: Optional[Path]) -> Library:
    """Open an existing library for the configured user."""
    library_path = resolve_library_path(library_path)
    if not library_path.exists():
        raise FileNotFoundError(f"Library not found: {library_path}")
    return Library.open(library_path, user_id=load_config().library.user_id)


def resolve_genre(lib: Library, ref: str) -> str:
    """Genre id from an id or a name."""
    genre = lib.genres.get(lib.user_id, ref) or lib.genres.find_by_name(lib.user_id, ref)
    if genre is None:
        raise NotFoundError(GENRES, ref)
    return genre.id


def resolve_series(lib: Library, ref: str) -> str:
    """Series id from an id or a name."""
    series = lib.series.get(lib.user_id, ref) or lib.series.find_by_name(lib.user_id, ref)
    if series is None:
        raise NotFoundError(SERIES, ref)
    return series.id


def build_filters(lib: Library, status: Optional[List[str]], genre: Optional[List[str]],
                  series: Optional[List[str]], min_rating: Optional[int],
                  author: Optional[str], search: Optional[str]) -> BookFilters:
    for value in status or []:
        if value not in READING_STATUSES:
            raise ValidationError(f"Unknown status '{value}' (use one of: {', '.join(READING_STATUSES)})")
    return BookFilters(
        search=search,
        statuses=list(status or []),
        genre_ids=[resolve_genre(lib, g) for g in genre or []],
        series_ids=[resolve_series(lib, s) for s in series or []],
        min_rating=min_rating,
        author=author,
    )


def stars(rating: Optional[int]) -> str:
    return "★" * rating if rating else ""


def render_highlight(text: str, query: str) -> str:
    spans = highlight_match(text, query)
    if isinstance(spans, HighlightSpans):
        return f"{escape(spans.before)}[bold yellow]{escape(spans.match)}[/bold yellow]{escape(spans.after)}"
    return escape(text or "")


def books_table(lib: Library, books: List[Book], title: str, query: Optional[str] = None) -> Table:
    genre_names = {g.id: g.name for g in lib.genres.list(lib.user_id)}
    series_names = {s.id: s.name for s in lib.series.list(lib.user_id)}

    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="green")
    table.add_column("Author", style="blue")
    table.add_column("Status", style="magenta")
    table.add_column("Rating", style="yellow")
    table.add_column("Genres")
    table.add_column("Series", style="dim")

    for book in books:
        # Genres that no longer exist are not shown
        genres = ", ".join(genre_names[g] for g in book.genres if g in genre_names)
        series = series_names.get(book.series_id, "") if book.series_id else ""
        if series and book.series_position:
            series += f" #{book.series_position}"
        table.add_row(
            book.id,
            render_highlight(book.title[:50], query) if query else escape(book.title[:50]),
            render_highlight(book.author[:30], query) if query else escape(book.author[:30]),
            STATUS_LABELS[derive_status(book)],
            stars(book.rating),
            escape(genres),
            escape(series),
        )
    return table


# ============================================================================
# Core Library Commands
# ============================================================================

@app.command()
@handle_library_errors
def init(
    library_path: Optional[Path] = typer.Argument(None, help="Path to create the library (default: configured library path)"),
    echo_sql: bool = typer.Option(False, "--echo-sql", help="Echo SQL statements for debugging")
):
    """
    Initialize a new library.

    Without a path, the library is created at the configured default path.

    Example:
        bka init ~/books
    """
    library_path = resolve_library_path(library_path)

    if library_path.exists() and any(library_path.iterdir()):
        console.print(f"[yellow]Warning: Directory {library_path} already exists and is not empty[/yellow]")
        if not Confirm.ask("Continue anyway?"):
            raise typer.Exit(code=0)

    try:
        lib = Library.open(library_path, echo=echo_sql)
        lib.close()
        console.print(f"[green]✓ Library initialized at {library_path}[/green]")
        console.print(f"  Database: {library_path / 'library.db'}")
        console.print("  Use 'bka add' to add books")
    except Exception as e:
        console.print(f"[red]Error initializing library: {e}[/red]")
        raise typer.Exit(code=1)


@app.command()
@handle_library_errors
def add(
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
    title: str = typer.Option(..., "--title", "-t", help="Book title"),
    author: str = typer.Option(..., "--author", "-a", help="Author"),
    isbn: Optional[str] = typer.Option(None, "--isbn", help="ISBN-10 or ISBN-13"),
    publisher: Optional[str] = typer.Option(None, "--publisher", help="Publisher"),
    published_date: Optional[str] = typer.Option(None, "--published", help="Publication date"),
    pages: Optional[int] = typer.Option(None, "--pages", help="Page count"),
    physical_format: Optional[str] = typer.Option(
        None, "--format", help=f"Physical format: {', '.join(PHYSICAL_FORMATS)} or free text"
    ),
    genre: Optional[List[str]] = typer.Option(None, "--genre", "-g", help="Genre name or id (repeatable)"),
    series: Optional[str] = typer.Option(None, "--series", "-s", help="Series name or id"),
    position: Optional[int] = typer.Option(None, "--position", help="Position in series"),
    rating: Optional[int] = typer.Option(None, "--rating", "-r", help="Rating (1-5)"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Notes"),
    force: bool = typer.Option(False, "--force", help="Add even if the book looks like a duplicate"),
):
    """
    Add a book to the library.

    The library is checked for a book with the same ISBN, or the same title
    and author, first.

    Example:
        bka add ~/books --title "Dune" --author "Frank Herbert" --genre "Science Fiction"
    """
    if isbn:
        if not is_isbn(isbn):
            raise ValidationError(f"Not a valid ISBN: {isbn}")
        isbn = clean_isbn(isbn)

    with open_library(library_path) as lib:
        if not force:
            result = lib.check_duplicate(isbn, title, author)
            if result.is_duplicate:
                how = "ISBN" if result.match_type == MATCH_ISBN else "title and author"
                existing = result.existing_book
                console.print(f"[yellow]Already in library (same {how}): "
                              f"{escape(existing['title'])} ({existing['id']})[/yellow]")
                console.print("[dim]Use --force to add it anyway[/dim]")
                raise typer.Exit(code=1)

        book_id = lib.books.add(
            lib.user_id,
            title=title,
            author=author,
            isbn=isbn,
            publisher=publisher,
            published_date=published_date,
            page_count=pages,
            physical_format=(canonical_format(physical_format) or physical_format.strip()) if physical_format else None,
            genres=[resolve_genre(lib, g) for g in genre or []],
            series_id=resolve_series(lib, series) if series else None,
            series_position=position,
            rating=rating,
            notes=notes,
        )
        console.print(f"[green]✓ Added '{escape(title)}' ({book_id})[/green]")


@app.command(name="list")
@handle_library_errors
def list_books(
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
    status: Optional[List[str]] = typer.Option(None, "--status", help="Reading status (repeatable)"),
    genre: Optional[List[str]] = typer.Option(None, "--genre", "-g", help="Genre name or id (repeatable)"),
    series: Optional[List[str]] = typer.Option(None, "--series", "-s", help="Series name or id (repeatable)"),
    min_rating: Optional[int] = typer.Option(None, "--min-rating", help="Minimum rating"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Exact author"),
    search: Optional[str] = typer.Option(None, "--search", help="Text in title or author"),
    sort: str = typer.Option("createdAt", "--sort", help=f"Sort key: {', '.join(SORT_KEYS)}"),
    desc: bool = typer.Option(False, "--desc", help="Sort descending"),
    in_bin: bool = typer.Option(False, "--bin", help="List the bin instead"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum number of books to show"),
):
    """
    List books with optional filtering and sorting.

    Examples:
        bka list ~/books
        bka list ~/books --status reading --status finished
        bka list ~/books --genre Fantasy --min-rating 4 --sort rating --desc
    """
    with open_library(library_path) as lib:
        filters = build_filters(lib, status, genre, series, min_rating, author, search)
        books = lib.list_books(filters, sort_key=sort, direction="desc" if desc else "asc",
                               in_bin=in_bin)
        total = len(books)
        books = books[:limit or load_config().cli.page_size]

        if not books:
            console.print("[yellow]No books found[/yellow]")
            return

        console.print(books_table(lib, books, "Bin" if in_bin else "Books"))
        console.print(f"\n[dim]Showing {len(books)} of {total} books[/dim]")


@app.command()
@handle_library_errors
def facets(
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
    status: Optional[List[str]] = typer.Option(None, "--status", help="Reading status (repeatable)"),
    genre: Optional[List[str]] = typer.Option(None, "--genre", "-g", help="Genre name or id (repeatable)"),
    series: Optional[List[str]] = typer.Option(None, "--series", "-s", help="Series name or id (repeatable)"),
    min_rating: Optional[int] = typer.Option(None, "--min-rating", help="Minimum rating"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Exact author"),
    search: Optional[str] = typer.Option(None, "--search", help="Text in title or author"),
):
    """
    Show how many books each filter option would give.

    Each count applies every other active filter.

    Example:
        bka facets ~/books --genre Fantasy
    """
    with open_library(library_path) as lib:
        filters = build_filters(lib, status, genre, series, min_rating, author, search)
        counts = lib.facets(filters)
        genre_names = {g.id: g.name for g in lib.genres.list(lib.user_id)}
        series_names = {s.id: s.name for s in lib.series.list(lib.user_id)}

        table = Table(title="Filter Options")
        table.add_column("Filter", style="cyan")
        table.add_column("Option", style="green")
        table.add_column("Books", justify="right")

        for value, count in counts.statuses.items():
            table.add_row("Status", STATUS_LABELS[value], str(count))
        for genre_id, count in sorted(counts.genres.items(), key=lambda x: -x[1]):
            if genre_id in genre_names:
                table.add_row("Genre", escape(genre_names[genre_id]), str(count))
        for series_id, count in sorted(counts.series.items(), key=lambda x: -x[1]):
            table.add_row("Series", escape(series_names.get(series_id, series_id)), str(count))
        for threshold, count in counts.ratings.items():
            table.add_row("Rating", f"{threshold}+ {stars(threshold)}", str(count))
        for name, count in sorted(counts.authors.items(), key=lambda x: (-x[1], x[0].lower())):
            table.add_row("Author", escape(name), str(count))

        console.print(table)


@app.command()
@handle_library_errors
def authors(
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
):
    """List authors with their number of books."""
    with open_library(library_path) as lib:
        table = Table(title="Authors")
        table.add_column("Author", style="blue")
        table.add_column("Books", justify="right")
        for name, count in extract_authors(lib.books.list(lib.user_id)):
            table.add_row(escape(name), str(count))
        console.print(table)


@app.command()
@handle_library_errors
def search(
    library_path: Path = typer.Argument(..., help="Path to library"),
    query: Optional[str] = typer.Argument(None, help="Search query"),
    recent: bool = typer.Option(False, "--recent", help="Show recent searches"),
    clear_recent: bool = typer.Option(False, "--clear-recent", help="Forget recent searches"),
):
    """
    Search titles, authors, publishers, notes, ISBNs and series names.

    Examples:
        bka search ~/books pratchett
        bka search ~/books --recent
    """
    with open_library(library_path) as lib:
        if clear_recent:
            lib.recent_searches.clear()
            console.print("[green]✓ Recent searches cleared[/green]")
            return

        if recent or not query:
            searches = lib.recent_searches.read()
            if not searches:
                console.print("[yellow]No recent searches[/yellow]")
            for past in searches:
                console.print(f"  {escape(past)}")
            return

        results = lib.search(query)
        if not results:
            console.print(f"[yellow]No results found for: {escape(query)}[/yellow]")
            return

        console.print(books_table(lib, results, f"Search Results: '{escape(query)}'", query=query))
        console.print(f"\n[dim]Showing {len(results)} results[/dim]")


@app.command(name="check-duplicate")
@handle_library_errors
def check_duplicate(
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
    isbn: Optional[str] = typer.Option(None, "--isbn", help="ISBN"),
    title: str = typer.Option("", "--title", "-t", help="Title"),
    author: str = typer.Option("", "--author", "-a", help="Author"),
):
    """
    Check whether a book is already in the library.

    Example:
        bka check-duplicate ~/books --isbn 9780441013593
    """
    if isbn:
        if not is_isbn(isbn):
            raise ValidationError(f"Not a valid ISBN: {isbn}")
        isbn = clean_isbn(isbn)
    if not isbn and not (title and author):
        raise ValidationError("Give an ISBN, or both title and author")

    with open_library(library_path) as lib:
        result = lib.check_duplicate(isbn, title, author)
        if result.is_duplicate:
            how = "ISBN" if result.match_type == MATCH_ISBN else "title and author"
            existing = result.existing_book
            console.print(f"[yellow]Duplicate (same {how}): {escape(existing['title'])} "
                          f"by {escape(existing['author'])} ({existing['id']})[/yellow]")
        else:
            console.print("[green]Not in library[/green]")


# ============================================================================
# Reading, Rating and the Bin
# ============================================================================

@read_app.command(name="start")
@handle_library_errors
def read_start(
    book_id: str = typer.Argument(..., help="Book ID"),
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
):
    """Start reading a book."""
    with open_library(library_path) as lib:
        lib.books.start_reading(lib.user_id, book_id)
        book = lib.get_book_or_raise(book_id)
        console.print(f"[green]✓ Started '{escape(book.title)}'[/green]")


@read_app.command(name="finish")
@handle_library_errors
def read_finish(
    book_id: str = typer.Argument(..., help="Book ID"),
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
):
    """Finish reading a book."""
    with open_library(library_path) as lib:
        lib.books.finish_reading(lib.user_id, book_id)
        book = lib.get_book_or_raise(book_id)
        console.print(f"[green]✓ Finished '{escape(book.title)}'[/green]")


@read_app.command(name="history")
@handle_library_errors
def read_history(
    book_id: str = typer.Argument(..., help="Book ID"),
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
):
    """Show the read attempts of a book."""
    with open_library(library_path) as lib:
        book = lib.get_book_or_raise(book_id)
        console.print(f"[bold]{escape(book.title)}[/bold]: {STATUS_LABELS[derive_status(book)]}")
        for attempt in book.reads:
            started = format_date(attempt.started_at) or "?"
            finished = format_date(attempt.finished_at) or "…"
            console.print(f"  {started} → {finished}")


@app.command()
@handle_library_errors
def rate(
    book_id: str = typer.Argument(..., help="Book ID"),
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
    rating: int = typer.Option(..., "--rating", "-r", help="Rating (1-5, 0 to clear)"),
):
    """
    Rate a book.

    Example:
        bka rate 3f2a... ~/books --rating 4
    """
    with open_library(library_path) as lib:
        lib.books.update(lib.user_id, book_id, rating=rating or None)
        book = lib.get_book_or_raise(book_id)
        if rating:
            console.print(f"[green]✓ Rated '{escape(book.title)}': {stars(rating)}[/green]")
        else:
            console.print(f"[green]✓ Cleared rating of '{escape(book.title)}'[/green]")


@app.command()
@handle_library_errors
def delete(
    book_id: str = typer.Argument(..., help="Book ID"),
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
):
    """Move a book to the bin."""
    with open_library(library_path) as lib:
        book = lib.get_book_or_raise(book_id)
        lib.books.soft_delete(lib.user_id, book_id)
        console.print(f"[green]✓ Moved '{escape(book.title)}' to the bin[/green]")


@app.command()
@handle_library_errors
def restore(
    book_id: str = typer.Argument(..., help="Book ID"),
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
):
    """Restore a book from the bin."""
    with open_library(library_path) as lib:
        book = lib.get_book_or_raise(book_id)
        lib.books.restore(lib.user_id, book_id)
        console.print(f"[green]✓ Restored '{escape(book.title)}'[/green]")


@app.command()
@handle_library_errors
@require_confirmation("Permanently delete book {book_id}?")
def purge(
    book_id: str = typer.Argument(..., help="Book ID"),
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Permanently delete a book."""
    with open_library(library_path) as lib:
        book = lib.get_book_or_raise(book_id)
        lib.books.delete(lib.user_id, book_id)
        console.print(f"[green]✓ Deleted '{escape(book.title)}'[/green]")


# ============================================================================
# Genre Commands
# ============================================================================

@genre_app.command(name="list")
@handle_library_errors
def genre_list(
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
):
    """List genres."""
    with open_library(library_path) as lib:
        genres = lib.genres.list(lib.user_id)
        if not genres:
            console.print("[yellow]No genres[/yellow]")
            return

        facets = lib.facets()
        table = Table(title="Genres")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Name")
        table.add_column("Books", justify="right")
        for genre in genres:
            badge = f"{contrast_color(genre.color)} on {normalize_color(genre.color)}"
            table.add_row(genre.id, f"[{badge}] {escape(genre.name)} [/]",
                          str(facets.genre_count(genre.id)))
        console.print(table)


@genre_app.command(name="add")
@handle_library_errors
def genre_add(
    name: str = typer.Argument(..., help="Genre name"),
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
    color: Optional[str] = typer.Option(None, "--color", "-c", help="Hex colour, e.g. #3b82f6"),
):
    """Create a genre."""
    with open_library(library_path) as lib:
        genre_id = lib.genres.create(lib.user_id, name, color=color)
        console.print(f"[green]✓ Created genre '{escape(name)}' ({genre_id})[/green]")


@genre_app.command(name="delete")
@handle_library_errors
@require_confirmation("Delete genre '{genre}'?")
def genre_delete(
    genre: str = typer.Argument(..., help="Genre name or id"),
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a genre. Books keep their other genres."""
    with open_library(library_path) as lib:
        genre_id = resolve_genre(lib, genre)
        lib.genres.delete(lib.user_id, genre_id)
        console.print(f"[green]✓ Deleted genre '{escape(genre)}'[/green]")


@genre_app.command(name="merge")
@handle_library_errors
@require_confirmation("Move every book from genre '{source}' to '{target}' and delete '{source}'?")
def genre_merge(
    source: str = typer.Argument(..., help="Genre to merge away (name or id)"),
    target: str = typer.Argument(..., help="Genre to keep (name or id)"),
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """
    Merge one genre into another.

    Example:
        bka genre merge "Sci-Fi" "Science Fiction" ~/books
    """
    with open_library(library_path) as lib:
        count = lib.merge_genre(resolve_genre(lib, source), resolve_genre(lib, target))
        if count:
            console.print(f"[green]✓ Moved {count} books from '{escape(source)}' to '{escape(target)}'[/green]")
        else:
            console.print(f"[yellow]No books in '{escape(source)}', nothing merged[/yellow]")


@genre_app.command(name="recount")
@handle_library_errors
def genre_recount(
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
):
    """Recalculate the stored book count of every genre."""
    with open_library(library_path) as lib:
        updated, scanned = lib.health_service.recount_genres(lib.user_id)
        console.print(f"[green]✓ Updated {updated} genres from {scanned} books[/green]")


# ============================================================================
# Series Commands
# ============================================================================

@series_app.command(name="list")
@handle_library_errors
def series_list(
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
):
    """List series."""
    with open_library(library_path) as lib:
        all_series = lib.series.list(lib.user_id)
        if not all_series:
            console.print("[yellow]No series[/yellow]")
            return

        facets = lib.facets()
        table = Table(title="Series")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Name", style="green")
        table.add_column("Books", justify="right")
        for series in all_series:
            owned = facets.series_count(series.id)
            total = f"{owned}/{series.total_books}" if series.total_books else str(owned)
            table.add_row(series.id, escape(series.name), total)
        console.print(table)


@series_app.command(name="show")
@handle_library_errors
def series_show(
    series: str = typer.Argument(..., help="Series name or id"),
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
):
    """List the books in a series in order."""
    with open_library(library_path) as lib:
        series_id = resolve_series(lib, series)
        books = lib.books.list_by_series(lib.user_id, series_id)
        if not books:
            console.print("[yellow]No books in this series[/yellow]")
            return
        console.print(books_table(lib, books, escape(lib.series.get(lib.user_id, series_id).name)))


@series_app.command(name="add")
@handle_library_errors
def series_add(
    name: str = typer.Argument(..., help="Series name"),
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
    total: Optional[int] = typer.Option(None, "--total", help="Number of books in the series"),
):
    """Create a series."""
    with open_library(library_path) as lib:
        series_id = lib.series.create(lib.user_id, name, total_books=total)
        console.print(f"[green]✓ Created series '{escape(name)}' ({series_id})[/green]")


@series_app.command(name="delete")
@handle_library_errors
@require_confirmation("Delete series '{series}'? Its books stay in the library.")
def series_delete(
    series: str = typer.Argument(..., help="Series name or id"),
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a series. Its books stay in the library."""
    with open_library(library_path) as lib:
        unlinked = lib.series.delete(lib.user_id, resolve_series(lib, series))
        console.print(f"[green]✓ Deleted series '{escape(series)}' ({unlinked} books unlinked)[/green]")


@series_app.command(name="merge")
@handle_library_errors
@require_confirmation("Move every book from series '{source}' to '{target}' and delete '{source}'?")
def series_merge(
    source: str = typer.Argument(..., help="Series to merge away (name or id)"),
    target: str = typer.Argument(..., help="Series to keep (name or id)"),
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Merge one series into another. Series positions are kept as they are."""
    with open_library(library_path) as lib:
        count = lib.merge_series(resolve_series(lib, source), resolve_series(lib, target))
        if count:
            console.print(f"[green]✓ Moved {count} books from '{escape(source)}' to '{escape(target)}'[/green]")
        else:
            console.print(f"[yellow]No books in '{escape(source)}', nothing merged[/yellow]")


# ============================================================================
# Wishlist Commands
# ============================================================================

@wishlist_app.command(name="list")
@handle_library_errors
def wishlist_list(
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
):
    """List the wishlist, highest priority first."""
    with open_library(library_path) as lib:
        items = lib.wishlist.list(lib.user_id)
        if not items:
            console.print("[yellow]Wishlist is empty[/yellow]")
            return

        table = Table(title="Wishlist")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Title", style="green")
        table.add_column("Author", style="blue")
        table.add_column("Priority", style="magenta")
        for item in items:
            table.add_row(item.id, escape(item.title[:50]), escape(item.author[:30]), item.priority or "")
        console.print(table)


@wishlist_app.command(name="add")
@handle_library_errors
def wishlist_add(
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
    title: str = typer.Option(..., "--title", "-t", help="Book title"),
    author: str = typer.Option(..., "--author", "-a", help="Author"),
    isbn: Optional[str] = typer.Option(None, "--isbn", help="ISBN"),
    priority: Optional[str] = typer.Option(None, "--priority", "-p",
                                           help=f"Priority: {', '.join(WISHLIST_PRIORITIES)}"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Notes"),
):
    """Add a book to the wishlist."""
    if isbn:
        if not is_isbn(isbn):
            raise ValidationError(f"Not a valid ISBN: {isbn}")
        isbn = clean_isbn(isbn)

    with open_library(library_path) as lib:
        owned = lib.check_duplicate(isbn, title, author)
        if owned.is_duplicate:
            console.print(f"[yellow]You already own '{escape(owned.existing_book['title'])}'[/yellow]")
            raise typer.Exit(code=1)

        item_id = lib.wishlist.add(lib.user_id, title=title, author=author, isbn=isbn,
                                   priority=priority, notes=notes)
        console.print(f"[green]✓ Added '{escape(title)}' to wishlist ({item_id})[/green]")


@wishlist_app.command(name="delete")
@handle_library_errors
@require_confirmation("Remove wishlist item {item_id}?")
def wishlist_delete(
    item_id: str = typer.Argument(..., help="Wishlist item ID"),
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Remove an item from the wishlist."""
    with open_library(library_path) as lib:
        item = lib.wishlist.get_or_raise(lib.user_id, item_id)
        lib.wishlist.delete(lib.user_id, item_id)
        console.print(f"[green]✓ Removed '{escape(item.title)}' from wishlist[/green]")


# ============================================================================
# Backup Commands
# ============================================================================

@app.command(name="export")
@handle_library_errors
def export_backup(
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Backup file (default: dated file in current directory)"),
):
    """
    Export the whole library, bin included, to a JSON backup.

    Example:
        bka export ~/books -o backup.json
    """
    with open_library(library_path) as lib:
        result = lib.export_library()
        if result.nothing_to_export:
            console.print("[yellow]Nothing to export[/yellow]")
            return

        path = write_backup(result.document, output or Path(backup_filename()))
        counts = result.counts
        console.print(f"[green]✓ Exported to {path}[/green]")
        console.print(f"  {counts['books']} books, {counts['bin']} in bin, {counts['genres']} genres, "
                      f"{counts['series']} series, {counts['wishlist']} wishlist items")


@app.command(name="import")
@handle_library_errors
def import_backup(
    backup_file: Path = typer.Argument(..., help="Backup JSON file"),
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
):
    """
    Import a JSON backup. Books already in the library are skipped.

    Example:
        bka import book-assembly-backup-2024-05-01.json ~/books
    """
    raw = Path(backup_file).read_bytes()
    with open_library(library_path) as lib:
        result = lib.import_library(raw)

        colour = "yellow" if result.nothing_new else "green"
        console.print(f"[{colour}]{result.summary()}[/{colour}]")

        table = Table()
        table.add_column("Records", style="cyan")
        table.add_column("Added", justify="right", style="green")
        table.add_column("Skipped", justify="right", style="yellow")
        table.add_row("Genres", str(result.genres_created), str(result.genres_skipped))
        table.add_row("Series", str(result.series_created), str(result.series_skipped))
        table.add_row("Books", str(result.books_created), str(result.books_skipped))
        table.add_row("Bin", str(result.bin_created), str(result.bin_skipped))
        table.add_row("Wishlist", str(result.wishlist_created), str(result.wishlist_skipped))
        console.print(table)
        if result.dropped_references:
            console.print(f"[dim]{result.dropped_references} unknown genre/series references dropped[/dim]")


# ============================================================================
# Maintenance and Lookup
# ============================================================================

@app.command()
@handle_library_errors
def stats(
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
):
    """Show collection sizes and reading progress."""
    with open_library(library_path) as lib:
        counts = lib.stats()
        facets = lib.facets()

        table = Table(title="Library Statistics")
        table.add_column("Metric", style="cyan")
        table.add_column("Count", style="green", justify="right")
        table.add_row("Books", str(counts['books']))
        for status, label in STATUS_LABELS.items():
            table.add_row(f"  {label}", str(facets.status_count(status)))
        table.add_row("In bin", str(counts['bin']))
        table.add_row("Genres", str(counts['genres']))
        table.add_row("Series", str(counts['series']))
        table.add_row("Wishlist", str(counts['wishlist']))
        console.print(table)

        recent_books = lib.books.list_recent(lib.user_id, count=5)
        if recent_books:
            console.print("\n[bold]Recently added[/bold]")
            for book in recent_books:
                console.print(f"  {escape(book.title)} [dim]by {escape(book.author)}[/dim]")
        recent_wishes = lib.wishlist.list_recent(lib.user_id, count=3)
        if recent_wishes:
            console.print("\n[bold]Recently wished for[/bold]")
            for item in recent_wishes:
                console.print(f"  {escape(item.title)} [dim]by {escape(item.author)}[/dim]")


@app.command()
@handle_library_errors
def health(
    library_path: Optional[Path] = typer.Argument(None, help="Path to library (default: configured library path)"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of books to list"),
):
    """Report books with missing details."""
    with open_library(library_path) as lib:
        report = lib.health()
        label, colour = completeness_rating(report.completeness_score)
        style = COLOUR_STYLES[colour]

        console.print(f"[bold]Completeness:[/bold] [{style}]{report.completeness_score}% ({label})[/{style}]")
        console.print(f"  {report.total_books} books, {report.total_issues} missing details, "
                      f"{report.fixable_books} fixable by ISBN lookup")

        entries = books_with_issues(report)
        if not entries:
            return

        table = Table(title="Books with missing details")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Title", style="green")
        table.add_column("Missing", style="yellow")
        for book, missing in entries[:limit]:
            table.add_row(book.id, escape(book.title[:50]), ", ".join(missing))
        console.print(table)


@app.command()
@handle_library_errors
def lookup(
    query: str = typer.Argument(..., help="ISBN or search text"),
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum number of results"),
):
    """
    Look up book details online (Google Books, Open Library).

    Examples:
        bka lookup 9780441013593
        bka lookup "terry pratchett guards"
    """
    config = load_config()
    if not config.lookup.enabled:
        console.print("[yellow]Online lookup is disabled (bka config --lookup)[/yellow]")
        return

    service = LookupService(api_key=config.lookup.google_books_api_key,
                            timeout=config.lookup.timeout)
    if is_isbn(query):
        found = asyncio.run(service.lookup_isbn(clean_isbn(query)))
        results = [found] if found else []
    else:
        results = asyncio.run(service.search(query, max_results=limit))

    if not results:
        console.print(f"[yellow]No results found for: {escape(query)}[/yellow]")
        return

    table = Table(title=f"Lookup: '{escape(query)}'")
    table.add_column("ISBN", style="cyan")
    table.add_column("Title", style="green")
    table.add_column("Author", style="blue")
    table.add_column("Published")
    table.add_column("Pages", justify="right")
    table.add_column("Genres")
    for result in results:
        title = result.title
        if result.series_name:
            position = f" #{result.series_position}" if result.series_position else ""
            title += f" ({result.series_name}{position})"
        table.add_row(
            result.isbn or "",
            escape(title[:60]),
            escape(result.author[:30]),
            escape(result.published_date),
            str(result.page_count or ""),
            escape(", ".join(result.genres)),
        )
    console.print(table)


@app.command()
def config(
    show: bool = typer.Option(False, "--show", help="Show current configuration"),
    set_library_path: Optional[str] = typer.Option(None, "--library-path", help="Set default library path"),
    set_user_id: Optional[str] = typer.Option(None, "--user-id", help="Set library user id"),
    set_api_key: Optional[str] = typer.Option(None, "--google-books-api-key", help="Set Google Books API key"),
    set_timeout: Optional[float] = typer.Option(None, "--lookup-timeout", help="Set lookup timeout in seconds"),
    set_lookup: Optional[bool] = typer.Option(None, "--lookup/--no-lookup", help="Enable online lookup"),
    set_verbose: Optional[bool] = typer.Option(None, "--cli-verbose/--no-cli-verbose", help="Enable verbose output by default"),
    set_color: Optional[bool] = typer.Option(None, "--cli-color/--no-cli-color", help="Enable colored output by default"),
    set_page_size: Optional[int] = typer.Option(None, "--page-size", help="Set default number of books listed"),
):
    """
    View or edit bka configuration.

    Configuration is stored at ~/.config/bka/config.json (or ~/.bka/config.json).

    Examples:
        bka config --show
        bka config --user-id alice --lookup-timeout 5
    """
    has_settings = any([
        set_library_path, set_user_id, set_api_key, set_timeout is not None,
        set_lookup is not None, set_verbose is not None, set_color is not None,
        set_page_size is not None,
    ])

    if show or not has_settings:
        current = load_config()
        console.print("\n[bold]bka Configuration[/bold]")
        console.print(f"[dim]Location: {get_config_path()}[/dim]\n")
        for section, values in current.to_dict().items():
            console.print(f"[bold cyan]{section}[/bold cyan]")
            for key, value in values.items():
                if key == "google_books_api_key" and value:
                    value = "***"
                console.print(f"  {key}: {value}")
        return

    update_config(
        library_default_path=set_library_path,
        library_user_id=set_user_id,
        lookup_api_key=set_api_key,
        lookup_timeout=set_timeout,
        lookup_enabled=set_lookup,
        cli_verbose=set_verbose,
        cli_color=set_color,
        cli_page_size=set_page_size,
    )
    console.print(f"[green]✓ Configuration saved to {get_config_path()}[/green]")


if __name__ == "__main__":
    app()
