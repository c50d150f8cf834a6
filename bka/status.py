"""Reading status derived from a book's read attempts."""

from .models import Book

WANT_TO_READ = 'want-to-read'
READING = 'reading'
FINISHED = 'finished'

STATUS_LABELS = {
    WANT_TO_READ: 'Not Read',
    READING: 'Currently Reading',
    FINISHED: 'Finished',
}


def derive_status(book: Book) -> str:
    """
    Get the reading status of a book.

    Only the last read attempt in list order counts; the list is assumed
    to be in the order the attempts were made. Attempts are not re-sorted
    by date.

    Returns:
        'want-to-read', 'reading' or 'finished'
    """
    reads = book.reads or []
    if not reads:
        return WANT_TO_READ

    latest = reads[-1]
    if latest.finished_at:
        return FINISHED
    if latest.started_at:
        return READING
    return WANT_TO_READ
