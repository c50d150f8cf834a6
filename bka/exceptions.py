"""Exception types raised by bka.

Three kinds of failure reach callers:

- ``ValidationError``: bad input (malformed ISBN, unreadable backup,
  unsupported backup version). Raised before anything is written.
- ``NotFoundError``: the direct target of an operation does not exist.
  Listings and plain lookups return empty results instead.
- ``StoreError``: a write against the document store failed. The
  transaction is rolled back, so nothing from the failed commit is kept.
"""


class BKAError(Exception):
    """Base class for bka errors."""


class ValidationError(BKAError, ValueError):
    """Invalid user input."""


class BackupParseError(ValidationError):
    """Backup file is not valid JSON."""


class UnsupportedBackupError(ValidationError):
    """Backup file has an unrecognised format version."""

    def __init__(self, version=None):
        self.version = version
        super().__init__(f"Unrecognised backup format (version: {version!r})")


class EmptyBackupError(ValidationError):
    """Backup file contains no records."""


class NotFoundError(BKAError, LookupError):
    """Requested record does not exist."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection} record not found: {doc_id}")


class StoreError(BKAError):
    """A write to the document store failed."""

    def __init__(self, message: str, result=None):
        super().__init__(message)
        # Partial bookkeeping (e.g. skip counts) computed before the failure
        self.result = result
