"""Exceptions raised by the import job."""
from typing import Optional


class ImportJobError(Exception):
    """Base class for import job failures."""


class ParseError(ImportJobError):
    """A CSV row is missing a field or carries an unparseable value."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        self.line_number = line_number
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)


class MalformedAuthorError(ParseError):
    """An author entry is not a "Name Surname" pair."""


class MissingReferenceError(ImportJobError):
    """A book references an author or genre that is not in the store."""

    def __init__(self, kind: str, key):
        self.kind = kind
        self.key = key
        super().__init__(f"No {kind} in store: {key}")


class StoreError(ImportJobError):
    """The backing store failed to read or write."""
