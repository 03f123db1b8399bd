"""Parse semicolon-delimited book rows."""
import csv
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Tuple

from bookimport.errors import MalformedAuthorError, ParseError

FIELD_NAMES = ("name", "publishedDate", "authors", "genre")
DEFAULT_DATE_FORMAT = "%Y-%m-%d"


@dataclass
class BookRecord:
    """One parsed CSV row."""
    title: str
    published_date: date
    authors: List[Tuple[str, str]]
    genre: str
    line_number: Optional[int] = None


def split_line(line: str, delimiter: str = ";") -> List[str]:
    """Tokenize one raw line, honouring CSV quoting."""
    return next(csv.reader([line], delimiter=delimiter), [])


def fields_from_row(row: Sequence[str], line_number: Optional[int] = None) -> Dict[str, str]:
    """
    Map row tokens onto FIELD_NAMES.

    Args:
        row: Tokens of a single line
        line_number: Source line, used in error messages

    Returns:
        Dict of field name to stripped value

    Raises:
        ParseError: wrong token count or a blank field
    """
    if len(row) != len(FIELD_NAMES):
        raise ParseError(
            f"expected {len(FIELD_NAMES)} fields, got {len(row)}",
            line_number,
        )

    fields = {}
    for name, value in zip(FIELD_NAMES, row):
        value = value.strip()
        if not value:
            raise ParseError(f"missing required field '{name}'", line_number)
        fields[name] = value
    return fields


def parse_authors(value: str, line_number: Optional[int] = None) -> List[Tuple[str, str]]:
    """
    Split an authors field into (name, surname) pairs.

    "John Smith, Jane Doe" -> [("John", "Smith"), ("Jane", "Doe")]

    Raises:
        MalformedAuthorError: an entry is not exactly two whitespace-separated tokens
    """
    pairs = []
    for entry in value.split(","):
        tokens = entry.split()
        if len(tokens) != 2:
            raise MalformedAuthorError(
                f"author entry '{entry.strip()}' is not 'Name Surname'",
                line_number,
            )
        pairs.append((tokens[0], tokens[1]))
    return pairs


def parse_date(value: str, date_format: str = DEFAULT_DATE_FORMAT,
               line_number: Optional[int] = None) -> date:
    """Parse a published date, raising ParseError on format mismatch."""
    try:
        return datetime.strptime(value.strip(), date_format).date()
    except ValueError:
        raise ParseError(
            f"published date '{value}' does not match format '{date_format}'",
            line_number,
        ) from None


def record_from_fields(
    fields: Dict[str, str],
    date_format: str = DEFAULT_DATE_FORMAT,
    line_number: Optional[int] = None
) -> BookRecord:
    """Build a BookRecord from already tokenized fields."""
    return BookRecord(
        title=fields["name"],
        published_date=parse_date(fields["publishedDate"], date_format, line_number),
        authors=parse_authors(fields["authors"], line_number),
        genre=fields["genre"],
        line_number=line_number,
    )


def parse_record(
    line: str,
    delimiter: str = ";",
    date_format: str = DEFAULT_DATE_FORMAT,
    line_number: Optional[int] = None
) -> BookRecord:
    """
    Parse a raw line in `name;publishedDate;authors;genre` order.

    Args:
        line: Raw CSV line
        delimiter: Field delimiter
        date_format: strptime format of the published date
        line_number: Source line, used in error messages

    Returns:
        BookRecord

    Raises:
        ParseError: missing field or bad date
        MalformedAuthorError: bad author entry
    """
    row = split_line(line.rstrip("\r\n"), delimiter)
    return record_from_fields(fields_from_row(row, line_number), date_format, line_number)
