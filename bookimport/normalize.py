"""Turn parsed fields into domain entities."""
from typing import Iterable, Set, Tuple

from bookimport.models import Author, Book, Country, Genre
from bookimport.parse import BookRecord


def normalize_author(name: str, surname: str) -> Author:
    """Country is not present in the source data and defaults to NONE."""
    return Author(name=name, surname=surname, country=Country.NONE)


def normalize_authors(pairs: Iterable[Tuple[str, str]]) -> Set[Author]:
    return {normalize_author(name, surname) for name, surname in pairs}


def normalize_genre(value: str) -> Genre:
    return Genre(name=value.strip())


def normalize_book(record: BookRecord) -> Book:
    """Build a Book whose author and genre references are not yet resolved."""
    return Book(
        title=record.title,
        published_date=record.published_date,
        authors=normalize_authors(record.authors),
        genre=normalize_genre(record.genre),
    )
