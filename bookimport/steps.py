"""The three stages of the book import job: authors, genres, books."""
import csv
import logging
import threading
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from bookimport.batch import Job, ItemProcessor, ItemReader, ItemWriter, Step
from bookimport.database import BookStore
from bookimport.dedupe import DedupeFilter
from bookimport.errors import MissingReferenceError
from bookimport.hooks import logging_hooks
from bookimport.models import Author, Book, Genre
from bookimport.normalize import normalize_authors, normalize_book, normalize_genre
from bookimport.parse import DEFAULT_DATE_FORMAT, fields_from_row, parse_authors, record_from_fields

logger = logging.getLogger(__name__)

JOB_NAME = "importBookJob"

RowMapper = Callable[[Dict[str, str], int], Any]


class GenreOnMissing(str, Enum):
    """What the books stage does with a genre that is not in the store."""
    FAIL = "fail"
    SAVE = "save"


# -- reading ----------------------------------------------------------------

class CsvItemReader(ItemReader):
    """Reads the book CSV and maps every non-blank row through a mapper."""

    def __init__(
        self,
        path: str,
        mapper: RowMapper,
        delimiter: str = ";",
        skip_header: bool = False,
        encoding: str = "utf-8"
    ):
        self.path = path
        self.mapper = mapper
        self.delimiter = delimiter
        self.skip_header = skip_header
        self.encoding = encoding
        self._file = None
        self._rows = None

    def open(self):
        self._file = open(self.path, "r", encoding=self.encoding, newline="")
        self._rows = csv.reader(self._file, delimiter=self.delimiter)
        if self.skip_header:
            next(self._rows, None)
        logger.info(f"Opened {self.path}")

    def close(self):
        if self._file is not None:
            self._file.close()
            self._file = None
            self._rows = None

    def read(self) -> Optional[Any]:
        if self._rows is None:
            raise RuntimeError("reader is not open")
        for row in self._rows:
            if len(row) <= 1 and not "".join(row).strip():
                continue
            line_number = self._rows.line_num
            return self.mapper(fields_from_row(row, line_number), line_number)
        return None


def map_authors(fields: Dict[str, str], line_number: int) -> Set[Author]:
    return normalize_authors(parse_authors(fields["authors"], line_number))


def map_genre(fields: Dict[str, str], line_number: int) -> Genre:
    return normalize_genre(fields["genre"])


def book_mapper(date_format: str = DEFAULT_DATE_FORMAT) -> RowMapper:
    def map_book(fields: Dict[str, str], line_number: int) -> Book:
        return normalize_book(record_from_fields(fields, date_format, line_number))
    return map_book


# -- processing -------------------------------------------------------------

class AuthorDedupeProcessor(ItemProcessor):
    """Keeps only the authors of a row that are new to the store and the step."""

    def __init__(self, store: BookStore):
        self.filter = DedupeFilter(
            lookup=lambda author: store.find_author(author.name, author.surname),
            name="authors",
        )

    def open(self):
        self.filter.open()

    def close(self):
        self.filter.close()

    def process(self, authors: Set[Author]) -> Optional[Set[Author]]:
        admitted = {author for author in authors if self.filter.admit(author)}
        return admitted or None


class GenreDedupeProcessor(ItemProcessor):
    """Drops genres already stored or already admitted in this step."""

    def __init__(self, store: BookStore):
        self.filter = DedupeFilter(
            lookup=lambda genre: store.find_genre(genre.name),
            name="genres",
        )

    def open(self):
        self.filter.open()

    def close(self):
        self.filter.close()

    def process(self, genre: Genre) -> Optional[Genre]:
        return genre if self.filter.admit(genre) else None


class BookReferenceProcessor(ItemProcessor):
    """
    Compute the book's age and swap its author/genre values for stored ones.

    Raises MissingReferenceError for an unknown author, and for an unknown
    genre unless the policy is GenreOnMissing.SAVE.
    """

    def __init__(self, store: BookStore, genre_on_missing: GenreOnMissing = GenreOnMissing.FAIL,
                 today: Optional[date] = None):
        self.store = store
        self.genre_on_missing = GenreOnMissing(genre_on_missing)
        self.today = today
        self._genre_lock = threading.Lock()

    def process(self, book: Book) -> Book:
        book.calculate_age(self.today)
        book.genre = self._resolve_genre(book.genre)

        resolved = set()
        for author in book.authors:
            stored = self.store.find_author(author.name, author.surname)
            if stored is None:
                raise MissingReferenceError("author", author.full_name)
            resolved.add(stored)
        book.authors = resolved
        return book

    def _resolve_genre(self, genre: Genre) -> Genre:
        stored = self.store.find_genre(genre.name)
        if stored is not None:
            return stored
        if self.genre_on_missing is GenreOnMissing.FAIL:
            raise MissingReferenceError("genre", genre.name)

        with self._genre_lock:
            stored = self.store.find_genre(genre.name)
            if stored is None:
                logger.info(f"Saving missing genre '{genre.name}'")
                stored = self.store.save_genres([genre])[0]
            return stored


# -- writing ----------------------------------------------------------------

class AuthorWriter(ItemWriter):
    """Flattens a chunk of author sets into one batch insert."""

    def __init__(self, store: BookStore):
        self.store = store

    def write(self, items: List[Set[Author]]):
        combined = set()
        for authors in items:
            combined |= authors
        self.store.save_authors(combined)


class GenreWriter(ItemWriter):
    def __init__(self, store: BookStore):
        self.store = store

    def write(self, items: List[Genre]):
        self.store.save_genres(items)


class BookWriter(ItemWriter):
    def __init__(self, store: BookStore):
        self.store = store

    def write(self, items: List[Book]):
        self.store.save_books(items)


# -- job --------------------------------------------------------------------

def build_import_job(config, store: BookStore, today: Optional[date] = None) -> Job:
    """
    Wire the authors, genres and books steps into one job.

    Args:
        config: Config (or any object with the same attributes)
        store: Target store
        today: Reference date for book ages (defaults to the current date)

    Returns:
        Job ready to run
    """
    def reader_for(mapper: RowMapper) -> Callable[[], CsvItemReader]:
        return lambda: CsvItemReader(
            config.INPUT_FILE,
            mapper,
            delimiter=config.CSV_DELIMITER,
            skip_header=config.SKIP_HEADER,
            encoding=getattr(config, "CSV_ENCODING", "utf-8"),
        )

    step_options = {
        "chunk_size": config.CHUNK_SIZE,
        "max_workers": config.MAX_WORKERS,
    }

    authors_step = Step(
        "authorStep",
        reader_for(map_authors),
        AuthorDedupeProcessor(store),
        AuthorWriter(store),
        hooks=logging_hooks("authors"),
        **step_options,
    )
    genres_step = Step(
        "genreStep",
        reader_for(map_genre),
        GenreDedupeProcessor(store),
        GenreWriter(store),
        hooks=logging_hooks("genres"),
        **step_options,
    )
    books_step = Step(
        "bookStep",
        reader_for(book_mapper(config.DATE_FORMAT)),
        BookReferenceProcessor(store, config.GENRE_ON_MISSING, today=today),
        BookWriter(store),
        hooks=logging_hooks("books"),
        **step_options,
    )

    return Job(JOB_NAME, [authors_step, genres_step, books_step], hooks=logging_hooks("job"))
