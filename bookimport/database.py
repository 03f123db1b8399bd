"""Document store for authors, genres, books and comments."""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from typing import Any, Dict, Iterable, List, Optional
import logging

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient
from pymongo.errors import PyMongoError

from bookimport.errors import MissingReferenceError, StoreError
from bookimport.models import Author, Book, Comment, Country, Genre

logger = logging.getLogger(__name__)

COLLECTIONS = ("comments", "books", "authors", "genres")


class BookStore(ABC):
    """
    Lookup and bulk insert operations used by the import job.

    Lookups return None on a miss. Saves are always inserts and return the
    saved entities carrying their store ids.
    """

    @abstractmethod
    def init_schema(self):
        """Create indexes/tables if they don't exist."""

    @abstractmethod
    def find_author(self, name: str, surname: str) -> Optional[Author]:
        """Find an author by exact (name, surname)."""

    @abstractmethod
    def find_genre(self, name: str) -> Optional[Genre]:
        """Find a genre by exact name."""

    @abstractmethod
    def save_authors(self, authors: Iterable[Author]) -> List[Author]:
        """Insert authors in one batch."""

    @abstractmethod
    def save_genres(self, genres: Iterable[Genre]) -> List[Genre]:
        """Insert genres in one batch."""

    @abstractmethod
    def save_books(self, books: Iterable[Book]) -> List[Book]:
        """Insert books whose authors and genre already carry store ids."""

    @abstractmethod
    def find_books(self, limit: Optional[int] = None) -> List[Book]:
        """Return stored books in insertion order with references resolved."""

    @abstractmethod
    def save_comments(self, comments: Iterable[Comment]) -> List[Comment]:
        """Insert comments in one batch."""

    @abstractmethod
    def find_comments_by_book(self, book_id: str) -> List[Comment]:
        """Comments attached to a book."""

    @abstractmethod
    def find_comments_by_username(self, username: str) -> List[Comment]:
        """Comments written by a user."""

    @abstractmethod
    def delete_comments_by_username(self, username: str) -> int:
        """Delete a user's comments, returning how many were removed."""

    @abstractmethod
    def clear(self) -> Dict[str, int]:
        """Wipe comments, books, authors and genres."""

    @abstractmethod
    def get_stats(self) -> Dict[str, int]:
        """Count stored entities per collection."""

    def close(self):
        """Release connections."""

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


def require_ids(book: Book):
    """Raise MissingReferenceError if a book carries unresolved references."""
    if book.genre.id is None:
        raise MissingReferenceError("genre", book.genre.name)
    for author in book.authors:
        if author.id is None:
            raise MissingReferenceError("author", author.full_name)


def _object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


@contextmanager
def _mongo_errors(operation: str):
    try:
        yield
    except PyMongoError as e:
        logger.error(f"MongoDB {operation} failed: {e}")
        raise StoreError(f"{operation} failed: {e}") from e


class MongoBookStore(BookStore):
    """MongoDB-backed store."""

    def __init__(
        self,
        uri: Optional[str] = None,
        db_name: str = "library",
        client: Optional[Any] = None
    ):
        """
        Initialize store.

        Args:
            uri: MongoDB connection string (ignored when client is given)
            db_name: Database name
            client: Pre-built client, e.g. a mongomock client in tests
        """
        self.client = client if client is not None else MongoClient(uri)
        self.db = self.client[db_name]
        self.authors = self.db["authors"]
        self.genres = self.db["genres"]
        self.books = self.db["books"]
        self.comments = self.db["comments"]
        logger.info(f"Connected to MongoDB database '{db_name}'")

    def init_schema(self):
        """Create identity and lookup indexes."""
        with _mongo_errors("init_schema"):
            self.authors.create_index(
                [("name", ASCENDING), ("surname", ASCENDING)],
                unique=True,
                name="author_identity",
            )
            self.genres.create_index([("name", ASCENDING)], unique=True, name="genre_identity")
            self.comments.create_index([("username", ASCENDING)], name="comment_username")
            self.comments.create_index([("book_id", ASCENDING)], name="comment_book")
        logger.info("MongoDB indexes initialized successfully")

    # -- authors / genres -------------------------------------------------

    def find_author(self, name: str, surname: str) -> Optional[Author]:
        with _mongo_errors("find_author"):
            doc = self.authors.find_one({"name": name, "surname": surname})
        return self._author_from_doc(doc) if doc else None

    def find_genre(self, name: str) -> Optional[Genre]:
        with _mongo_errors("find_genre"):
            doc = self.genres.find_one({"name": name})
        return self._genre_from_doc(doc) if doc else None

    def save_authors(self, authors: Iterable[Author]) -> List[Author]:
        authors = list(authors)
        if not authors:
            return []

        docs = [
            {"name": a.name, "surname": a.surname, "country": a.country.value}
            for a in authors
        ]
        with _mongo_errors("save_authors"):
            result = self.authors.insert_many(docs)

        logger.info(f"Inserted {len(result.inserted_ids)} authors")
        return [replace(a, id=str(oid)) for a, oid in zip(authors, result.inserted_ids)]

    def save_genres(self, genres: Iterable[Genre]) -> List[Genre]:
        genres = list(genres)
        if not genres:
            return []

        with _mongo_errors("save_genres"):
            result = self.genres.insert_many([{"name": g.name} for g in genres])

        logger.info(f"Inserted {len(result.inserted_ids)} genres")
        return [replace(g, id=str(oid)) for g, oid in zip(genres, result.inserted_ids)]

    # -- books ------------------------------------------------------------

    def save_books(self, books: Iterable[Book]) -> List[Book]:
        books = list(books)
        if not books:
            return []

        docs = []
        for book in books:
            require_ids(book)
            docs.append({
                "title": book.title,
                "published_date": book.published_date.isoformat(),
                "age": book.age,
                "authors": [ObjectId(a.id) for a in book.authors],
                "genre": ObjectId(book.genre.id),
            })

        with _mongo_errors("save_books"):
            result = self.books.insert_many(docs)

        for book, oid in zip(books, result.inserted_ids):
            book.id = str(oid)
        logger.info(f"Inserted {len(books)} books")
        return books

    def find_books(self, limit: Optional[int] = None) -> List[Book]:
        with _mongo_errors("find_books"):
            cursor = self.books.find().sort("_id", ASCENDING)
            if limit:
                cursor = cursor.limit(limit)
            docs = list(cursor)

            author_ids = {oid for doc in docs for oid in doc.get("authors", [])}
            genre_ids = {doc["genre"] for doc in docs if doc.get("genre")}
            authors = {
                d["_id"]: self._author_from_doc(d)
                for d in self.authors.find({"_id": {"$in": list(author_ids)}})
            }
            genres = {
                d["_id"]: self._genre_from_doc(d)
                for d in self.genres.find({"_id": {"$in": list(genre_ids)}})
            }

        return [
            Book(
                title=doc["title"],
                published_date=date.fromisoformat(doc["published_date"]),
                authors={authors[oid] for oid in doc.get("authors", []) if oid in authors},
                genre=genres.get(doc.get("genre")) or Genre(name="Unknown"),
                age=doc.get("age"),
                id=str(doc["_id"]),
            )
            for doc in docs
        ]

    # -- comments ---------------------------------------------------------

    def save_comments(self, comments: Iterable[Comment]) -> List[Comment]:
        comments = list(comments)
        if not comments:
            return []

        docs = []
        for c in comments:
            book_ref = None
            if c.book_id:
                book_ref = _object_id(c.book_id)
                if book_ref is None:
                    raise StoreError(f"Invalid book id for comment: {c.book_id!r}")
            docs.append({"username": c.username, "text": c.text, "book_id": book_ref})
        with _mongo_errors("save_comments"):
            result = self.comments.insert_many(docs)

        for comment, oid in zip(comments, result.inserted_ids):
            comment.id = str(oid)
        return comments

    def find_comments_by_book(self, book_id: str) -> List[Comment]:
        oid = _object_id(book_id)
        if oid is None:
            return []
        with _mongo_errors("find_comments_by_book"):
            return [self._comment_from_doc(d) for d in self.comments.find({"book_id": oid})]

    def find_comments_by_username(self, username: str) -> List[Comment]:
        with _mongo_errors("find_comments_by_username"):
            return [self._comment_from_doc(d) for d in self.comments.find({"username": username})]

    def delete_comments_by_username(self, username: str) -> int:
        with _mongo_errors("delete_comments_by_username"):
            deleted = self.comments.delete_many({"username": username}).deleted_count
        logger.info(f"Deleted {deleted} comments by {username}")
        return deleted

    # -- maintenance ------------------------------------------------------

    def clear(self) -> Dict[str, int]:
        """Wipe all collections, comments first."""
        deleted = {}
        with _mongo_errors("clear"):
            for name in COLLECTIONS:
                deleted[name] = self.db[name].delete_many({}).deleted_count
        logger.info(f"Cleared store: {deleted}")
        return deleted

    def get_stats(self) -> Dict[str, int]:
        with _mongo_errors("get_stats"):
            return {name: self.db[name].count_documents({}) for name in COLLECTIONS}

    def close(self):
        """Close the MongoDB client."""
        self.client.close()
        logger.info("MongoDB client closed")

    # -- mapping ----------------------------------------------------------

    @staticmethod
    def _author_from_doc(doc: Dict[str, Any]) -> Author:
        return Author(
            name=doc["name"],
            surname=doc["surname"],
            country=Country(doc.get("country", Country.NONE.value)),
            id=str(doc["_id"]),
        )

    @staticmethod
    def _genre_from_doc(doc: Dict[str, Any]) -> Genre:
        return Genre(name=doc["name"], id=str(doc["_id"]))

    @staticmethod
    def _comment_from_doc(doc: Dict[str, Any]) -> Comment:
        book_id = doc.get("book_id")
        return Comment(
            username=doc["username"],
            text=doc["text"],
            book_id=str(book_id) if book_id else None,
            id=str(doc["_id"]),
        )
