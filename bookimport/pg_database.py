"""PostgreSQL store with connection pooling."""
import psycopg2
from psycopg2 import pool
from psycopg2.extras import execute_values
from contextlib import contextmanager
from dataclasses import replace
from typing import Dict, Iterable, List, Optional
import logging

from bookimport.database import BookStore, require_ids
from bookimport.errors import StoreError
from bookimport.models import Author, Book, Comment, Country, Genre

logger = logging.getLogger(__name__)

# Child tables first
TABLES = ("comments", "book_authors", "books", "authors", "genres")
ENTITY_TABLES = ("comments", "books", "authors", "genres")


class PostgresBookStore(BookStore):
    """PostgreSQL store with connection pooling."""

    def __init__(self, connection_string: str, min_conn: int = 1, max_conn: int = 10,
                 connection_pool=None):
        """
        Initialize database connection pool.

        Args:
            connection_string: PostgreSQL connection string
            min_conn: Minimum connections in pool
            max_conn: Maximum connections in pool
            connection_pool: Pre-built pool (skips creating one)
        """
        self.connection_pool = connection_pool or psycopg2.pool.ThreadedConnectionPool(
            min_conn,
            max_conn,
            connection_string
        )

        if self.connection_pool:
            logger.info("Database connection pool created successfully")
        else:
            raise StoreError("Failed to create connection pool")

    @contextmanager
    def _cursor(self, operation: str):
        """Yield a cursor, committing on success and rolling back on failure."""
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                yield cur
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"{operation} failed: {e}")
            raise StoreError(f"{operation} failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            self.connection_pool.putconn(conn)

    def init_schema(self):
        """Create database tables if they don't exist."""
        with self._cursor("init_schema") as cur:
            cur.execute("""
                CREATE TABLE IF NOT EXISTS authors (
                    id SERIAL PRIMARY KEY,
                    name TEXT NOT NULL,
                    surname TEXT NOT NULL,
                    country VARCHAR(32) NOT NULL DEFAULT 'NONE',
                    UNIQUE (name, surname)
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS genres (
                    id SERIAL PRIMARY KEY,
                    name TEXT NOT NULL UNIQUE
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS books (
                    id SERIAL PRIMARY KEY,
                    title TEXT NOT NULL,
                    published_date DATE NOT NULL,
                    age INTEGER,
                    genre_id INTEGER NOT NULL REFERENCES genres (id)
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS book_authors (
                    book_id INTEGER NOT NULL REFERENCES books (id),
                    author_id INTEGER NOT NULL REFERENCES authors (id),
                    PRIMARY KEY (book_id, author_id)
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS comments (
                    id SERIAL PRIMARY KEY,
                    username TEXT NOT NULL,
                    text TEXT NOT NULL,
                    book_id INTEGER REFERENCES books (id)
                )
            """)

            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_comments_username
                ON comments (username)
            """)
        logger.info("Database schema initialized successfully")

    def find_author(self, name: str, surname: str) -> Optional[Author]:
        with self._cursor("find_author") as cur:
            cur.execute("""
                SELECT id, name, surname, country
                FROM authors WHERE name = %s AND surname = %s
            """, (name, surname))
            row = cur.fetchone()
        return self._author_from_row(row) if row else None

    def find_genre(self, name: str) -> Optional[Genre]:
        with self._cursor("find_genre") as cur:
            cur.execute("SELECT id, name FROM genres WHERE name = %s", (name,))
            row = cur.fetchone()
        return Genre(name=row[1], id=str(row[0])) if row else None

    def save_authors(self, authors: Iterable[Author]) -> List[Author]:
        authors = list(authors)
        if not authors:
            return []

        with self._cursor("save_authors") as cur:
            rows = execute_values(
                cur,
                "INSERT INTO authors (name, surname, country) VALUES %s RETURNING id",
                [(a.name, a.surname, a.country.value) for a in authors],
                fetch=True,
            )
        logger.info(f"Inserted {len(rows)} authors")
        return [replace(a, id=str(row[0])) for a, row in zip(authors, rows)]

    def save_genres(self, genres: Iterable[Genre]) -> List[Genre]:
        genres = list(genres)
        if not genres:
            return []

        with self._cursor("save_genres") as cur:
            rows = execute_values(
                cur,
                "INSERT INTO genres (name) VALUES %s RETURNING id",
                [(g.name,) for g in genres],
                fetch=True,
            )
        logger.info(f"Inserted {len(rows)} genres")
        return [replace(g, id=str(row[0])) for g, row in zip(genres, rows)]

    def save_books(self, books: Iterable[Book]) -> List[Book]:
        books = list(books)
        if not books:
            return []
        for book in books:
            require_ids(book)

        with self._cursor("save_books") as cur:
            rows = execute_values(
                cur,
                "INSERT INTO books (title, published_date, age, genre_id) VALUES %s RETURNING id",
                [(b.title, b.published_date, b.age, int(b.genre.id)) for b in books],
                fetch=True,
            )
            links = []
            for book, row in zip(books, rows):
                book.id = str(row[0])
                links.extend((row[0], int(a.id)) for a in book.authors)
            if links:
                execute_values(
                    cur,
                    "INSERT INTO book_authors (book_id, author_id) VALUES %s",
                    links,
                )
        logger.info(f"Inserted {len(books)} books")
        return books

    def find_books(self, limit: Optional[int] = None) -> List[Book]:
        with self._cursor("find_books") as cur:
            cur.execute("""
                SELECT b.id, b.title, b.published_date, b.age, g.id, g.name
                FROM books b JOIN genres g ON g.id = b.genre_id
                ORDER BY b.id
                LIMIT %s
            """, (limit,))
            book_rows = cur.fetchall()

            cur.execute("""
                SELECT ba.book_id, a.id, a.name, a.surname, a.country
                FROM book_authors ba JOIN authors a ON a.id = ba.author_id
                WHERE ba.book_id = ANY(%s)
            """, ([row[0] for row in book_rows],))
            author_rows = cur.fetchall()

        authors_by_book: Dict[int, set] = {}
        for book_id, *author_row in author_rows:
            authors_by_book.setdefault(book_id, set()).add(self._author_from_row(author_row))

        return [
            Book(
                title=title,
                published_date=published_date,
                authors=authors_by_book.get(book_id, set()),
                genre=Genre(name=genre_name, id=str(genre_id)),
                age=age,
                id=str(book_id),
            )
            for book_id, title, published_date, age, genre_id, genre_name in book_rows
        ]

    def save_comments(self, comments: Iterable[Comment]) -> List[Comment]:
        comments = list(comments)
        if not comments:
            return []

        for c in comments:
            if c.book_id and not str(c.book_id).isdigit():
                raise StoreError(f"Invalid book id for comment: {c.book_id!r}")

        with self._cursor("save_comments") as cur:
            rows = execute_values(
                cur,
                "INSERT INTO comments (username, text, book_id) VALUES %s RETURNING id",
                [(c.username, c.text, int(c.book_id) if c.book_id else None) for c in comments],
                fetch=True,
            )
        for comment, row in zip(comments, rows):
            comment.id = str(row[0])
        return comments

    def find_comments_by_book(self, book_id: str) -> List[Comment]:
        if not str(book_id).isdigit():
            return []
        with self._cursor("find_comments_by_book") as cur:
            cur.execute("""
                SELECT id, username, text, book_id
                FROM comments WHERE book_id = %s ORDER BY id
            """, (int(book_id),))
            return [self._comment_from_row(row) for row in cur.fetchall()]

    def find_comments_by_username(self, username: str) -> List[Comment]:
        with self._cursor("find_comments_by_username") as cur:
            cur.execute("""
                SELECT id, username, text, book_id
                FROM comments WHERE username = %s ORDER BY id
            """, (username,))
            return [self._comment_from_row(row) for row in cur.fetchall()]

    def delete_comments_by_username(self, username: str) -> int:
        with self._cursor("delete_comments_by_username") as cur:
            cur.execute("DELETE FROM comments WHERE username = %s", (username,))
            deleted = cur.rowcount
        logger.info(f"Deleted {deleted} comments by {username}")
        return deleted

    def clear(self) -> Dict[str, int]:
        """Delete every row, child tables first."""
        deleted = {}
        with self._cursor("clear") as cur:
            for table in TABLES:
                cur.execute(f"DELETE FROM {table}")
                if table in ENTITY_TABLES:
                    deleted[table] = cur.rowcount
        logger.info(f"Cleared store: {deleted}")
        return deleted

    def get_stats(self) -> Dict[str, int]:
        """Get database statistics."""
        stats = {}
        with self._cursor("get_stats") as cur:
            for table in ENTITY_TABLES:
                cur.execute(f"SELECT COUNT(*) FROM {table}")
                stats[table] = cur.fetchone()[0]
        return stats

    def close(self):
        """Close all connections in the pool."""
        if self.connection_pool:
            self.connection_pool.closeall()
            logger.info("Database connection pool closed")

    @staticmethod
    def _author_from_row(row) -> Author:
        author_id, name, surname, country = row
        return Author(name=name, surname=surname, country=Country(country), id=str(author_id))

    @staticmethod
    def _comment_from_row(row) -> Comment:
        comment_id, username, text, book_id = row
        return Comment(
            username=username,
            text=text,
            book_id=str(book_id) if book_id is not None else None,
            id=str(comment_id),
        )
