"""Shared pytest fixtures: an in-process MongoDB store and CSV/config helpers."""
import mongomock
import pytest

from bookimport.database import MongoBookStore


@pytest.fixture
def store():
    """MongoBookStore backed by mongomock, with indexes created."""
    store = MongoBookStore(client=mongomock.MongoClient(), db_name="library_test")
    store.init_schema()
    yield store
    store.close()


class JobConfig:
    """Config stand-in with the attributes build_import_job reads."""
    CSV_DELIMITER = ";"
    CSV_ENCODING = "utf-8"
    DATE_FORMAT = "%Y-%m-%d"
    SKIP_HEADER = False
    CHUNK_SIZE = 3
    MAX_WORKERS = 1
    GENRE_ON_MISSING = "fail"

    def __init__(self, input_file, **overrides):
        self.INPUT_FILE = str(input_file)
        for name, value in overrides.items():
            setattr(self, name, value)


@pytest.fixture
def write_csv(tmp_path):
    """Write lines to a CSV file in tmp_path and return its path."""
    def _write(lines, name="books.csv"):
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path
    return _write


@pytest.fixture
def job_config():
    return JobConfig
