"""Configuration management."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration."""

    # Store backend: "mongo" or "postgres"
    STORE_BACKEND = os.getenv("STORE_BACKEND", "mongo")

    # MongoDB
    MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    MONGO_DB = os.getenv("MONGO_DB", "library")

    # PostgreSQL
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "library")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")

    @property
    def DATABASE_URL(self):
        """Build PostgreSQL connection string."""
        return f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # Input file
    INPUT_FILE = os.getenv("INPUT_FILE", "data.csv")
    CSV_DELIMITER = os.getenv("CSV_DELIMITER", ";")
    CSV_ENCODING = os.getenv("CSV_ENCODING", "utf-8")
    DATE_FORMAT = os.getenv("DATE_FORMAT", "%Y-%m-%d")
    SKIP_HEADER = _env_flag("SKIP_HEADER")

    # Job
    CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "3"))
    MAX_WORKERS = int(os.getenv("MAX_WORKERS", "1"))
    GENRE_ON_MISSING = os.getenv("GENRE_ON_MISSING", "fail")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
