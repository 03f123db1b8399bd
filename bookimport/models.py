"""Data models for the library import."""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional, Set, Tuple


class Country(str, Enum):
    """Author country of origin. The CSV source never carries one."""
    NONE = "NONE"
    RUSSIA = "RUSSIA"
    USA = "USA"
    UK = "UK"
    FRANCE = "FRANCE"
    GERMANY = "GERMANY"


@dataclass(frozen=True)
class Author:
    """Author identified by the exact (name, surname) pair."""
    name: str
    surname: str
    country: Country = Country.NONE
    id: Optional[str] = field(default=None, compare=False)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.name, self.surname)

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.surname}"


@dataclass(frozen=True)
class Genre:
    """Genre identified by its exact name."""
    name: str
    id: Optional[str] = field(default=None, compare=False)

    @property
    def key(self) -> str:
        return self.name


@dataclass
class Book:
    """Book with resolved (or still unresolved) author and genre references."""
    title: str
    published_date: date
    authors: Set[Author]
    genre: Genre
    age: Optional[int] = None
    id: Optional[str] = None

    def calculate_age(self, today: Optional[date] = None) -> int:
        """Set and return the age in whole calendar years since publication."""
        today = today or date.today()
        self.age = today.year - self.published_date.year
        return self.age

    @property
    def authors_str(self) -> str:
        """Format authors as comma-separated string."""
        names = sorted(author.full_name for author in self.authors)
        return ", ".join(names) if names else "Unknown"


@dataclass
class Comment:
    """Reader comment attached to a stored book."""
    username: str
    text: str
    book_id: Optional[str] = None
    id: Optional[str] = None
