from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, Index, JSON, String


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Enums
class Language(str, Enum):
    UZ = "uz"
    RU = "ru"
    EN = "en"
    SP = "sp"
    UK = "uk"
    IT = "it"
    GE = "ge"


LANGUAGES = [language.value for language in Language]


class TourStyle(str, Enum):
    PREMIUM = "Premium"
    ECONOM = "Econom"
    STANDART = "Standart"
    LUX = "Lux"


class TourDateStatus(str, Enum):
    AVAILABLE = "Available"
    FEW_SPOTS = "Few spots"
    SOLD_OUT = "Sold out"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


# Collections
class Collection(str, Enum):
    TOURS = "tours"
    ARTICLES = "articles"
    BOOKINGS = "bookings"
    REVIEWS = "reviews"
    USERS = "users"
    ADMINS = "admins"
    ACCOUNTS = "accounts"


# Columns that can drive ordering, keyed by the document field name clients use
SORTABLE_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


class Document(SQLModel, table=True):
    """
    One schemaless record of a collection.

    The payload lives in ``data`` as JSON; the timestamps are kept in real
    columns so cursor queries can order and range-scan on them.
    """
    __tablename__ = "documents"

    __table_args__ = (
        Index('idx_documents_collection_created', 'collection', 'created_at', 'id'),
        Index('idx_documents_collection_updated', 'collection', 'updated_at', 'id'),
    )

    collection: str = Field(
        sa_column=Column(String(64), primary_key=True),
        description="Collection the document belongs to"
    )
    id: str = Field(
        sa_column=Column(String(64), primary_key=True),
        description="Document id, unique within its collection"
    )
    data: Dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
        description="Document payload"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
