import re
from typing import Any, Generic, List, Optional, Type, TypeVar
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from tour_admin.db.crud import DocumentSnapshot
# Import enums from models
from tour_admin.db.models import (
    LANGUAGES, BookingStatus, Language, TourDateStatus, TourStyle, UserRole,
)


class CamelModel(BaseModel):
    """Documents are stored with camelCase keys; Python code uses snake_case"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MultiLangText(BaseModel):
    """The same text in every supported language. All keys are required, empty strings are allowed."""
    uz: str
    ru: str
    en: str
    sp: str
    uk: str
    it: str
    ge: str

    @classmethod
    def empty(cls) -> "MultiLangText":
        return cls(**{language: "" for language in LANGUAGES})


class RequiredMultiLangText(MultiLangText):
    """MultiLangText used by forms that need every language filled in"""

    @field_validator(*LANGUAGES)
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Required")
        return v


class DocumentValidationError(ValueError):
    """A stored document does not match its entity schema"""

    def __init__(self, collection: str, document_id: str, errors: ValidationError):
        super().__init__(f"{collection}/{document_id} failed validation: {errors.error_count()} error(s)")
        self.collection = collection
        self.document_id = document_id
        self.errors = errors


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_document(model: Type[ModelT], snapshot: DocumentSnapshot) -> ModelT:
    """Validate a raw snapshot into its typed entity"""
    payload = {
        **snapshot.data,
        "id": snapshot.id,
        "createdAt": snapshot.created_at,
        "updatedAt": snapshot.updated_at,
    }
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise DocumentValidationError(snapshot.collection, snapshot.id, e) from e


def to_document(model: BaseModel) -> dict:
    """Serialize an entity payload for storage; identity and timestamps live outside the payload"""
    return model.model_dump(
        mode="json",
        by_alias=True,
        exclude={"id", "created_at", "updated_at"},
        exclude_none=True,
    )


# ===== USERS =====

class User(CamelModel):
    id: str
    email: str = ""
    name: str = ""
    avatar: Optional[str] = None
    role: UserRole = UserRole.USER
    created_at: datetime


class Account(CamelModel):
    """Identity provider record"""
    id: str
    email: str
    password_hash: str
    display_name: str = ""
    photo_url: Optional[str] = None
    created_at: datetime


# ===== TOURS =====

class Duration(BaseModel):
    days: int = Field(default=0, ge=0)
    nights: int = Field(default=0, ge=0)


class ItineraryDay(CamelModel):
    title: MultiLangText
    description: MultiLangText
    accommodation: List[MultiLangText] = Field(default_factory=list)
    meals: List[MultiLangText] = Field(default_factory=list)
    included_activities: List[MultiLangText] = Field(default_factory=list)
    optional_activities: List[MultiLangText] = Field(default_factory=list)
    special_information: Optional[MultiLangText] = None


class TourDate(CamelModel):
    start_date: datetime
    end_date: datetime
    status: TourDateStatus = TourDateStatus.AVAILABLE
    price: str = ""


class Inclusions(CamelModel):
    included: List[MultiLangText] = Field(default_factory=list)
    not_included: List[MultiLangText] = Field(default_factory=list)


class TourWrite(CamelModel):
    """Full multi-language tour payload, as stored"""
    title: MultiLangText
    description: MultiLangText
    location: MultiLangText = Field(default_factory=MultiLangText.empty)
    price: str = ""
    style: TourStyle = TourStyle.STANDART
    duration: Duration = Field(default_factory=Duration)
    max_group_count: Optional[int] = Field(default=None, ge=1)
    rating: float = Field(default=0.0, ge=0, le=5)
    images: List[str] = Field(default_factory=list)
    itinerary_image: Optional[str] = None
    itinerary: List[ItineraryDay] = Field(default_factory=list)
    dates: List[TourDate] = Field(default_factory=list)
    inclusions: Inclusions = Field(default_factory=Inclusions)


class Tour(TourWrite):
    id: str
    created_at: datetime
    updated_at: datetime


_LEADING_NUMBER = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


def leading_number(raw: Any) -> Optional[float]:
    """Number at the start of a price string, read the way JavaScript's parseFloat reads it"""
    if raw is None:
        return None
    match = _LEADING_NUMBER.match(str(raw))
    return float(match.group(0)) if match else None


class ItineraryDayForm(CamelModel):
    title: str = ""
    description: str = ""
    accommodation: List[str] = Field(default_factory=list)
    meals: List[str] = Field(default_factory=list)
    included_activities: List[str] = Field(default_factory=list)
    optional_activities: List[str] = Field(default_factory=list)
    special_information: Optional[str] = None


class InclusionsForm(CamelModel):
    included: List[str] = Field(default_factory=list)
    not_included: List[str] = Field(default_factory=list)


class TourForm(CamelModel):
    """Tour as typed by an admin, with every text field in a single source language"""
    title: str = Field(default="", max_length=200)
    description: str = Field(default="", max_length=5000)
    location: str = ""
    price: str = ""
    style: TourStyle = TourStyle.STANDART
    duration: Duration = Field(default_factory=Duration)
    max_group_count: Optional[int] = Field(default=None, ge=1)
    rating: float = Field(default=0.0, ge=0, le=5)
    images: List[str] = Field(default_factory=list)
    itinerary_image: Optional[str] = None
    itinerary: List[ItineraryDayForm] = Field(default_factory=list)
    dates: List[TourDate] = Field(default_factory=list)
    inclusions: InclusionsForm = Field(default_factory=InclusionsForm)


# ===== ARTICLES =====

class ArticleWrite(CamelModel):
    title: RequiredMultiLangText
    description: RequiredMultiLangText
    cover_image: Optional[str] = None


class Article(CamelModel):
    id: str
    title: MultiLangText
    description: MultiLangText
    cover_image: Optional[str] = None
    likes: int = 0
    views: int = 0
    author_id: str = ""
    created_at: datetime
    updated_at: datetime


class ArticleForm(CamelModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    cover_image: Optional[str] = None

    @field_validator("title", "description")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Required")
        return v


# ===== REVIEWS =====

class Review(CamelModel):
    id: str
    user_id: str
    rate: float = Field(..., ge=0, le=5)
    comment: str = ""
    tour_id: Optional[str] = None
    article_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ReviewDetail(Review):
    user: Optional[User] = None


# ===== BOOKINGS =====

class Booking(CamelModel):
    id: str
    user_id: str
    tour_id: str
    status: BookingStatus = BookingStatus.PENDING
    number_of_people: int = Field(default=1, ge=1)
    total_price: str = ""
    booking_date: datetime
    travel_date: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class BookingDetail(Booking):
    user: Optional[User] = None
    tour: Optional[Tour] = None


class GeneratedBookings(BaseModel):
    success: bool = True
    message: str
    bookings: List[Booking]


# ===== PAGES =====

ItemT = TypeVar("ItemT")


class PageResponse(CamelModel, Generic[ItemT]):
    items: List[ItemT]
    page: int
    page_size: int
    has_next_page: bool
    has_previous_page: bool
    next_cursor: Optional[str] = None
    prev_cursor: Optional[str] = None
    mode: str


# ===== TRANSLATION =====

class TranslateRequest(CamelModel):
    text: Optional[str] = None
    target_languages: Optional[List[Language]] = None
    detect_language: bool = False


# ===== AUTH / UPLOADS =====

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UploadResult(BaseModel):
    urls: List[str]
