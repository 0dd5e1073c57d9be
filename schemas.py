"""
Database Schemas for Smart Navigator

Each document model corresponds to a Firestore collection:
User -> "users", Location -> "locations", Event -> "events".
Request bodies that only exist at the HTTP boundary live here as well.
"""
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


class Role(str, Enum):
    STUDENT = "student"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class LocationType(str, Enum):
    HOSTEL = "hostel"
    CLASS = "class"
    FACULTY = "faculty"
    ENTERTAINMENT = "entertainment"
    SHOP = "shop"


class EventCategory(str, Enum):
    ACADEMIC = "academic"
    CULTURAL = "cultural"
    SPORTS = "sports"
    WORKSHOP = "workshop"
    SEMINAR = "seminar"
    CONFERENCE = "conference"
    SOCIAL = "social"
    OTHER = "other"


class EventStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELLED = "cancelled"


class TravelProfile(str, Enum):
    FOOT = "foot"
    BIKE = "bike"
    CAR = "car"


Tag = Annotated[str, Field(min_length=1, max_length=30)]
Interest = Annotated[str, Field(min_length=1, max_length=50)]


class _Body(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, use_enum_values=True)


class _PartialBody(_Body):
    """Partial update: a field may be omitted but never sent as null."""

    @field_validator("*", mode="before")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


def _lower(values):
    return [v.lower() for v in values] if values is not None else None


class Coordinates(_Body):
    lat: float = Field(..., ge=-90, le=90, description="Latitude")
    lng: float = Field(..., ge=-180, le=180, description="Longitude")


class Accessibility(_Body):
    wheelchairAccessible: bool = False
    elevatorAccess: Optional[bool] = None
    brailleSignage: Optional[bool] = None
    audioAssistance: Optional[bool] = None


class Location(_Body):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=500)
    type: LocationType
    coordinates: Coordinates
    buildingId: Optional[str] = None
    floor: Optional[Union[int, str]] = None
    tags: List[Tag] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)
    accessibility: Optional[Accessibility] = None

    @field_validator("tags")
    @classmethod
    def lower_tags(cls, v):
        return _lower(v)


class LocationUpdate(_PartialBody):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    type: Optional[LocationType] = None
    coordinates: Optional[Coordinates] = None
    buildingId: Optional[str] = None
    floor: Optional[Union[int, str]] = None
    tags: Optional[List[Tag]] = None
    meta: Optional[Dict[str, Any]] = None
    accessibility: Optional[Accessibility] = None

    @field_validator("tags")
    @classmethod
    def lower_tags(cls, v):
        return _lower(v)


def _aware(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


class Event(_Body):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    category: EventCategory
    locationId: str = Field(..., min_length=1)
    dateTime: datetime
    endDateTime: datetime
    capacity: int = Field(50, ge=1)
    organizer: Optional[str] = Field(None, min_length=1, max_length=100)
    tags: List[Tag] = Field(default_factory=list)
    status: EventStatus = EventStatus.PUBLISHED.value

    @field_validator("tags")
    @classmethod
    def lower_tags(cls, v):
        return _lower(v)

    @field_validator("category", mode="before")
    @classmethod
    def lower_category(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator("dateTime")
    @classmethod
    def starts_in_future(cls, v: datetime):
        v = _aware(v)
        if v <= datetime.now(timezone.utc):
            raise ValueError("Event date must be in the future")
        return v

    @field_validator("endDateTime")
    @classmethod
    def aware_end(cls, v: datetime):
        return _aware(v)

    @model_validator(mode="after")
    def ends_after_start(self):
        if self.endDateTime <= self.dateTime:
            raise ValueError("Event end time must be after start time")
        return self


class EventUpdate(_PartialBody):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    category: Optional[EventCategory] = None
    locationId: Optional[str] = Field(None, min_length=1)
    dateTime: Optional[datetime] = None
    endDateTime: Optional[datetime] = None
    capacity: Optional[int] = Field(None, ge=1)
    organizer: Optional[str] = Field(None, min_length=1, max_length=100)
    tags: Optional[List[Tag]] = None
    status: Optional[EventStatus] = None

    @field_validator("tags")
    @classmethod
    def lower_tags(cls, v):
        return _lower(v)

    @field_validator("category", mode="before")
    @classmethod
    def lower_category(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator("dateTime")
    @classmethod
    def starts_in_future(cls, v: Optional[datetime]):
        if v is None:
            return v
        v = _aware(v)
        if v <= datetime.now(timezone.utc):
            raise ValueError("Event date must be in the future")
        return v

    @field_validator("endDateTime")
    @classmethod
    def aware_end(cls, v: Optional[datetime]):
        return _aware(v) if v is not None else v


class User(BaseModel):
    name: str = Field(..., description="Display name")
    email: EmailStr = Field(..., description="Email address")
    role: Role = Field(Role.STUDENT.value, description="Access role")
    interests: List[str] = Field(default_factory=list, description="Interest tags used for recommendations")
    photoURL: Optional[str] = Field(None, description="Avatar URL")

    model_config = ConfigDict(use_enum_values=True)


PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


class RegisterBody(BaseModel):
    # Not stripped wholesale: passwords are taken verbatim
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    interests: List[Interest] = Field(default_factory=list)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("interests", mode="before")
    @classmethod
    def strip_interests(cls, v):
        if isinstance(v, list):
            return [i.strip() if isinstance(i, str) else i for i in v]
        return v

    @model_validator(mode="before")
    @classmethod
    def reject_role(cls, data):
        # Self-registration always yields a student
        if isinstance(data, dict) and "role" in data:
            raise ValueError("Role cannot be specified during registration")
        return data

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str):
        return v.lower()

    @field_validator("password")
    @classmethod
    def strong_password(cls, v: str):
        if not PASSWORD_PATTERN.match(v):
            raise ValueError(
                "Password must contain at least one lowercase letter, one uppercase letter, and one number"
            )
        return v


class GoogleAuthBody(BaseModel):
    idToken: str = Field(..., min_length=1)


class ProfileUpdate(_PartialBody):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    interests: Optional[List[Interest]] = None
    photoURL: Optional[str] = None


class UserUpdate(_Body):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    interests: Optional[List[Interest]] = None
    role: Optional[Role] = None


class Waypoint(_Body):
    locationId: Optional[str] = Field(None, min_length=1)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)

    @model_validator(mode="after")
    def location_or_coordinates(self):
        if self.locationId is None and (self.lat is None or self.lng is None):
            raise ValueError("Waypoint needs a locationId or both lat and lng")
        return self


class RouteRequest(_Body):
    waypoints: List[Waypoint] = Field(..., min_length=2, max_length=25)
    profile: Optional[TravelProfile] = None
    steps: bool = True


class MatrixRequest(_Body):
    sources: List[Waypoint] = Field(..., min_length=1, max_length=25)
    destinations: List[Waypoint] = Field(..., min_length=1, max_length=25)
    profile: Optional[TravelProfile] = None
