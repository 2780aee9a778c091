# Pydantic models (request/response DTOs) used by the API layer.
# Keep models minimal and serializable; business rules live in campuscrate.services.
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator, EmailStr
from typing import Annotated, List, Literal, Optional, Union
from datetime import date, datetime


def _strip(v):
    if isinstance(v, str):
        v = v.strip()
    return v


# Authentication and users

Role = Literal["user", "admin", "manager"]


# Request payload for registration
class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(..., min_length=8)
    phone: Optional[str] = Field(None, max_length=40)
    campus: Optional[str] = Field(None, max_length=120)
    student_id: Optional[str] = Field(None, max_length=64)

    # Normalize email input to lowercase without surrounding whitespace
    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        if isinstance(v, str):
            v = v.strip().lower()
        return v

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return _strip(v)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        if isinstance(v, str):
            v = v.strip().lower()
        return v


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8)


class AccountDeleteRequest(BaseModel):
    password: str = Field(..., min_length=1)


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    phone: Optional[str] = Field(None, max_length=40)
    bio: Optional[str] = Field(None, max_length=500)
    campus: Optional[str] = Field(None, max_length=120)


# Public profile: safe to show to any visitor. email/phone are filled only when the owner opted in.
class UserPublic(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    campus: Optional[str] = None
    bio: Optional[str] = None
    profile_image: Optional[str] = None
    rating: float
    review_count: int
    is_verified: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Full account view for the owner of the account and for staff
class UserRead(UserPublic):
    email: EmailStr
    phone: Optional[str] = None
    student_id: Optional[str] = None
    role: Role
    is_active: bool
    is_banned: bool
    banned_until: Optional[datetime] = None
    ban_reason: Optional[str] = None
    last_active: Optional[datetime] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead


class NotificationPreferences(BaseModel):
    email: bool = True
    sms: bool = False


class PrivacyPreferences(BaseModel):
    show_email: bool = False
    show_phone: bool = False


class Preferences(BaseModel):
    notification_preferences: NotificationPreferences
    privacy_preferences: PrivacyPreferences


# Partial update: only the flags that are present change
class NotificationPreferencesUpdate(BaseModel):
    email: Optional[bool] = None
    sms: Optional[bool] = None


class PrivacyPreferencesUpdate(BaseModel):
    show_email: Optional[bool] = None
    show_phone: Optional[bool] = None


class PreferencesUpdate(BaseModel):
    notification_preferences: Optional[NotificationPreferencesUpdate] = None
    privacy_preferences: Optional[PrivacyPreferencesUpdate] = None


# Items

ItemCondition = Literal["New", "Like New", "Good", "Fair", "Poor"]
Availability = Literal["available", "unavailable"]


class ItemBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=5000)
    category: str = Field(..., min_length=1, max_length=60)
    condition: ItemCondition = "Good"
    images: List[str] = Field(default_factory=list, max_length=10)
    tags: List[str] = Field(default_factory=list, max_length=20)
    campus: Optional[str] = Field(None, max_length=120)
    daily_rate_cents: int = Field(..., ge=0)
    security_deposit_cents: int = Field(0, ge=0)
    min_lending_days: int = Field(1, ge=1)
    max_lending_days: Optional[int] = Field(None, ge=1)

    @field_validator("title", "category", mode="before")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return _strip(v)

    @model_validator(mode="after")
    def check_lending_bounds(self):
        if self.max_lending_days is not None and self.max_lending_days < self.min_lending_days:
            raise ValueError("max_lending_days must be >= min_lending_days")
        return self


class ItemCreate(ItemBase):
    pass


# Partial update; owner_id, counters and the soft-delete flag are not client-writable
class ItemUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    category: Optional[str] = Field(None, min_length=1, max_length=60)
    condition: Optional[ItemCondition] = None
    images: Optional[List[str]] = Field(None, max_length=10)
    tags: Optional[List[str]] = Field(None, max_length=20)
    campus: Optional[str] = Field(None, max_length=120)
    daily_rate_cents: Optional[int] = Field(None, ge=0)
    security_deposit_cents: Optional[int] = Field(None, ge=0)
    availability: Optional[Availability] = None
    min_lending_days: Optional[int] = Field(None, ge=1)
    max_lending_days: Optional[int] = Field(None, ge=1)

    @field_validator("title", "category", mode="before")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return _strip(v)

    # Fields may be omitted, but only campus and max_lending_days can be cleared with null
    @field_validator(
        "title",
        "description",
        "category",
        "condition",
        "images",
        "tags",
        "daily_rate_cents",
        "security_deposit_cents",
        "availability",
        "min_lending_days",
    )
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("This field cannot be null")
        return v


class ItemRead(ItemBase):
    id: int
    owner_id: int
    availability: Availability
    is_active: bool
    view_count: int
    favorite_count: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ItemPage(BaseModel):
    items: List[ItemRead]
    total_items: int
    total_pages: int
    current_page: int


class BlockedRange(BaseModel):
    lending_request_id: int
    start_date: date
    end_date: date
    status: str


# Lending requests

LendingStatus = Literal["pending", "accepted", "rejected", "cancelled", "active", "completed"]


class LendingRequestCreate(BaseModel):
    item_id: int = Field(..., ge=1)
    start_date: date
    end_date: date
    note: Optional[str] = Field(None, max_length=500)


class LendingRequestCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class LendingRequestRead(BaseModel):
    id: int
    item_id: int
    borrower_id: int
    lender_id: int
    start_date: date
    end_date: date
    total_cost_cents: int
    status: LendingStatus
    note: Optional[str] = None
    cancel_reason: Optional[str] = None
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Messages
# Booking and inquiry messages are distinct shapes discriminated by "kind"


class BookingMessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=1000)

    @field_validator("content", mode="before")
    @classmethod
    def normalize_content(cls, v: str) -> str:
        return _strip(v)


class InquiryMessageCreate(BookingMessageCreate):
    # Required when the item owner replies; the inquirer's side omits it
    recipient_id: Optional[int] = Field(None, ge=1)


class BookingMessageRead(BaseModel):
    kind: Literal["booking"] = "booking"
    id: int
    lending_request_id: int
    sender_id: int
    content: str
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InquiryMessageRead(BaseModel):
    kind: Literal["inquiry"] = "inquiry"
    id: int
    item_id: int
    sender_id: int
    recipient_id: int
    content: str
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


MessageRead = Annotated[Union[BookingMessageRead, InquiryMessageRead], Field(discriminator="kind")]


class ThreadSummary(BaseModel):
    kind: Literal["booking", "inquiry"]
    lending_request_id: Optional[int] = None
    item_id: int
    counterpart_id: int
    last_message: MessageRead
    unread_count: int


class UnreadCount(BaseModel):
    unread_count: int


# Reviews


class ReviewCreate(BaseModel):
    lending_request_id: int = Field(..., ge=1)
    reviewee_id: int = Field(..., ge=1)
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)

    @field_validator("comment", mode="before")
    @classmethod
    def strip_comment(cls, v: Optional[str]) -> Optional[str]:
        return _strip(v)


class ReviewRead(BaseModel):
    id: int
    lending_request_id: int
    item_id: int
    reviewer_id: int
    reviewee_id: int
    rating: int
    comment: Optional[str] = None
    type: Literal["borrower", "lender"]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Reports and moderation

ReportReason = Literal["Inappropriate Content", "Scam", "Damaged Item", "Misleading Description", "Other"]
ReportStatus = Literal["pending", "reviewing", "resolved", "dismissed"]


class ReportCreate(BaseModel):
    reported_item_id: Optional[int] = Field(None, ge=1)
    reported_user_id: Optional[int] = Field(None, ge=1)
    reason: ReportReason
    description: str = Field(..., min_length=1, max_length=2000)

    @field_validator("description", mode="before")
    @classmethod
    def strip_description(cls, v: str) -> str:
        return _strip(v)

    @model_validator(mode="after")
    def exactly_one_target(self):
        if (self.reported_item_id is None) == (self.reported_user_id is None):
            raise ValueError("Exactly one of reported_item_id or reported_user_id is required")
        return self


class ReportRead(BaseModel):
    id: int
    reporter_id: int
    reported_item_id: Optional[int] = None
    reported_user_id: Optional[int] = None
    reason: ReportReason
    description: str
    status: ReportStatus
    admin_notes: Optional[str] = None
    resolved_by_id: Optional[int] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReportTransition(BaseModel):
    status: Literal["reviewing", "resolved", "dismissed"]
    admin_notes: Optional[str] = Field(None, max_length=2000)


class RoleChange(BaseModel):
    role: Role


class BanRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)
    until: Optional[datetime] = None


class FlagUpdate(BaseModel):
    value: bool


# Uploads


class UploadResponse(BaseModel):
    image_url: str


class MultiUploadResponse(BaseModel):
    image_urls: List[str]
    count: int
