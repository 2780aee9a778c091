# SQLAlchemy ORM models for core domain tables (users, items, lending requests, messages, reviews, reports).
# Keep business logic out of models; state transitions and invariants live in campuscrate.services.
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_mixin

from .db import Base


# Lending request states. Pending/accepted/active reserve the item's calendar.
PENDING = "pending"
ACCEPTED = "accepted"
REJECTED = "rejected"
CANCELLED = "cancelled"
ACTIVE = "active"
COMPLETED = "completed"

BLOCKING_STATUSES = (PENDING, ACCEPTED, ACTIVE)
TERMINAL_STATUSES = (REJECTED, CANCELLED, COMPLETED)

# Account roles, lowest to highest privilege
ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLES = (ROLE_USER, ROLE_ADMIN, ROLE_MANAGER)


@declarative_mixin
class TimestampMixin:
    """Common UTC-aware timestamps automatically managed by the database.

    - created_at: set on insert
    - updated_at: set on insert and updated on each modification
    """
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class User(Base, TimestampMixin):
    """Application user account.

    Roles:
    - user: lists items, borrows items, messages and reviews counterparts
    - admin: moderates regular users, items and reports
    - manager: everything an admin can do, plus acting on admins/managers and changing roles

    rating/review_count are a cache of the reviews table; only the review aggregator writes them.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    phone = Column(String(40), nullable=True)
    campus = Column(String(120), nullable=True, index=True)
    student_id = Column(String(64), nullable=True)
    bio = Column(String(500), nullable=True)
    profile_image = Column(String(500), nullable=True)

    role = Column(String(20), nullable=False, default=ROLE_USER, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_banned = Column(Boolean, nullable=False, default=False)
    banned_until = Column(DateTime(timezone=True), nullable=True)
    ban_reason = Column(String(255), nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)

    # Preferences: notification channels and what the public profile reveals
    notify_email = Column(Boolean, nullable=False, default=True)
    notify_sms = Column(Boolean, nullable=False, default=False)
    show_email = Column(Boolean, nullable=False, default=False)
    show_phone = Column(Boolean, nullable=False, default=False)

    rating = Column(Float, nullable=False, default=0.0)
    review_count = Column(Integer, nullable=False, default=0)
    last_active = Column(DateTime(timezone=True), nullable=True)


class Item(Base, TimestampMixin):
    """Rentable item listed by its owner.

    is_active is the soft-delete flag: inactive items are hidden from listings and cannot be booked.
    availability is the owner's own switch; booked windows are tracked per date range through
    lending requests. booking_version is bumped on every write that changes the item's calendar.
    """
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(String(60), nullable=False, index=True)
    condition = Column(String(30), nullable=False, default="Good")
    images = Column(JSON, nullable=False, default=list)
    tags = Column(JSON, nullable=False, default=list)
    campus = Column(String(120), nullable=True, index=True)

    daily_rate_cents = Column(Integer, nullable=False)
    security_deposit_cents = Column(Integer, nullable=False, default=0)
    availability = Column(String(20), nullable=False, default="available", index=True)
    min_lending_days = Column(Integer, nullable=False, default=1)
    max_lending_days = Column(Integer, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    view_count = Column(Integer, nullable=False, default=0)
    favorite_count = Column(Integer, nullable=False, default=0)
    booking_version = Column(Integer, nullable=False, default=1)


class LendingRequest(Base, TimestampMixin):
    """Booking of an item for [start_date, end_date).

    Status transitions:
    pending -> accepted -> active -> completed
       │          │          └── cancelled
       │          └── cancelled
       └── rejected / cancelled

    'version' is incremented on every transition; transitions are conditional updates on it.
    """
    __tablename__ = "lending_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False, index=True)
    borrower_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    lender_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_cost_cents = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=PENDING)
    note = Column(String(500), nullable=True)
    cancel_reason = Column(String(255), nullable=True)
    cancelled_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    # Conflict checks scan one item's requests by status and date range
    __table_args__ = (
        Index("ix_lending_requests_item_status", "item_id", "status"),
        Index("ix_lending_requests_item_start", "item_id", "start_date"),
        Index("ix_lending_requests_item_end", "item_id", "end_date"),
    )


class Message(Base):
    """Conversation message; 'kind' selects the thread shape.

    - booking: scoped to a lending request (participants: borrower and lender)
    - inquiry: scoped to (item, inquirer) before any booking exists
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    kind = Column(String(20), nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    content = Column(String(1000), nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    lending_request_id = Column(Integer, ForeignKey("lending_requests.id"), nullable=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    # The non-owner side of an inquiry thread; fixed for every message in that thread
    inquirer_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    __mapper_args__ = {"polymorphic_on": kind}

    # Thread timelines are read in chronological order
    __table_args__ = (
        Index("ix_messages_request_created_at", "lending_request_id", "created_at"),
        Index("ix_messages_inquiry_created_at", "item_id", "inquirer_id", "created_at"),
    )


class BookingMessage(Message):
    __mapper_args__ = {"polymorphic_identity": "booking"}


class InquiryMessage(Message):
    __mapper_args__ = {"polymorphic_identity": "inquiry"}


class Review(Base):
    """Rating left by one party of a completed lending request for the other party."""
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    lending_request_id = Column(Integer, ForeignKey("lending_requests.id"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False, index=True)
    reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    reviewee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(String(1000), nullable=True)
    type = Column(String(20), nullable=False)  # "borrower" or "lender": the reviewer's side
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("lending_request_id", "reviewer_id", name="uq_reviews_request_reviewer"),
    )


class Report(Base, TimestampMixin):
    """Abuse report against exactly one item or one user."""
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    reporter_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    reported_item_id = Column(Integer, ForeignKey("items.id"), nullable=True, index=True)
    reported_user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    reason = Column(String(60), nullable=False)
    description = Column(String(2000), nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    admin_notes = Column(String(2000), nullable=True)
    resolved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
