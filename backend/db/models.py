"""
ORM table definitions.

Notes:
    - Primary keys are UUID strings generated in Python so SQLite (tests) and
      Postgres (Supabase) behave the same.
    - `profiles.id` equals the auth provider's user id (`sub`).
    - Enumerations are stored as Postgres enums; allowed values are also
      exported as tuples so services validate input before hitting the DB.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .session import Base, utcnow


DURATION_TYPES = ("days", "week", "month", "year")
ENROLLMENT_STATUSES = ("requested", "enrolled", "cancelled", "completed")
PAYMENT_STATUSES = ("pending", "completed", "cancelled", "failed", "refunded")
PAYMENT_METHODS = ("cash", "bank_transfer", "mobile_wallets", "fonepay")
CONTACT_STATUSES = ("new", "in-progress", "resolved", "closed")
ROLE_AUTHENTICATED = "authenticated"
ROLE_SERVICE = "service_role"
PROFILE_ROLES = (ROLE_AUTHENTICATED, ROLE_SERVICE)


def _uuid() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class CourseCategory(TimestampMixin, Base):
    __tablename__ = "course_categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    courses: Mapped[list["Course"]] = relationship(back_populates="category")


class Affiliation(TimestampMixin, Base):
    __tablename__ = "affiliations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    courses: Mapped[list["Course"]] = relationship(back_populates="affiliation")


class Course(TimestampMixin, Base):
    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    category_id: Mapped[Optional[str]] = mapped_column(ForeignKey("course_categories.id"), index=True)
    affiliation_id: Mapped[Optional[str]] = mapped_column(ForeignKey("affiliations.id"), index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    course_highlights: Mapped[Optional[str]] = mapped_column(Text)
    course_overview: Mapped[Optional[str]] = mapped_column(Text)
    image_url: Mapped[Optional[str]] = mapped_column(String(1024))
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    duration_type: Mapped[str] = mapped_column(
        Enum(*DURATION_TYPES, name="duration_type"), default="month", nullable=False
    )
    duration_value: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)

    category: Mapped[Optional[CourseCategory]] = relationship(back_populates="courses")
    affiliation: Mapped[Optional[Affiliation]] = relationship(back_populates="courses")
    intakes: Mapped[list["Intake"]] = relationship(back_populates="course")


class Intake(TimestampMixin, Base):
    __tablename__ = "intakes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    course_id: Mapped[str] = mapped_column(ForeignKey("courses.id"), index=True, nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=20, nullable=False)
    is_open: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    total_registered: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    course: Mapped[Course] = relationship(back_populates="intakes")
    enrollments: Mapped[list["Enrollment"]] = relationship(back_populates="intake")


class Profile(TimestampMixin, Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    role: Mapped[str] = mapped_column(String(32), default=ROLE_AUTHENTICATED, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    deletion_scheduled_for: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    deletion_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    enrollments: Mapped[list["Enrollment"]] = relationship(back_populates="user")


class Enrollment(TimestampMixin, Base):
    __tablename__ = "enrollments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), index=True, nullable=False)
    intake_id: Mapped[str] = mapped_column(ForeignKey("intakes.id"), index=True, nullable=False)
    status: Mapped[str] = mapped_column(
        Enum(*ENROLLMENT_STATUSES, name="enrollment_status"), default="requested", nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
    enrollment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    cancelled_reason: Mapped[Optional[str]] = mapped_column(Text)

    user: Mapped[Profile] = relationship(back_populates="enrollments")
    intake: Mapped[Intake] = relationship(back_populates="enrollments")
    payments: Mapped[list["Payment"]] = relationship(back_populates="enrollment")


class Payment(TimestampMixin, Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    enrollment_id: Mapped[str] = mapped_column(ForeignKey("enrollments.id"), index=True, nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    status: Mapped[str] = mapped_column(
        Enum(*PAYMENT_STATUSES, name="payment_status"), default="pending", nullable=False
    )
    payment_method: Mapped[str] = mapped_column(
        Enum(*PAYMENT_METHODS, name="payment_method"), default="cash", nullable=False
    )
    remarks: Mapped[Optional[str]] = mapped_column(Text)
    refunded_amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), default=0, nullable=False)

    enrollment: Mapped[Enrollment] = relationship(back_populates="payments")
    refunds: Mapped[list["Refund"]] = relationship(back_populates="payment")


class Refund(TimestampMixin, Base):
    __tablename__ = "refunds"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    payment_id: Mapped[str] = mapped_column(ForeignKey("payments.id"), index=True, nullable=False)
    enrollment_id: Mapped[Optional[str]] = mapped_column(ForeignKey("enrollments.id"), index=True)
    user_id: Mapped[Optional[str]] = mapped_column(ForeignKey("profiles.id"), index=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)

    payment: Mapped[Payment] = relationship(back_populates="refunds")


class ContactRequest(TimestampMixin, Base):
    __tablename__ = "customer_contact_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="new", nullable=False)

    replies: Mapped[list["ContactReply"]] = relationship(
        back_populates="request", cascade="all, delete-orphan"
    )


class ContactReply(TimestampMixin, Base):
    __tablename__ = "customer_contact_replies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    contact_request_id: Mapped[str] = mapped_column(
        ForeignKey("customer_contact_requests.id", ondelete="CASCADE"), index=True, nullable=False
    )
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    reply_to_email: Mapped[str] = mapped_column(String(255), nullable=False)
    reply_to_name: Mapped[str] = mapped_column(String(255), nullable=False)
    resend_email_id: Mapped[Optional[str]] = mapped_column(String(255))
    email_status: Mapped[str] = mapped_column(String(50), default="sent", nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    admin_id: Mapped[Optional[str]] = mapped_column(String(36))
    admin_email: Mapped[Optional[str]] = mapped_column(String(255))
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    request: Mapped[ContactRequest] = relationship(back_populates="replies")


class EmailLog(TimestampMixin, Base):
    __tablename__ = "email_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    resend_email_id: Mapped[Optional[str]] = mapped_column(String(255))
    from_email: Mapped[str] = mapped_column(String(255), nullable=False)
    to_emails: Mapped[list] = mapped_column(JSON, nullable=False)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    html_content: Mapped[Optional[str]] = mapped_column(Text)
    text_content: Mapped[Optional[str]] = mapped_column(Text)
    reply_to: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(50), default="sent", nullable=False)
    email_type: Mapped[Optional[str]] = mapped_column(String(100))
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    user_id: Mapped[Optional[str]] = mapped_column(String(36))
    admin_id: Mapped[Optional[str]] = mapped_column(String(36))
    related_entity_type: Mapped[Optional[str]] = mapped_column(String(100))
    related_entity_id: Mapped[Optional[str]] = mapped_column(String(36))
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class UserDeletionHistory(TimestampMixin, Base):
    __tablename__ = "user_deletion_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("profiles.id"), index=True, nullable=False)
    deleted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_by: Mapped[str] = mapped_column(String(36), nullable=False)
    restored_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    restored_by: Mapped[Optional[str]] = mapped_column(String(36))
    deletion_reason: Mapped[str] = mapped_column(Text, nullable=False)
    scheduled_deletion_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    email_notification_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    restoration_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


__all__ = [
    "CourseCategory",
    "Affiliation",
    "Course",
    "Intake",
    "Profile",
    "Enrollment",
    "Payment",
    "Refund",
    "ContactRequest",
    "ContactReply",
    "EmailLog",
    "UserDeletionHistory",
    "DURATION_TYPES",
    "ENROLLMENT_STATUSES",
    "PAYMENT_STATUSES",
    "PAYMENT_METHODS",
    "CONTACT_STATUSES",
    "PROFILE_ROLES",
    "ROLE_AUTHENTICATED",
    "ROLE_SERVICE",
]
