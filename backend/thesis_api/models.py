"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table and uses relationships where appropriate.
Identifiers are opaque strings; money amounts are whole FCFA.
"""

from enum import Enum
from typing import List, Optional
from uuid import uuid4
from datetime import datetime, timezone

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field, Relationship


def _new_id() -> str:
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    STUDENT = "STUDENT"
    ACCOMPAGNATEUR = "ACCOMPAGNATEUR"
    ADMIN = "ADMIN"


class SubscriptionStatus(str, Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    ACTIVE = "ACTIVE"
    DEACTIVATED = "DEACTIVATED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


# A subscription in any other status is "live".
TERMINAL_STATUSES = frozenset({
    SubscriptionStatus.CANCELLED,
    SubscriptionStatus.EXPIRED,
    SubscriptionStatus.DEACTIVATED,
})


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"


class MemoirePhase(str, Enum):
    TOPIC = "TOPIC"
    OUTLINE = "OUTLINE"
    INTRODUCTION = "INTRODUCTION"
    CHAPTER1 = "CHAPTER1"
    CHAPTER2 = "CHAPTER2"
    CHAPTER3 = "CHAPTER3"
    CONCLUSION = "CONCLUSION"
    REVIEW = "REVIEW"
    DEFENSE = "DEFENSE"


class DocumentStatus(str, Enum):
    UPLOADED = "UPLOADED"
    IN_REVIEW = "IN_REVIEW"
    NEEDS_REVISION = "NEEDS_REVISION"
    APPROVED = "APPROVED"


class EventType(str, Enum):
    REMINDER = "REMINDER"
    MEETING = "MEETING"
    DEADLINE = "DEADLINE"
    DEFENSE = "DEFENSE"


class User(SQLModel, table=True):
    """A registered account.

    Fields:
    - `email`: unique login identifier
    - `password_hash`: hashed password string (never store plaintext)
    - `role`: one of `Role`; drives every authorization decision
    """
    id: str = Field(default_factory=_new_id, primary_key=True)
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: Role = Field(default=Role.STUDENT, index=True)
    university: Optional[str] = None
    field: Optional[str] = None
    avatar: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    subscriptions: List["Subscription"] = Relationship(back_populates="user")


class Pack(SQLModel, table=True):
    """A purchasable coaching offering.

    `installment1`/`installment2` are both set when the pack can be paid
    in two tranches.
    """
    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    description: Optional[str] = None
    price: int
    installment1: Optional[int] = None
    installment2: Optional[int] = None
    features: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    is_active: bool = True
    sort_order: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    subscriptions: List["Subscription"] = Relationship(back_populates="pack")


class Subscription(SQLModel, table=True):
    """Binds one user to one pack and carries payment-accrual state.

    `amount_paid` is a cached total; the CONFIRMED rows of the payment
    ledger are the source of truth.
    """
    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    pack_id: str = Field(foreign_key="pack.id", index=True)
    status: SubscriptionStatus = Field(default=SubscriptionStatus.PENDING, index=True)
    amount_paid: int = 0
    activated_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)
    user: Optional[User] = Relationship(back_populates="subscriptions")
    pack: Optional[Pack] = Relationship(back_populates="subscriptions")
    payments: List["Payment"] = Relationship(back_populates="subscription")


class Payment(SQLModel, table=True):
    """Append-only ledger entry attached to a subscription."""
    id: str = Field(default_factory=_new_id, primary_key=True)
    subscription_id: str = Field(foreign_key="subscription.id", index=True)
    amount: int
    method: str
    reference: Optional[str] = None
    status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    created_at: datetime = Field(default_factory=utcnow)
    subscription: Optional[Subscription] = Relationship(back_populates="payments")


class MemoireProgress(SQLModel, table=True):
    """Progress record of a student's thesis, optionally with a coach."""
    id: str = Field(default_factory=_new_id, primary_key=True)
    student_id: str = Field(foreign_key="user.id", index=True)
    accompagnateur_id: Optional[str] = Field(default=None, foreign_key="user.id", index=True)
    title: str
    phase: MemoirePhase = MemoirePhase.TOPIC
    progress_percent: int = 0
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Document(SQLModel, table=True):
    """An uploaded file, versioned per uploader and category."""
    id: str = Field(default_factory=_new_id, primary_key=True)
    uploader_id: str = Field(foreign_key="user.id", index=True)
    memoire_id: Optional[str] = Field(default=None, foreign_key="memoireprogress.id", index=True)
    filename: str
    file_path: str
    mime_type: Optional[str] = None
    file_size: int = 0
    kind: str
    page_count: Optional[int] = None
    word_count: Optional[int] = None
    status: DocumentStatus = DocumentStatus.UPLOADED
    feedback: Optional[str] = None
    category: str = "GENERAL"
    version: int = 1
    created_at: datetime = Field(default_factory=utcnow)


class Conversation(SQLModel, table=True):
    id: str = Field(default_factory=_new_id, primary_key=True)
    participant1_id: str = Field(foreign_key="user.id", index=True)
    participant2_id: str = Field(foreign_key="user.id", index=True)
    last_message_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)


class Message(SQLModel, table=True):
    id: str = Field(default_factory=_new_id, primary_key=True)
    conversation_id: str = Field(foreign_key="conversation.id", index=True)
    sender_id: str = Field(foreign_key="user.id")
    content: str
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class Notification(SQLModel, table=True):
    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    title: str
    content: str
    type: str = "info"
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class Event(SQLModel, table=True):
    """A calendar entry owned by one user."""
    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    title: str
    description: Optional[str] = None
    date: datetime
    type: EventType = EventType.REMINDER
    is_completed: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class Resource(SQLModel, table=True):
    id: str = Field(default_factory=_new_id, primary_key=True)
    title: str
    description: Optional[str] = None
    category: str = "GENERAL"
    file_url: str
    file_type: str
    created_at: datetime = Field(default_factory=utcnow)


class ActivityLog(SQLModel, table=True):
    """Audit trail of notable user actions (login, subscription changes)."""
    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    action: str
    details: Optional[str] = None
    ip: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, index=True)
