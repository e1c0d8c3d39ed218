"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate. Repositories
return SQLModel objects and perform commits/refreshes where appropriate.

`SubscriptionRepository` and `PaymentRepository` never commit: the
subscription engine groups their writes into one transaction.
"""

from typing import List, Optional, Sequence

from sqlalchemy import func, or_
from sqlmodel import Session, select

from . import models
from .models import SubscriptionStatus, PaymentStatus, TERMINAL_STATUSES


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def save(self, user: models.User) -> models.User:
        user.updated_at = models.utcnow()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get(self, user_id: str) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def list_all(self) -> List[models.User]:
        stmt = select(models.User).order_by(models.User.created_at.desc())
        return self.session.exec(stmt).all()

    def list_by_role(self, role: models.Role, exclude_id: Optional[str] = None) -> List[models.User]:
        stmt = select(models.User).where(models.User.role == role)
        if exclude_id:
            stmt = stmt.where(models.User.id != exclude_id)
        return self.session.exec(stmt).all()

    def list_except(self, user_id: str) -> List[models.User]:
        stmt = select(models.User).where(models.User.id != user_id).order_by(models.User.last_name)
        return self.session.exec(stmt).all()

    def recent(self, limit: int = 5) -> List[models.User]:
        stmt = select(models.User).order_by(models.User.created_at.desc()).limit(limit)
        return self.session.exec(stmt).all()

    def count(self, role: Optional[models.Role] = None) -> int:
        stmt = select(func.count()).select_from(models.User)
        if role is not None:
            stmt = stmt.where(models.User.role == role)
        return self.session.exec(stmt).one()


class PackRepository:
    """CRUD operations for `Pack` records."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, pack_id: str) -> Optional[models.Pack]:
        return self.session.get(models.Pack, pack_id)

    def list_active(self) -> List[models.Pack]:
        """Active packs in display order."""
        stmt = select(models.Pack).where(models.Pack.is_active == True).order_by(models.Pack.sort_order)  # noqa: E712
        return self.session.exec(stmt).all()

    def save(self, pack: models.Pack) -> models.Pack:
        self.session.add(pack)
        self.session.commit()
        self.session.refresh(pack)
        return pack

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(models.Pack)).one()


class SubscriptionRepository:
    """Queries over `Subscription` rows; writes are flushed, not committed."""
    def __init__(self, session: Session):
        self.session = session

    def lock_for_user(self, user_id: str) -> List[models.Subscription]:
        """Load and lock every subscription of `user_id`.

        Emits `SELECT ... FOR UPDATE` on databases that support row locks;
        on SQLite the surrounding `BEGIN IMMEDIATE` already holds the lock.
        """
        stmt = (
            select(models.Subscription)
            .where(models.Subscription.user_id == user_id)
            .order_by(models.Subscription.created_at.desc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.exec(stmt).all()

    def get(self, subscription_id: str) -> Optional[models.Subscription]:
        return self.session.get(models.Subscription, subscription_id)

    def owner_id(self, subscription_id: str) -> Optional[str]:
        stmt = select(models.Subscription.user_id).where(models.Subscription.id == subscription_id)
        return self.session.exec(stmt).first()

    def add(self, subscription: models.Subscription) -> models.Subscription:
        subscription.updated_at = models.utcnow()
        self.session.add(subscription)
        self.session.flush()
        return subscription

    def list_for_user(self, user_id: str) -> List[models.Subscription]:
        stmt = (
            select(models.Subscription)
            .where(models.Subscription.user_id == user_id)
            .order_by(models.Subscription.created_at.desc())
        )
        return self.session.exec(stmt).all()

    def list_all(self) -> List[models.Subscription]:
        stmt = select(models.Subscription).order_by(models.Subscription.created_at.desc())
        return self.session.exec(stmt).all()

    def list_live_for_user(self, user_id: str) -> List[models.Subscription]:
        stmt = select(models.Subscription).where(
            models.Subscription.user_id == user_id,
            models.Subscription.status.not_in(list(TERMINAL_STATUSES)),
        )
        return self.session.exec(stmt).all()

    def count_by_status(self, status: SubscriptionStatus) -> int:
        stmt = select(func.count()).select_from(models.Subscription).where(models.Subscription.status == status)
        return self.session.exec(stmt).one()


class PaymentRepository:
    """Append-only access to the payment ledger."""
    def __init__(self, session: Session):
        self.session = session

    def append(self, payment: models.Payment) -> models.Payment:
        self.session.add(payment)
        self.session.flush()
        return payment

    def confirmed_total(self, subscription_id: str) -> int:
        """Sum of CONFIRMED amounts recorded against a subscription."""
        stmt = select(func.coalesce(func.sum(models.Payment.amount), 0)).where(
            models.Payment.subscription_id == subscription_id,
            models.Payment.status == PaymentStatus.CONFIRMED,
        )
        return int(self.session.exec(stmt).one())

    def list_for_subscription(self, subscription_id: str) -> List[models.Payment]:
        stmt = (
            select(models.Payment)
            .where(models.Payment.subscription_id == subscription_id)
            .order_by(models.Payment.created_at)
        )
        return self.session.exec(stmt).all()


class MemoireRepository:
    """CRUD operations for `MemoireProgress` records."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, memoire_id: str) -> Optional[models.MemoireProgress]:
        return self.session.get(models.MemoireProgress, memoire_id)

    def latest_for_student(self, student_id: str) -> Optional[models.MemoireProgress]:
        stmt = (
            select(models.MemoireProgress)
            .where(models.MemoireProgress.student_id == student_id)
            .order_by(models.MemoireProgress.created_at.desc())
        )
        return self.session.exec(stmt).first()

    def list_for_coach(self, coach_id: str) -> List[models.MemoireProgress]:
        stmt = select(models.MemoireProgress).where(models.MemoireProgress.accompagnateur_id == coach_id)
        return self.session.exec(stmt).all()

    def ids_for_coach(self, coach_id: str) -> List[str]:
        stmt = select(models.MemoireProgress.id).where(models.MemoireProgress.accompagnateur_id == coach_id)
        return self.session.exec(stmt).all()

    def save(self, memoire: models.MemoireProgress) -> models.MemoireProgress:
        memoire.updated_at = models.utcnow()
        self.session.add(memoire)
        self.session.commit()
        self.session.refresh(memoire)
        return memoire


class DocumentRepository:
    """Queries and persistence for uploaded `Document` rows."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, document_id: str) -> Optional[models.Document]:
        return self.session.get(models.Document, document_id)

    def latest_version(self, uploader_id: str, category: str) -> int:
        stmt = select(func.max(models.Document.version)).where(
            models.Document.uploader_id == uploader_id,
            models.Document.category == category,
        )
        return self.session.exec(stmt).one() or 0

    def list_all(self) -> List[models.Document]:
        return self.session.exec(select(models.Document).order_by(models.Document.created_at.desc())).all()

    def list_for_uploader(self, uploader_id: str) -> List[models.Document]:
        stmt = (
            select(models.Document)
            .where(models.Document.uploader_id == uploader_id)
            .order_by(models.Document.created_at.desc())
        )
        return self.session.exec(stmt).all()

    def list_for_memoires(self, memoire_ids: Sequence[str]) -> List[models.Document]:
        if not memoire_ids:
            return []
        stmt = (
            select(models.Document)
            .where(models.Document.memoire_id.in_(list(memoire_ids)))
            .order_by(models.Document.created_at.desc())
        )
        return self.session.exec(stmt).all()

    def save(self, document: models.Document) -> models.Document:
        self.session.add(document)
        self.session.commit()
        self.session.refresh(document)
        return document

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(models.Document)).one()


class ConversationRepository:
    """Lookups for two-party conversations."""
    def __init__(self, session: Session):
        self.session = session

    def get_for_participant(self, conversation_id: str, user_id: str) -> Optional[models.Conversation]:
        stmt = select(models.Conversation).where(
            models.Conversation.id == conversation_id,
            or_(models.Conversation.participant1_id == user_id, models.Conversation.participant2_id == user_id),
        )
        return self.session.exec(stmt).first()

    def find_between(self, a: str, b: str) -> Optional[models.Conversation]:
        stmt = select(models.Conversation).where(
            or_(
                (models.Conversation.participant1_id == a) & (models.Conversation.participant2_id == b),
                (models.Conversation.participant1_id == b) & (models.Conversation.participant2_id == a),
            )
        )
        return self.session.exec(stmt).first()

    def list_for_user(self, user_id: str) -> List[models.Conversation]:
        stmt = (
            select(models.Conversation)
            .where(or_(models.Conversation.participant1_id == user_id, models.Conversation.participant2_id == user_id))
            .order_by(models.Conversation.last_message_at.desc())
        )
        return self.session.exec(stmt).all()


class MessageRepository:
    """Messages inside a conversation and their read flags."""
    def __init__(self, session: Session):
        self.session = session

    def list_for_conversation(self, conversation_id: str) -> List[models.Message]:
        stmt = (
            select(models.Message)
            .where(models.Message.conversation_id == conversation_id)
            .order_by(models.Message.created_at)
        )
        return self.session.exec(stmt).all()

    def last_message(self, conversation_id: str) -> Optional[models.Message]:
        stmt = (
            select(models.Message)
            .where(models.Message.conversation_id == conversation_id)
            .order_by(models.Message.created_at.desc())
        )
        return self.session.exec(stmt).first()

    def unread_from_others(self, conversation_id: str, user_id: str) -> List[models.Message]:
        stmt = select(models.Message).where(
            models.Message.conversation_id == conversation_id,
            models.Message.sender_id != user_id,
            models.Message.is_read == False,  # noqa: E712
        )
        return self.session.exec(stmt).all()

    def count_unread_from_others(self, conversation_id: str, user_id: str) -> int:
        stmt = select(func.count()).select_from(models.Message).where(
            models.Message.conversation_id == conversation_id,
            models.Message.sender_id != user_id,
            models.Message.is_read == False,  # noqa: E712
        )
        return self.session.exec(stmt).one()

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(models.Message)).one()


class NotificationRepository:
    """Per-user notification records."""
    def __init__(self, session: Session):
        self.session = session

    def latest_for_user(self, user_id: str, limit: int = 50) -> List[models.Notification]:
        stmt = (
            select(models.Notification)
            .where(models.Notification.user_id == user_id)
            .order_by(models.Notification.created_at.desc())
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def get_for_user(self, notification_id: str, user_id: str) -> Optional[models.Notification]:
        stmt = select(models.Notification).where(
            models.Notification.id == notification_id,
            models.Notification.user_id == user_id,
        )
        return self.session.exec(stmt).first()

    def unread_for_user(self, user_id: str) -> List[models.Notification]:
        stmt = select(models.Notification).where(
            models.Notification.user_id == user_id,
            models.Notification.is_read == False,  # noqa: E712
        )
        return self.session.exec(stmt).all()

    def count_unread(self, user_id: str) -> int:
        stmt = select(func.count()).select_from(models.Notification).where(
            models.Notification.user_id == user_id,
            models.Notification.is_read == False,  # noqa: E712
        )
        return self.session.exec(stmt).one()


class EventRepository:
    """Calendar events, always scoped to their owner."""
    def __init__(self, session: Session):
        self.session = session

    def list_for_user(self, user_id: str) -> List[models.Event]:
        stmt = select(models.Event).where(models.Event.user_id == user_id).order_by(models.Event.date)
        return self.session.exec(stmt).all()

    def next_for_user(self, user_id: str, now) -> Optional[models.Event]:
        stmt = (
            select(models.Event)
            .where(
                models.Event.user_id == user_id,
                models.Event.is_completed == False,  # noqa: E712
                models.Event.date >= now,
            )
            .order_by(models.Event.date)
        )
        return self.session.exec(stmt).first()

    def get_for_user(self, event_id: str, user_id: str) -> Optional[models.Event]:
        stmt = select(models.Event).where(models.Event.id == event_id, models.Event.user_id == user_id)
        return self.session.exec(stmt).first()

    def save(self, event: models.Event) -> models.Event:
        self.session.add(event)
        self.session.commit()
        self.session.refresh(event)
        return event

    def delete(self, event: models.Event) -> None:
        self.session.delete(event)
        self.session.commit()


class ResourceRepository:
    """Shared learning resources."""
    def __init__(self, session: Session):
        self.session = session

    def list_by_category(self, category: Optional[str] = None) -> List[models.Resource]:
        stmt = select(models.Resource)
        if category:
            stmt = stmt.where(models.Resource.category == category)
        return self.session.exec(stmt.order_by(models.Resource.created_at.desc())).all()

    def get(self, resource_id: str) -> Optional[models.Resource]:
        return self.session.get(models.Resource, resource_id)

    def save(self, resource: models.Resource) -> models.Resource:
        self.session.add(resource)
        self.session.commit()
        self.session.refresh(resource)
        return resource

    def delete(self, resource: models.Resource) -> None:
        self.session.delete(resource)
        self.session.commit()


class ActivityLogRepository:
    """Append and page through the audit trail."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, entry: models.ActivityLog) -> models.ActivityLog:
        """Stage an entry; the caller's commit persists it."""
        self.session.add(entry)
        return entry

    def page(self, page: int, limit: int) -> List[models.ActivityLog]:
        stmt = (
            select(models.ActivityLog)
            .order_by(models.ActivityLog.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(models.ActivityLog)).one()
