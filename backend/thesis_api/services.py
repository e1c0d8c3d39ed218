"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and auxiliary logic. Services are intentionally thin: they perform
validation, apply ownership rules and persist aggregates via
repositories. Subscription state changes are delegated to
`subscriptions.SubscriptionEngine`.
"""

import logging
from datetime import timezone
from typing import List, Optional, Tuple

from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from . import models, repositories, serializers
from .auth import REFRESH, create_access_token, create_refresh_token, decode_token
from .config import Settings
from .errors import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnsupportedMediaError,
    ValidationFailedError,
)
from .models import Role
from .permissions import can_message
from .schemas import (
    AdminUserUpdateIn,
    EventIn,
    MemoireUpdateIn,
    ProfileUpdateIn,
    RegisterIn,
)
from .subscriptions import SubscriptionEngine
from .utils.storage import LocalFileStorage
from .utils.uploads import DOCUMENT_KINDS, inspect_upload, resource_file_type, validate_upload_filename

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

DEFAULT_MEMOIRE_TITLE = "Mon Sujet de Mémoire"

logger = logging.getLogger("thesis_api.services")


def _log_activity(session: Session, user_id: str, action: str, details: str, ip: Optional[str] = None):
    repositories.ActivityLogRepository(session).add(
        models.ActivityLog(user_id=user_id, action=action, details=details, ip=ip)
    )


class AuthService:
    """Registration, credential checks and token issuance."""
    def __init__(self, session: Session, settings: Settings):
        self.session = session
        self.settings = settings
        self.user_repo = repositories.UserRepository(session)

    def tokens_for(self, user: models.User) -> dict:
        return {
            "token": create_access_token(user, self.settings),
            "refresh_token": create_refresh_token(user, self.settings),
        }

    def register(self, payload: RegisterIn) -> models.User:
        """Create an account, its thesis record and optionally a subscription.

        Self-registration can produce students and coaches only; any other
        requested role falls back to STUDENT. A `pack_id` makes the new
        student subscribe to that pack in the same transaction.
        """
        if self.user_repo.get_by_email(payload.email):
            raise ConflictError("email already registered")
        role = Role.ACCOMPAGNATEUR if payload.role == Role.ACCOMPAGNATEUR.value else Role.STUDENT
        pack_id = payload.pack_id if role == Role.STUDENT else None
        if pack_id:
            pack = repositories.PackRepository(self.session).get(pack_id)
            if not pack or not pack.is_active:
                raise NotFoundError("pack not found or inactive")
        user = models.User(
            email=payload.email,
            password_hash=PWD_CTX.hash(payload.password),
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone=payload.phone or None,
            role=role,
            university=payload.university or None,
            field=payload.field or None,
        )
        try:
            self.session.add(user)
            self.session.flush()
            if role == Role.STUDENT:
                self.session.add(models.MemoireProgress(
                    student_id=user.id,
                    title=f"Mémoire de {user.first_name} {user.last_name}",
                ))
            _log_activity(self.session, user.id, "REGISTER", f"New {role.value} registered")
            if pack_id:
                # commits the user, memoire and subscription together
                SubscriptionEngine(self.session).subscribe(user, pack_id)
            else:
                self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("email already registered")
        self.session.refresh(user)
        logger.info("registered %s user %s", role.value, user.id)
        return user

    def login(self, email: str, password: str, ip: Optional[str] = None) -> models.User:
        user = self.user_repo.get_by_email(email)
        if not user or not PWD_CTX.verify(password, user.password_hash):
            raise AuthenticationError("invalid credentials")
        if not user.is_active:
            raise ForbiddenError("account disabled")
        _log_activity(self.session, user.id, "LOGIN", "User logged in", ip=ip)
        self.session.commit()
        return user

    def refresh(self, refresh_token: str) -> dict:
        payload = decode_token(refresh_token, self.settings.JWT_REFRESH_SECRET, self.settings.JWT_ALGORITHM, REFRESH)
        user = self.user_repo.get(payload["user_id"])
        if not user or not user.is_active:
            raise AuthenticationError("invalid refresh token")
        return self.tokens_for(user)

    def change_password(self, user: models.User, current_password: str, new_password: str):
        if not PWD_CTX.verify(current_password, user.password_hash):
            raise AuthenticationError("current password is incorrect")
        user.password_hash = PWD_CTX.hash(new_password)
        self.user_repo.save(user)


class UserService:
    """Profile maintenance and administrative user management."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.memoires = repositories.MemoireRepository(session)

    def _get(self, user_id: str) -> models.User:
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFoundError("user not found")
        return user

    def list_with_coach(self) -> List[dict]:
        """Every user, newest first, with the coach of their latest thesis."""
        out = []
        for user in self.user_repo.list_all():
            data = serializers.user_out(user)
            coach = None
            memoire = self.memoires.latest_for_student(user.id)
            if memoire and memoire.accompagnateur_id:
                coach_user = self.user_repo.get(memoire.accompagnateur_id)
                coach = serializers.user_summary(coach_user) if coach_user else None
            data["coach"] = coach
            out.append(data)
        return out

    def update_profile(self, user: models.User, payload: ProfileUpdateIn) -> models.User:
        for key, value in payload.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(user, key, value)
        return self.user_repo.save(user)

    def set_avatar(self, user: models.User, avatar: str) -> models.User:
        user.avatar = avatar
        return self.user_repo.save(user)

    def admin_update(self, user_id: str, payload: AdminUserUpdateIn) -> models.User:
        user = self._get(user_id)
        changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
        if "role" in changes:
            try:
                changes["role"] = Role(changes["role"])
            except ValueError:
                raise ValidationFailedError(f"unknown role: {changes['role']}")
        for key, value in changes.items():
            setattr(user, key, value)
        return self.user_repo.save(user)

    def assign_coach(self, student_id: str, coach_id: str) -> models.MemoireProgress:
        coach = self.user_repo.get(coach_id)
        if not coach or coach.role != Role.ACCOMPAGNATEUR:
            raise ValidationFailedError("invalid coach")
        student = self.user_repo.get(student_id)
        if not student or student.role != Role.STUDENT:
            raise ValidationFailedError("invalid student")
        memoire = self.memoires.latest_for_student(student.id)
        if memoire is None:
            memoire = models.MemoireProgress(student_id=student.id, title=DEFAULT_MEMOIRE_TITLE)
        memoire.accompagnateur_id = coach.id
        _log_activity(self.session, student.id, "COACH_ASSIGNED", f"coach={coach.id}")
        return self.memoires.save(memoire)


class MemoireService:
    """Thesis progress tracking for students and their coaches."""
    def __init__(self, session: Session):
        self.session = session
        self.memoires = repositories.MemoireRepository(session)
        self.users = repositories.UserRepository(session)

    def for_student(self, student: models.User) -> models.MemoireProgress:
        """Latest thesis record of `student`, created on first access."""
        memoire = self.memoires.latest_for_student(student.id)
        if memoire is None:
            memoire = self.memoires.save(models.MemoireProgress(student_id=student.id, title=DEFAULT_MEMOIRE_TITLE))
        return memoire

    def for_coach(self, coach: models.User) -> List[Tuple[models.MemoireProgress, Optional[models.User]]]:
        return [(m, self.users.get(m.student_id)) for m in self.memoires.list_for_coach(coach.id)]

    def coach_of(self, memoire: models.MemoireProgress) -> Optional[models.User]:
        return self.users.get(memoire.accompagnateur_id) if memoire.accompagnateur_id else None

    def update(self, user: models.User, memoire_id: str, payload: MemoireUpdateIn) -> models.MemoireProgress:
        memoire = self.memoires.get(memoire_id)
        if not memoire:
            raise NotFoundError("memoire not found")
        is_owner = user.role == Role.STUDENT and memoire.student_id == user.id
        is_coach = user.role == Role.ACCOMPAGNATEUR and memoire.accompagnateur_id == user.id
        if not (is_owner or is_coach or user.role == Role.ADMIN):
            raise ForbiddenError("not allowed to edit this memoire")
        for key, value in payload.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(memoire, key, value)
        return self.memoires.save(memoire)


class DocumentService:
    """Upload, listing and review of thesis documents."""
    def __init__(self, session: Session, storage: Optional[LocalFileStorage] = None):
        self.session = session
        self.storage = storage
        self.documents = repositories.DocumentRepository(session)
        self.memoires = repositories.MemoireRepository(session)
        self.users = repositories.UserRepository(session)

    def list_for(self, user: models.User) -> List[models.Document]:
        if user.role == Role.ADMIN:
            return self.documents.list_all()
        if user.role == Role.ACCOMPAGNATEUR:
            return self.documents.list_for_memoires(self.memoires.ids_for_coach(user.id))
        return self.documents.list_for_uploader(user.id)

    def uploader_of(self, document: models.Document) -> Optional[models.User]:
        return self.users.get(document.uploader_id)

    def upload(
        self,
        user: models.User,
        payload: bytes,
        filename: str,
        content_type: Optional[str],
        category: Optional[str] = None,
        memoire_id: Optional[str] = None,
    ) -> models.Document:
        """Store an uploaded file as the next version in its category.

        Only PDF, image and Word content is accepted. Without an explicit
        `memoire_id` the document is attached to the student's latest thesis.
        """
        validate_upload_filename(filename)
        info = inspect_upload(payload, filename, content_type)
        if info.kind not in DOCUMENT_KINDS:
            raise UnsupportedMediaError("unsupported file content; expected PDF, image or Word document")
        category = (category or "GENERAL").strip().upper() or "GENERAL"
        if memoire_id:
            memoire = self.memoires.get(memoire_id)
            if not memoire:
                raise NotFoundError("memoire not found")
            if memoire.student_id != user.id:
                raise ForbiddenError("memoire belongs to another student")
        else:
            latest = self.memoires.latest_for_student(user.id)
            memoire_id = latest.id if latest else None
        version = self.documents.latest_version(user.id, category) + 1
        stored = self.storage.save(payload, "documents", filename)
        document = models.Document(
            uploader_id=user.id,
            memoire_id=memoire_id,
            filename=filename,
            file_path=stored.url,
            mime_type=content_type,
            file_size=stored.size,
            kind=info.kind,
            page_count=info.page_count,
            word_count=info.word_count,
            category=category,
            version=version,
        )
        try:
            document = self.documents.save(document)
        except Exception:
            self.session.rollback()
            self.storage.delete_url(stored.url)
            raise
        logger.info("document %s v%d uploaded by %s (%s, %d bytes)",
                    document.id, version, user.id, info.kind, stored.size)
        return document

    def review(self, user: models.User, document_id: str, status: models.DocumentStatus,
               feedback: Optional[str]) -> models.Document:
        document = self.documents.get(document_id)
        if not document:
            raise NotFoundError("document not found")
        if user.role == Role.ACCOMPAGNATEUR:
            if document.memoire_id not in set(self.memoires.ids_for_coach(user.id)):
                raise ForbiddenError("document is not from one of your students")
        document.status = status
        document.feedback = feedback
        self.session.add(models.Notification(
            user_id=document.uploader_id,
            title="Document révisé",
            content=f"Votre document {document.filename} a été marqué {models.DocumentStatus(status).value}",
            type="document",
        ))
        return self.documents.save(document)


class MessagingService:
    """Two-party conversations between eligible roles."""
    def __init__(self, session: Session):
        self.session = session
        self.users = repositories.UserRepository(session)
        self.memoires = repositories.MemoireRepository(session)
        self.conversations = repositories.ConversationRepository(session)
        self.messages = repositories.MessageRepository(session)

    def partners(self, user: models.User) -> List[models.User]:
        """Users `user` may open a conversation with, without duplicates."""
        if user.role == Role.ADMIN:
            return self.users.list_except(user.id)
        candidates = list(self.users.list_by_role(Role.ADMIN))
        if user.role == Role.STUDENT:
            memoire = self.memoires.latest_for_student(user.id)
            if memoire and memoire.accompagnateur_id:
                candidates.append(self.users.get(memoire.accompagnateur_id))
        elif user.role == Role.ACCOMPAGNATEUR:
            candidates.extend(self.users.get(m.student_id) for m in self.memoires.list_for_coach(user.id))
        unique = {}
        for candidate in candidates:
            if candidate is not None and candidate.id != user.id:
                unique.setdefault(candidate.id, candidate)
        return list(unique.values())

    def conversations_for(self, user: models.User) -> List[dict]:
        out = []
        for conv in self.conversations.list_for_user(user.id):
            other_id = conv.participant2_id if conv.participant1_id == user.id else conv.participant1_id
            other = self.users.get(other_id)
            last = self.messages.last_message(conv.id)
            out.append({
                "id": conv.id,
                "participant": serializers.user_summary(other) if other else None,
                "last_message": serializers.message_out(last) if last else None,
                "last_message_at": conv.last_message_at.isoformat(),
                "unread_count": self.messages.count_unread_from_others(conv.id, user.id),
            })
        return out

    def read_conversation(self, user: models.User, conversation_id: str) -> List[models.Message]:
        """Messages of a conversation, oldest first; incoming ones become read."""
        conv = self.conversations.get_for_participant(conversation_id, user.id)
        if not conv:
            raise ForbiddenError("not a participant of this conversation")
        unread = self.messages.unread_from_others(conv.id, user.id)
        for msg in unread:
            msg.is_read = True
            self.session.add(msg)
        if unread:
            self.session.commit()
        return self.messages.list_for_conversation(conv.id)

    def send(self, sender: models.User, receiver_id: str, content: str) -> models.Message:
        receiver = self.users.get(receiver_id)
        if not receiver:
            raise NotFoundError("receiver not found")
        if receiver.id == sender.id or not can_message(sender.role, receiver.role):
            raise ForbiddenError("you cannot message this user")
        conv = self.conversations.find_between(sender.id, receiver.id)
        if conv is None:
            conv = models.Conversation(participant1_id=sender.id, participant2_id=receiver.id)
        now = models.utcnow()
        conv.last_message_at = now
        self.session.add(conv)
        self.session.flush()
        message = models.Message(conversation_id=conv.id, sender_id=sender.id, content=content, created_at=now)
        self.session.add(message)
        label = {
            Role.STUDENT: "Étudiant",
            Role.ACCOMPAGNATEUR: "Accompagnateur",
            Role.ADMIN: "Admin",
        }[Role(sender.role)]
        self.session.add(models.Notification(
            user_id=receiver.id,
            title="Nouveau message",
            content=f"{label} vous a envoyé un message",
            type="message",
        ))
        self.session.commit()
        self.session.refresh(message)
        return message


class NotificationService:
    def __init__(self, session: Session):
        self.session = session
        self.notifications = repositories.NotificationRepository(session)

    def latest(self, user: models.User) -> List[models.Notification]:
        return self.notifications.latest_for_user(user.id)

    def unread_count(self, user: models.User) -> int:
        return self.notifications.count_unread(user.id)

    def mark_read(self, user: models.User, notification_id: str) -> models.Notification:
        notification = self.notifications.get_for_user(notification_id, user.id)
        if not notification:
            raise NotFoundError("notification not found")
        notification.is_read = True
        self.session.add(notification)
        self.session.commit()
        self.session.refresh(notification)
        return notification

    def mark_all_read(self, user: models.User) -> int:
        unread = self.notifications.unread_for_user(user.id)
        for n in unread:
            n.is_read = True
            self.session.add(n)
        self.session.commit()
        return len(unread)


def as_utc(value):
    """Normalize a datetime to UTC; naive values are taken as UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CalendarService:
    """Per-user calendar events."""
    def __init__(self, session: Session):
        self.session = session
        self.events = repositories.EventRepository(session)

    def list_for(self, user: models.User) -> List[models.Event]:
        return self.events.list_for_user(user.id)

    def next_for(self, user: models.User) -> Optional[models.Event]:
        return self.events.next_for_user(user.id, models.utcnow())

    def create(self, user: models.User, payload: EventIn) -> models.Event:
        event = models.Event(
            user_id=user.id,
            title=payload.title,
            description=payload.description,
            date=as_utc(payload.date),
            type=payload.type,
        )
        return self.events.save(event)

    def _owned(self, user: models.User, event_id: str) -> models.Event:
        event = self.events.get_for_user(event_id, user.id)
        if not event:
            raise NotFoundError("event not found")
        return event

    def delete(self, user: models.User, event_id: str):
        self.events.delete(self._owned(user, event_id))

    def toggle(self, user: models.User, event_id: str) -> models.Event:
        event = self._owned(user, event_id)
        event.is_completed = not event.is_completed
        return self.events.save(event)


class ResourceService:
    """Shared documents and links published by administrators."""
    def __init__(self, session: Session, storage: Optional[LocalFileStorage] = None):
        self.session = session
        self.storage = storage
        self.resources = repositories.ResourceRepository(session)

    def list_for_category(self, category: Optional[str] = None) -> List[models.Resource]:
        return self.resources.list_by_category(category)

    def create(
        self,
        title: str,
        description: Optional[str] = None,
        category: Optional[str] = None,
        link_url: Optional[str] = None,
        payload: Optional[bytes] = None,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> models.Resource:
        """Publish a resource backed either by an uploaded file or a link."""
        if not title or not title.strip():
            raise ValidationFailedError("title is required")
        if payload is None and not link_url:
            raise ValidationFailedError("a file or a link is required")
        if payload is not None:
            validate_upload_filename(filename)
            info = inspect_upload(payload, filename, content_type, allow_other=True)
            stored = self.storage.save(payload, "resources", filename)
            file_url, file_type = stored.url, resource_file_type(info)
        else:
            file_url, file_type = link_url, "LINK"
        resource = models.Resource(
            title=title.strip(),
            description=description,
            category=(category or "GENERAL").strip() or "GENERAL",
            file_url=file_url,
            file_type=file_type,
        )
        return self.resources.save(resource)

    def delete(self, resource_id: str):
        resource = self.resources.get(resource_id)
        if not resource:
            raise NotFoundError("resource not found")
        file_url = resource.file_url
        self.resources.delete(resource)
        if self.storage is not None and resource.file_type != "LINK":
            try:
                self.storage.delete_url(file_url)
            except OSError as exc:
                logger.warning("could not remove stored file %s: %s", file_url, exc)


class AdminService:
    """Dashboard figures and the activity log."""
    def __init__(self, session: Session):
        self.session = session
        self.users = repositories.UserRepository(session)
        self.activity = repositories.ActivityLogRepository(session)

    def _activity_with_user(self, entries) -> List[dict]:
        return [serializers.activity_out(e, self.users.get(e.user_id)) for e in entries]

    def stats(self) -> dict:
        subs = repositories.SubscriptionRepository(self.session)
        return {
            "stats": {
                "total_users": self.users.count(),
                "total_students": self.users.count(Role.STUDENT),
                "total_accompagnateurs": self.users.count(Role.ACCOMPAGNATEUR),
                "total_packs": repositories.PackRepository(self.session).count(),
                "active_subscriptions": subs.count_by_status(models.SubscriptionStatus.ACTIVE),
                "total_documents": repositories.DocumentRepository(self.session).count(),
                "total_messages": repositories.MessageRepository(self.session).count(),
            },
            "recent_users": [serializers.user_summary(u) | {"created_at": u.created_at.isoformat()}
                             for u in self.users.recent(5)],
            "recent_activity": self._activity_with_user(self.activity.page(1, 10)),
        }

    def logs(self, page: int = 1, limit: int = 20) -> dict:
        if page < 1 or limit < 1:
            raise ValidationFailedError("page and limit must be positive")
        total = self.activity.count()
        return {
            "logs": self._activity_with_user(self.activity.page(page, limit)),
            "total": total,
            "page": page,
            "total_pages": -(-total // limit),
        }
