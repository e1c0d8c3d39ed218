"""Conversion of ORM rows into JSON-ready dictionaries.

Handlers build their response bodies with these helpers while the
request session is still open, so relationships resolve lazily here and
never after the session closes.
"""

from typing import Optional

from . import models


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def user_summary(user: models.User) -> dict:
    return {
        "id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "role": models.Role(user.role).value,
        "avatar": user.avatar,
    }


def user_out(user: models.User) -> dict:
    """Public view of a user; the password hash never leaves the server."""
    data = user_summary(user)
    data.update({
        "phone": user.phone,
        "university": user.university,
        "field": user.field,
        "is_active": user.is_active,
        "created_at": _iso(user.created_at),
        "updated_at": _iso(user.updated_at),
    })
    return data


def pack_out(pack: models.Pack) -> dict:
    return {
        "id": pack.id,
        "name": pack.name,
        "description": pack.description,
        "price": pack.price,
        "installment1": pack.installment1,
        "installment2": pack.installment2,
        "features": list(pack.features or []),
        "is_active": pack.is_active,
        "sort_order": pack.sort_order,
        "created_at": _iso(pack.created_at),
    }


def payment_out(payment: models.Payment) -> dict:
    return {
        "id": payment.id,
        "subscription_id": payment.subscription_id,
        "amount": payment.amount,
        "method": payment.method,
        "reference": payment.reference,
        "status": models.PaymentStatus(payment.status).value,
        "created_at": _iso(payment.created_at),
    }


def subscription_out(sub: models.Subscription, with_payments: bool = False, with_user: bool = False) -> dict:
    data = {
        "id": sub.id,
        "user_id": sub.user_id,
        "pack_id": sub.pack_id,
        "status": models.SubscriptionStatus(sub.status).value,
        "amount_paid": sub.amount_paid,
        "activated_at": _iso(sub.activated_at),
        "created_at": _iso(sub.created_at),
        "updated_at": _iso(sub.updated_at),
        "pack": pack_out(sub.pack) if sub.pack else None,
    }
    if with_payments:
        data["payments"] = [payment_out(p) for p in sorted(sub.payments, key=lambda p: p.created_at)]
    if with_user:
        data["user"] = user_summary(sub.user) if sub.user else None
    return data


def memoire_out(memoire: models.MemoireProgress, student: Optional[models.User] = None,
                coach: Optional[models.User] = None) -> dict:
    data = {
        "id": memoire.id,
        "student_id": memoire.student_id,
        "accompagnateur_id": memoire.accompagnateur_id,
        "title": memoire.title,
        "phase": models.MemoirePhase(memoire.phase).value,
        "progress_percent": memoire.progress_percent,
        "notes": memoire.notes,
        "created_at": _iso(memoire.created_at),
        "updated_at": _iso(memoire.updated_at),
    }
    if student is not None:
        data["student"] = user_summary(student)
    if coach is not None:
        data["accompagnateur"] = user_summary(coach)
    return data


def document_out(doc: models.Document, uploader: Optional[models.User] = None) -> dict:
    data = {
        "id": doc.id,
        "uploader_id": doc.uploader_id,
        "memoire_id": doc.memoire_id,
        "filename": doc.filename,
        "file_path": doc.file_path,
        "mime_type": doc.mime_type,
        "file_size": doc.file_size,
        "kind": doc.kind,
        "page_count": doc.page_count,
        "word_count": doc.word_count,
        "status": models.DocumentStatus(doc.status).value,
        "feedback": doc.feedback,
        "category": doc.category,
        "version": doc.version,
        "created_at": _iso(doc.created_at),
    }
    if uploader is not None:
        data["uploader"] = user_summary(uploader)
    return data


def message_out(msg: models.Message) -> dict:
    return {
        "id": msg.id,
        "conversation_id": msg.conversation_id,
        "sender_id": msg.sender_id,
        "content": msg.content,
        "is_read": msg.is_read,
        "created_at": _iso(msg.created_at),
    }


def notification_out(n: models.Notification) -> dict:
    return {
        "id": n.id,
        "title": n.title,
        "content": n.content,
        "type": n.type,
        "is_read": n.is_read,
        "created_at": _iso(n.created_at),
    }


def event_out(event: models.Event) -> dict:
    return {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "date": _iso(event.date),
        "type": models.EventType(event.type).value,
        "is_completed": event.is_completed,
        "created_at": _iso(event.created_at),
    }


def resource_out(resource: models.Resource) -> dict:
    return {
        "id": resource.id,
        "title": resource.title,
        "description": resource.description,
        "category": resource.category,
        "file_url": resource.file_url,
        "file_type": resource.file_type,
        "created_at": _iso(resource.created_at),
    }


def activity_out(entry: models.ActivityLog, user: Optional[models.User] = None) -> dict:
    data = {
        "id": entry.id,
        "user_id": entry.user_id,
        "action": entry.action,
        "details": entry.details,
        "ip": entry.ip,
        "created_at": _iso(entry.created_at),
    }
    if user is not None:
        data["user"] = user_summary(user)
    return data
