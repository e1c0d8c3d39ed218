from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, serializers
from ..auth import get_current_user
from ..database import get_session
from ..services import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_notifications(user: models.User = Depends(get_current_user), session: Session = Depends(get_session)):
    return {"notifications": [serializers.notification_out(n) for n in NotificationService(session).latest(user)]}


@router.get("/unread-count")
def unread_count(user: models.User = Depends(get_current_user), session: Session = Depends(get_session)):
    return {"count": NotificationService(session).unread_count(user)}


@router.patch("/read-all")
def mark_all_read(user: models.User = Depends(get_current_user), session: Session = Depends(get_session)):
    updated = NotificationService(session).mark_all_read(user)
    return {"message": "all notifications marked as read", "updated": updated}


@router.patch("/{notification_id}/read")
def mark_read(notification_id: str, user: models.User = Depends(get_current_user),
              session: Session = Depends(get_session)):
    notification = NotificationService(session).mark_read(user, notification_id)
    return {"notification": serializers.notification_out(notification)}
