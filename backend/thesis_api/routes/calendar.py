from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, serializers
from ..auth import get_current_user
from ..database import get_session
from ..schemas import EventIn
from ..services import CalendarService

router = APIRouter(prefix="/calendar", tags=["calendar"])


@router.get("")
def list_events(user: models.User = Depends(get_current_user), session: Session = Depends(get_session)):
    return {"events": [serializers.event_out(e) for e in CalendarService(session).list_for(user)]}


@router.get("/next")
def next_event(user: models.User = Depends(get_current_user), session: Session = Depends(get_session)):
    event = CalendarService(session).next_for(user)
    return {"event": serializers.event_out(event) if event else None}


@router.post("", status_code=201)
def create_event(payload: EventIn, user: models.User = Depends(get_current_user),
                 session: Session = Depends(get_session)):
    return {"event": serializers.event_out(CalendarService(session).create(user, payload))}


@router.delete("/{event_id}")
def delete_event(event_id: str, user: models.User = Depends(get_current_user),
                 session: Session = Depends(get_session)):
    CalendarService(session).delete(user, event_id)
    return {"message": "event deleted"}


@router.patch("/{event_id}/toggle")
def toggle_event(event_id: str, user: models.User = Depends(get_current_user),
                 session: Session = Depends(get_session)):
    return {"event": serializers.event_out(CalendarService(session).toggle(user, event_id))}
