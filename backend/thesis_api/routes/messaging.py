from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, serializers
from ..auth import get_current_user
from ..database import get_session
from ..schemas import MessageIn
from ..services import MessagingService

router = APIRouter(prefix="/messaging", tags=["messaging"])


@router.get("/partners")
def partners(user: models.User = Depends(get_current_user), session: Session = Depends(get_session)):
    return {"partners": [serializers.user_summary(u) for u in MessagingService(session).partners(user)]}


@router.get("/conversations")
def conversations(user: models.User = Depends(get_current_user), session: Session = Depends(get_session)):
    return {"conversations": MessagingService(session).conversations_for(user)}


@router.get("/conversations/{conversation_id}/messages")
def conversation_messages(conversation_id: str, user: models.User = Depends(get_current_user),
                          session: Session = Depends(get_session)):
    messages = MessagingService(session).read_conversation(user, conversation_id)
    return {"messages": [serializers.message_out(m) for m in messages]}


@router.post("/send", status_code=201)
def send_message(payload: MessageIn, user: models.User = Depends(get_current_user),
                 session: Session = Depends(get_session)):
    message = MessagingService(session).send(user, payload.receiver_id, payload.content)
    return {"message": serializers.message_out(message)}
