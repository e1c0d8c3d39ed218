from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, serializers
from ..auth import get_current_user
from ..database import get_session
from ..errors import ForbiddenError
from ..permissions import Capability, has_capability
from ..schemas import MemoireUpdateIn
from ..services import MemoireService

router = APIRouter(prefix="/memoires", tags=["memoires"])


@router.get("")
def my_memoires(user: models.User = Depends(get_current_user), session: Session = Depends(get_session)):
    """Students get their own thesis record; coaches the ones they supervise."""
    svc = MemoireService(session)
    if has_capability(user.role, Capability.TRACK_MEMOIRE):
        memoire = svc.for_student(user)
        return {"memoire": serializers.memoire_out(memoire, coach=svc.coach_of(memoire))}
    if has_capability(user.role, Capability.COACH_STUDENTS):
        return {"memoires": [serializers.memoire_out(m, student=s) for m, s in svc.for_coach(user)]}
    raise ForbiddenError("not allowed")


@router.patch("/{memoire_id}")
def update_memoire(memoire_id: str, payload: MemoireUpdateIn, user: models.User = Depends(get_current_user),
                   session: Session = Depends(get_session)):
    memoire = MemoireService(session).update(user, memoire_id, payload)
    return {"memoire": serializers.memoire_out(memoire)}
