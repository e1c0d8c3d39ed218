from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlmodel import Session

from .. import models, serializers
from ..auth import get_current_user, require
from ..config import Settings
from ..database import get_session
from ..dependencies import get_settings, get_storage
from ..permissions import Capability
from ..schemas import DocumentReviewIn
from ..services import DocumentService
from ..utils.storage import LocalFileStorage
from ..utils.uploads import read_limited

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get("")
def list_documents(user: models.User = Depends(get_current_user), session: Session = Depends(get_session)):
    svc = DocumentService(session)
    return {"documents": [serializers.document_out(d, svc.uploader_of(d)) for d in svc.list_for(user)]}


@router.post("/upload", status_code=201)
def upload_document(
    file: UploadFile = File(...),
    category: Optional[str] = Form(None),
    memoire_id: Optional[str] = Form(None, alias="memoireId"),
    user: models.User = Depends(require(Capability.UPLOAD_DOCUMENTS)),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    storage: LocalFileStorage = Depends(get_storage),
):
    payload = read_limited(file.file, settings.MAX_UPLOAD_BYTES)
    document = DocumentService(session, storage).upload(
        user, payload, file.filename, file.content_type, category=category, memoire_id=memoire_id,
    )
    return {"document": serializers.document_out(document)}


@router.patch("/{document_id}/review")
def review_document(
    document_id: str,
    payload: DocumentReviewIn,
    user: models.User = Depends(require(Capability.REVIEW_DOCUMENTS)),
    session: Session = Depends(get_session),
):
    svc = DocumentService(session)
    document = svc.review(user, document_id, payload.status, payload.feedback)
    return {"document": serializers.document_out(document, svc.uploader_of(document))}
