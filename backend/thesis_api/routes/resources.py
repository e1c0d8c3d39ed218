from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlmodel import Session

from .. import models, serializers
from ..auth import get_current_user, require
from ..config import Settings
from ..database import get_session
from ..dependencies import get_settings, get_storage
from ..permissions import Capability
from ..services import ResourceService
from ..utils.storage import LocalFileStorage
from ..utils.uploads import read_limited

router = APIRouter(prefix="/resources", tags=["resources"])


@router.get("")
def list_resources(category: Optional[str] = None, _user: models.User = Depends(get_current_user),
                   session: Session = Depends(get_session)):
    resources = ResourceService(session).list_for_category(category)
    return {"resources": [serializers.resource_out(r) for r in resources]}


@router.post("", status_code=201)
def create_resource(
    title: str = Form(...),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    link_url: Optional[str] = Form(None, alias="linkUrl"),
    file: Optional[UploadFile] = File(None),
    _admin: models.User = Depends(require(Capability.MANAGE_RESOURCES)),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    storage: LocalFileStorage = Depends(get_storage),
):
    payload = read_limited(file.file, settings.MAX_UPLOAD_BYTES) if file is not None else None
    resource = ResourceService(session, storage).create(
        title,
        description=description,
        category=category,
        link_url=link_url,
        payload=payload,
        filename=file.filename if file is not None else None,
        content_type=file.content_type if file is not None else None,
    )
    return {"resource": serializers.resource_out(resource)}


@router.delete("/{resource_id}")
def delete_resource(resource_id: str, session: Session = Depends(get_session),
                    storage: LocalFileStorage = Depends(get_storage),
                    _admin: models.User = Depends(require(Capability.MANAGE_RESOURCES))):
    ResourceService(session, storage).delete(resource_id)
    return {"message": "resource deleted"}
