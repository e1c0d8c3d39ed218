from fastapi import APIRouter, Depends
from fastapi.responses import Response

from .. import models
from ..auth import get_current_user
from ..schemas import ExportIn
from ..utils.pdf_export import export_filename, render_memoire_pdf

router = APIRouter(prefix="/export", tags=["export"])


@router.post("")
def export_pdf(payload: ExportIn, user: models.User = Depends(get_current_user)):
    """Render the submitted draft as a PDF attachment."""
    pdf = render_memoire_pdf(
        title=payload.title,
        content=payload.content,
        author=f"{user.first_name} {user.last_name}",
        institution=user.university,
    )
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(user.last_name)}"'},
    )
