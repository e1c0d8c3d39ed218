from fastapi import APIRouter, Depends

from .. import models
from ..auth import get_current_user
from ..dependencies import get_corrector
from ..schemas import CorrectionIn
from ..utils.ai_correction import TextCorrector

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/correct")
def correct_text(payload: CorrectionIn, _user: models.User = Depends(get_current_user),
                 corrector: TextCorrector = Depends(get_corrector)):
    return corrector.correct(payload.text)
