from fastapi import APIRouter, Depends

from ..dependencies import get_owner, get_summary_service
from ..models import SummaryOutcome
from ..services.summary_service import SummaryService

router = APIRouter(prefix="/api/summaries", tags=["summaries"])


@router.post("/generate", response_model=SummaryOutcome)
async def generate_summary(
    owner: str = Depends(get_owner),
    svc: SummaryService = Depends(get_summary_service),
):
    return await svc.generate(owner)
