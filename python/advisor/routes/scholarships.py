from fastapi import APIRouter, Depends

from ..dependencies import get_owner, get_scholarship_engine
from ..models import ScholarshipOutcome
from ..services.scholarship_engine import ScholarshipEngine

router = APIRouter(prefix="/api/scholarships", tags=["scholarships"])


@router.post("/generate", response_model=ScholarshipOutcome)
async def generate_scholarships(
    owner: str = Depends(get_owner),
    engine: ScholarshipEngine = Depends(get_scholarship_engine),
):
    return await engine.generate(owner)
