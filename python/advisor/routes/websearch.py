from typing import List

from fastapi import APIRouter, Depends, Query

from ..dependencies import get_search_client
from ..models import WebResult
from ..services.search_client import SearchClient

router = APIRouter(prefix="/api/websearch", tags=["websearch"])


@router.get("", response_model=List[WebResult])
async def websearch(
    q: str = Query(..., min_length=1),
    search: SearchClient = Depends(get_search_client),
):
    """Proxy to the configured web-search provider"""
    return await search.search(q)
