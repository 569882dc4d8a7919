"""
FastAPI dependencies shared by the routers.
Collaborators are created once in main.py's startup hook and handed out from here
so the routers never import main (avoids circular imports).
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException

from .config import Settings
from .errors import AuthenticationError
from .services.context_assembler import ContextAssembler
from .services.inference_client import InferenceClient
from .services.payload_editor import PayloadEditor
from .services.recommendation_engine import RecommendationEngine
from .services.scholarship_engine import ScholarshipEngine
from .services.search_client import SearchClient
from .services.store import AdvisorStore
from .services.summary_service import SummaryService

OWNER_HEADER = "X-Authenticated-User"

settings: Optional[Settings] = None
store: Optional[AdvisorStore] = None
inference_client: Optional[InferenceClient] = None
search_client: Optional[SearchClient] = None


def configure(
    new_settings: Settings,
    new_store: AdvisorStore,
    new_inference: InferenceClient,
    new_search: SearchClient,
):
    global settings, store, inference_client, search_client
    settings = new_settings
    store = new_store
    inference_client = new_inference
    search_client = new_search


def reset():
    configure(None, None, None, None)


async def get_settings() -> Settings:
    return settings or Settings.from_env()


async def get_store() -> AdvisorStore:
    """Dependency to get the persistence store"""
    if store is None:
        raise HTTPException(status_code=503, detail="Store not available")
    return store


async def get_inference_client() -> InferenceClient:
    if inference_client is None:
        raise HTTPException(status_code=503, detail="Inference client not available")
    return inference_client


async def get_search_client() -> SearchClient:
    if search_client is None:
        raise HTTPException(status_code=503, detail="Search client not available")
    return search_client


async def get_owner(x_authenticated_user: Optional[str] = Header(None, alias=OWNER_HEADER)) -> str:
    """Identity is resolved upstream of this service; we only read the forwarded username"""
    owner = (x_authenticated_user or "").strip()
    if not owner:
        raise AuthenticationError("unauthorized")
    return owner


def get_recommendation_engine(
    s: AdvisorStore = Depends(get_store),
    inference: InferenceClient = Depends(get_inference_client),
    cfg: Settings = Depends(get_settings),
) -> RecommendationEngine:
    return RecommendationEngine(s, inference, model=cfg.openai_model)


def get_scholarship_engine(
    s: AdvisorStore = Depends(get_store),
    inference: InferenceClient = Depends(get_inference_client),
    search: SearchClient = Depends(get_search_client),
    cfg: Settings = Depends(get_settings),
) -> ScholarshipEngine:
    return ScholarshipEngine(s, inference, search, query=cfg.scholarship_search_query, model=cfg.openai_model)


def get_summary_service(
    s: AdvisorStore = Depends(get_store),
    inference: InferenceClient = Depends(get_inference_client),
    cfg: Settings = Depends(get_settings),
) -> SummaryService:
    return SummaryService(s, inference, model=cfg.openai_model)


def get_payload_editor(s: AdvisorStore = Depends(get_store)) -> PayloadEditor:
    return PayloadEditor(s)


def get_context_assembler(
    s: AdvisorStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
) -> ContextAssembler:
    return ContextAssembler(s, scholarship_limit=cfg.chat_scholarship_limit)
