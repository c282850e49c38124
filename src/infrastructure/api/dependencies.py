from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.application.services.section_ledger import SectionLedger
from src.domain.services.raster_service import RasterService
from src.infrastructure.ai.gemini_client import GeminiOutpaintingClient
from src.infrastructure.database.repositories.history_repository import HistoryRepository
from src.infrastructure.database.repositories.image_repository import ImageRepository
from src.infrastructure.database.repositories.section_repository import SectionRepository
from src.infrastructure.database.supabase_client import (
    SupabaseAuthAdapter,
    UserInfo,
    get_supabase_client,
)
from src.infrastructure.storage.supabase_storage import SupabaseStorage

_bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_adapter() -> SupabaseAuthAdapter:
    return SupabaseAuthAdapter()


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(_bearer_scheme)] = None,
    auth: Annotated[SupabaseAuthAdapter, Depends(get_auth_adapter)] = None,
) -> UserInfo:
    if not credentials or not credentials.scheme or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    token = credentials.credentials
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    try:
        return auth.validate_token(token)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))


def get_storage() -> SupabaseStorage:
    return SupabaseStorage(get_supabase_client())


def get_image_repo() -> ImageRepository:
    return ImageRepository(get_supabase_client())


def get_section_repo() -> SectionRepository:
    return SectionRepository(get_supabase_client())


def get_history_repo() -> HistoryRepository:
    return HistoryRepository(get_supabase_client())


def get_section_ledger(
    section_repo: Annotated[SectionRepository, Depends(get_section_repo)],
    history_repo: Annotated[HistoryRepository, Depends(get_history_repo)],
) -> SectionLedger:
    return SectionLedger(section_repo=section_repo, history_repo=history_repo)


def get_raster_service() -> RasterService:
    return RasterService()


# The genai client keeps an HTTP session; build it once per process
_OUTPAINTER_SINGLETON: GeminiOutpaintingClient | None = None


def get_outpainting_client() -> GeminiOutpaintingClient:
    global _OUTPAINTER_SINGLETON
    if _OUTPAINTER_SINGLETON is None:
        _OUTPAINTER_SINGLETON = GeminiOutpaintingClient()
    return _OUTPAINTER_SINGLETON
