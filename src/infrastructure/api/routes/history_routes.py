from __future__ import annotations

from fastapi import APIRouter, Depends

from src.application.dtos.common_dto import SuccessResponse
from src.application.dtos.history_dto import (
    HistoryImage,
    HistoryItem,
    LogHistoryRequest,
    RevertRequest,
    RevertResponse,
    SectionHistoryResponse,
)
from src.application.services.section_ledger import SectionLedger
from src.application.use_cases.log_history import LogHistoryUseCase
from src.application.use_cases.revert_section import RevertSectionUseCase
from src.application.use_cases.section_history import GetSectionHistoryUseCase
from src.domain.entities.image import ImageEntity
from src.domain.exceptions import SectionEngineError
from src.infrastructure.api.dependencies import (
    get_current_user,
    get_history_repo,
    get_image_repo,
    get_section_ledger,
    get_section_repo,
    get_storage,
)
from src.infrastructure.api.errors import ERROR_RESPONSES, http_error
from src.infrastructure.database.repositories.history_repository import HistoryRepository
from src.infrastructure.database.repositories.image_repository import ImageRepository
from src.infrastructure.database.repositories.section_repository import SectionRepository
from src.infrastructure.storage.supabase_storage import SupabaseStorage

router = APIRouter(
    prefix="/sections",
    tags=["Section History"],
    responses=ERROR_RESPONSES,
)


def _history_image(image: ImageEntity | None, storage: SupabaseStorage) -> HistoryImage | None:
    if image is None:
        return None
    return HistoryImage(
        id=image.id,
        path=image.path,
        url=storage.public_url(image.path),
        width=image.width,
        height=image.height,
        source_type=image.source_type,
        created_at=image.created_at,
    )


@router.get(
    "/{section_id}/history",
    response_model=SectionHistoryResponse,
    summary="Get Section History",
    description="""
    Retrieve the most recent image changes of a section (at most 10, newest first).

    **Returns:**
    - Each change with the image shown before and after it
    - The images the page import originally produced for this section
    - The section's position on its page

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="Recent history of the section",
)
def get_section_history(
    section_id: str,
    user=Depends(get_current_user),
    storage: SupabaseStorage = Depends(get_storage),
    ledger: SectionLedger = Depends(get_section_ledger),
    section_repo: SectionRepository = Depends(get_section_repo),
    history_repo: HistoryRepository = Depends(get_history_repo),
    image_repo: ImageRepository = Depends(get_image_repo),
):
    uc = GetSectionHistoryUseCase(
        ledger=ledger, section_repo=section_repo, history_repo=history_repo, image_repo=image_repo
    )
    try:
        result = uc.execute(section_id)
    except SectionEngineError as exc:
        raise http_error(exc) from exc

    items = [
        HistoryItem(
            id=record.entry.id,
            section_id=record.entry.section_id,
            user_id=record.entry.user_id,
            previous_image_id=record.entry.previous_image_id,
            new_image_id=record.entry.new_image_id,
            action_type=record.entry.action_type,
            prompt=record.entry.prompt,
            created_at=record.entry.created_at,
            previous_image=_history_image(record.previous_image, storage),
            new_image=_history_image(record.new_image, storage),
        )
        for record in result.entries
    ]
    return SectionHistoryResponse(
        section_id=result.section_id,
        section_order=result.section_order,
        current_image_id=result.current_image_id,
        history=items,
        original_images=[_history_image(img, storage) for img in result.original_images],
    )


@router.post(
    "/{section_id}/history",
    response_model=RevertResponse,
    summary="Revert Section Image",
    description="""
    Show an earlier image in the section again.

    Nothing is deleted: the section is pointed back at `image_id` and the
    revert is itself recorded, so it can be undone the same way.

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="The image now shown and the one it replaced",
)
def revert_section(
    section_id: str,
    body: RevertRequest,
    user=Depends(get_current_user),
    storage: SupabaseStorage = Depends(get_storage),
    image_repo: ImageRepository = Depends(get_image_repo),
    ledger: SectionLedger = Depends(get_section_ledger),
):
    uc = RevertSectionUseCase(image_repo=image_repo, ledger=ledger)
    try:
        result = uc.execute(user.id, section_id, body.image_id)
    except SectionEngineError as exc:
        raise http_error(exc) from exc

    return RevertResponse(
        section_id=result.section_id,
        previous_image_id=result.previous_image_id,
        new_image_id=result.new_image.id,
        new_image_url=storage.public_url(result.new_image.path),
    )


@router.post(
    "/{section_id}/history/log",
    response_model=SuccessResponse,
    summary="Log Section Change",
    description="""
    Record an image change the editor applied on its own (default action `manual`).

    The section's current image is not modified.

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="Confirmation that the entry was recorded",
)
def log_section_history(
    section_id: str,
    body: LogHistoryRequest,
    user=Depends(get_current_user),
    image_repo: ImageRepository = Depends(get_image_repo),
    ledger: SectionLedger = Depends(get_section_ledger),
):
    uc = LogHistoryUseCase(image_repo=image_repo, ledger=ledger)
    try:
        uc.execute(
            user.id,
            section_id,
            body.previous_image_id,
            body.new_image_id,
            action_type=body.action_type,
            prompt=body.prompt,
        )
    except SectionEngineError as exc:
        raise http_error(exc) from exc
    return SuccessResponse(success=True)
