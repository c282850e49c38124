from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from src.application.dtos.common_dto import ImageRef
from src.application.dtos.section_dto import (
    BoundaryAdjustRequest,
    BoundaryAdjustResponse,
    BoundaryDesignBatchRequest,
    BoundaryDesignBatchResponse,
    BoundaryDesignFailure,
    BoundaryDesignItem,
    BoundaryDesignRequest,
    BoundaryDesignResponse,
    CropSectionRequest,
    CropSectionResponse,
    ExtendSectionRequest,
    ExtendSectionResponse,
    GenerateSectionRequest,
    GenerateSectionResponse,
    RegenerateSectionRequest,
    RegenerateSectionResponse,
)
from src.application.services.section_ledger import SectionLedger
from src.application.use_cases.adjust_boundary import AdjustBoundaryUseCase
from src.application.use_cases.crop_section import CropMetadata, CropSectionUseCase, decode_data_url
from src.application.use_cases.design_boundary import BoundaryCut, BoundaryDesign, DesignBoundaryUseCase
from src.application.use_cases.extend_section import ExtendSectionUseCase
from src.application.use_cases.generate_section_image import GenerateSectionImageUseCase
from src.application.use_cases.regenerate_section import RegenerateSectionUseCase
from src.domain.entities.image import ImageEntity
from src.domain.exceptions import SectionEngineError
from src.domain.services.raster_service import RasterService
from src.infrastructure.ai.gemini_client import GeminiOutpaintingClient
from src.infrastructure.api.dependencies import (
    get_current_user,
    get_image_repo,
    get_outpainting_client,
    get_raster_service,
    get_section_ledger,
    get_section_repo,
    get_storage,
)
from src.infrastructure.api.errors import ERROR_RESPONSES, http_error
from src.infrastructure.database.repositories.image_repository import ImageRepository
from src.infrastructure.database.repositories.section_repository import SectionRepository
from src.infrastructure.storage.supabase_storage import SupabaseStorage

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/sections",
    tags=["Section Editing"],
    responses=ERROR_RESPONSES,
)


def _image_ref(image: ImageEntity, storage: SupabaseStorage) -> ImageRef:
    return ImageRef(
        id=image.id,
        path=image.path,
        url=storage.public_url(image.path),
        width=image.width,
        height=image.height,
    )


def _reference_image(value: str | None) -> tuple[bytes | None, str]:
    if not value:
        return None, "image/png"
    return decode_data_url(value, field="reference_image")


def _design_fields(result: BoundaryDesign, storage: SupabaseStorage) -> dict:
    return {
        "upper_image": _image_ref(result.upper_image, storage),
        "lower_image": _image_ref(result.lower_image, storage),
        "boundary_image": _image_ref(result.bridge_image, storage),
        "boundary_section_id": result.bridge_section.id,
        "boundary_section_order": result.bridge_section.order,
    }



@router.post(
    "/boundary-adjust",
    response_model=BoundaryAdjustResponse,
    summary="Adjust Section Boundary",
    description="""
    Move the seam between two vertically adjacent sections without any AI.

    **How It Works:**
    1. `offset_pixels` is measured in the editor preview and scaled by
       `upper_width / display_width` (default display width 600)
    2. Positive offset (seam moves down): the lower image loses its top rows
    3. Negative offset (seam moves up): the upper image loses its bottom rows
    4. A cut never leaves an image shorter than 100px; a clamped-away cut still succeeds

    Both sections receive new images and both changes appear in their history.

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="New images of both sections and the resolved geometry",
)
def adjust_boundary(
    body: BoundaryAdjustRequest,
    user=Depends(get_current_user),
    storage: SupabaseStorage = Depends(get_storage),
    image_repo: ImageRepository = Depends(get_image_repo),
    ledger: SectionLedger = Depends(get_section_ledger),
    raster: RasterService = Depends(get_raster_service),
):
    uc = AdjustBoundaryUseCase(storage=storage, image_repo=image_repo, ledger=ledger, raster=raster)
    try:
        result = uc.execute(
            user.id,
            body.upper_section_id,
            body.lower_section_id,
            body.offset_pixels,
            display_width=body.display_width,
        )
    except SectionEngineError as exc:
        raise http_error(exc) from exc

    return BoundaryAdjustResponse(
        upper_image=_image_ref(result.upper_image, storage),
        lower_image=_image_ref(result.lower_image, storage),
        actual_offset=result.actual_offset,
        scale_factor=result.scale_factor,
        cut_amount=result.cut_amount,
    )


@router.post(
    "/boundary-design",
    response_model=BoundaryDesignResponse,
    summary="Design Section Boundary",
    description="""
    Replace the seam between two sections with a generated bridge section.

    `upper_cut` rows are removed from the bottom of the upper image and
    `lower_cut` rows from the top of the lower image (each 0..500, at least
    10 in total). A bridge image of that combined height is generated from both
    exposed edges and inserted as a new section with role `boundary`.

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="New images of both sections and the inserted bridge section",
)
def design_boundary(
    body: BoundaryDesignRequest,
    user=Depends(get_current_user),
    storage: SupabaseStorage = Depends(get_storage),
    image_repo: ImageRepository = Depends(get_image_repo),
    section_repo: SectionRepository = Depends(get_section_repo),
    ledger: SectionLedger = Depends(get_section_ledger),
    raster: RasterService = Depends(get_raster_service),
    outpainter: GeminiOutpaintingClient = Depends(get_outpainting_client),
):
    uc = DesignBoundaryUseCase(
        storage=storage,
        image_repo=image_repo,
        section_repo=section_repo,
        ledger=ledger,
        raster=raster,
        outpainter=outpainter,
    )
    try:
        reference, reference_mime = _reference_image(body.reference_image)
        result = uc.execute(
            user.id,
            body.upper_section_id,
            body.lower_section_id,
            body.upper_cut,
            body.lower_cut,
            reference_image=reference,
            reference_mime=reference_mime,
        )
    except SectionEngineError as exc:
        raise http_error(exc) from exc

    return BoundaryDesignResponse(**_design_fields(result, storage))


@router.post(
    "/boundary-design/batch",
    response_model=BoundaryDesignBatchResponse,
    summary="Design Several Section Boundaries",
    description="""
    Run boundary design for up to 20 seams, one after another.

    Each entry takes the same parameters as `/sections/boundary-design`; the
    optional `reference_image` applies to every seam. A seam that fails (for
    example because the model produced nothing) is reported in `failures`
    with the same error body a single request would return, and the remaining
    seams are still processed.

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="Designed seams and the seams that failed, by request index",
)
def design_boundaries(
    body: BoundaryDesignBatchRequest,
    user=Depends(get_current_user),
    storage: SupabaseStorage = Depends(get_storage),
    image_repo: ImageRepository = Depends(get_image_repo),
    section_repo: SectionRepository = Depends(get_section_repo),
    ledger: SectionLedger = Depends(get_section_ledger),
    raster: RasterService = Depends(get_raster_service),
    outpainter: GeminiOutpaintingClient = Depends(get_outpainting_client),
):
    uc = DesignBoundaryUseCase(
        storage=storage,
        image_repo=image_repo,
        section_repo=section_repo,
        ledger=ledger,
        raster=raster,
        outpainter=outpainter,
    )
    cuts = [
        BoundaryCut(
            upper_section_id=b.upper_section_id,
            lower_section_id=b.lower_section_id,
            upper_cut=b.upper_cut,
            lower_cut=b.lower_cut,
        )
        for b in body.boundaries
    ]
    try:
        reference, reference_mime = _reference_image(body.reference_image)
        batch = uc.execute_batch(
            user.id, cuts, reference_image=reference, reference_mime=reference_mime
        )
    except SectionEngineError as exc:
        raise http_error(exc) from exc

    return BoundaryDesignBatchResponse(
        total=len(cuts),
        results=[
            BoundaryDesignItem(index=index, **_design_fields(design, storage))
            for index, design in batch.designed
        ],
        failures=[
            BoundaryDesignFailure(
                index=index, error=exc.code, message=exc.message, retryable=exc.retryable
            )
            for index, exc in batch.failed
        ],
    )


@router.post(
    "/generate",
    response_model=GenerateSectionResponse,
    summary="Generate New Section Image",
    description="""
    Generate the image for a new section to be placed between two existing ones.

    The bottom edge of `prev_image_url` and the top edge of `next_image_url`
    are sent as continuity context; an optional design definition adds palette,
    mood and typography hints. No section is changed: the editor attaches the
    returned media to the new section itself.

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="URL, id and size of the generated image",
)
def generate_section(
    body: GenerateSectionRequest,
    user=Depends(get_current_user),
    storage: SupabaseStorage = Depends(get_storage),
    image_repo: ImageRepository = Depends(get_image_repo),
    raster: RasterService = Depends(get_raster_service),
    outpainter: GeminiOutpaintingClient = Depends(get_outpainting_client),
):
    uc = GenerateSectionImageUseCase(
        storage=storage, image_repo=image_repo, raster=raster, outpainter=outpainter
    )
    try:
        result = uc.execute(
            user.id,
            body.prompt,
            width=body.width,
            height=body.height,
            prev_image_url=body.prev_image_url,
            next_image_url=body.next_image_url,
            design_definition=body.design_definition,
        )
    except SectionEngineError as exc:
        raise http_error(exc) from exc

    return GenerateSectionResponse(
        image_url=result.url,
        media_id=result.image.id,
        width=result.image.width,
        height=result.image.height,
    )


@router.post(
    "/crop",
    response_model=CropSectionResponse,
    summary="Crop or Split Section",
    description="""
    Store an image the editor cropped and make it the section's current image.

    - `cropped_image`: data URL (`data:image/png;base64,...`) or bare base64
    - `crop_metadata.action`: `crop` or `split` (only changes the message)
    - Sections with an editor-only id such as `temp-3` are not saved yet:
      the image is uploaded and returned without an id, nothing else is written

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="The stored image and a confirmation message",
)
def crop_section(
    body: CropSectionRequest,
    user=Depends(get_current_user),
    storage: SupabaseStorage = Depends(get_storage),
    image_repo: ImageRepository = Depends(get_image_repo),
    ledger: SectionLedger = Depends(get_section_ledger),
):
    uc = CropSectionUseCase(storage=storage, image_repo=image_repo, ledger=ledger)
    metadata = CropMetadata(
        start_y=body.crop_metadata.start_y,
        end_y=body.crop_metadata.end_y,
        action=body.crop_metadata.action,
    )
    try:
        result = uc.execute(
            user.id, body.section_id, body.cropped_image, metadata, page_id=body.page_id
        )
    except SectionEngineError as exc:
        raise http_error(exc) from exc

    if result.image is not None:
        image = _image_ref(result.image, storage)
    else:
        image = ImageRef(path=result.path, url=result.url)
    return CropSectionResponse(image=image, message=result.message)


@router.post(
    "/{section_id}/restore",
    response_model=ExtendSectionResponse,
    summary="Extend Section Image",
    description="""
    Restore content beyond the top and/or bottom edge of a section image with AI.

    **Parameters:**
    - `direction`: `top`, `bottom` or `both`; the amount for an edge not in the
      direction is ignored
    - `top_amount` / `bottom_amount`: 0..500 pixels each, at least 10 in total
    - `prompt`: what the restored content should show (1..1000 characters)
    - `creativity`: `low`, `medium` (default) or `high`

    The original pixels are kept untouched; new rows are only added around
    them. If any requested edge cannot be generated nothing is saved and the
    request fails with 502.

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="The new image and its size",
)
def extend_section(
    section_id: str,
    body: ExtendSectionRequest,
    user=Depends(get_current_user),
    storage: SupabaseStorage = Depends(get_storage),
    image_repo: ImageRepository = Depends(get_image_repo),
    ledger: SectionLedger = Depends(get_section_ledger),
    raster: RasterService = Depends(get_raster_service),
    outpainter: GeminiOutpaintingClient = Depends(get_outpainting_client),
):
    uc = ExtendSectionUseCase(
        storage=storage, image_repo=image_repo, ledger=ledger, raster=raster, outpainter=outpainter
    )
    try:
        reference, reference_mime = _reference_image(body.reference_image)
        result = uc.execute(
            user.id,
            section_id,
            body.direction,
            body.top_amount,
            body.bottom_amount,
            body.prompt,
            reference_image=reference,
            creativity=body.creativity,
            reference_mime=reference_mime,
        )
    except SectionEngineError as exc:
        raise http_error(exc) from exc

    return ExtendSectionResponse(
        new_image_id=result.image.id,
        new_image_path=result.image.path,
        new_image_url=storage.public_url(result.image.path),
        new_width=result.new_width,
        new_height=result.new_height,
        added_top=result.added_top,
        added_bottom=result.added_bottom,
    )


@router.post(
    "/{section_id}/regenerate",
    response_model=RegenerateSectionResponse,
    summary="Regenerate Section Image",
    description="""
    Restyle a section image with AI while keeping it continuous with the page.

    **Parameters:**
    - `mode`: `light` (default) keeps every element in place and only changes
      the style; `heavy` may rearrange the layout
    - `style`: a preset (`sampling`, `professional`, `pops`, `luxury`,
      `minimal`, `emotional`) or `design-definition` together with `design_definition`
    - `color_scheme`, `custom_prompt` (up to 500 characters), `context_style`
    - `style_reference_url`: image whose style is copied; without it, sections
      below the first one follow the first section's style (except `sampling`)

    The instruction names the section's position and asks for continuity with
    the sections above and below. The result keeps the current image's size and
    becomes the section's image; the change is logged as `regenerate-{mode}`.

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="The new image and the image it replaced",
)
def regenerate_section(
    section_id: str,
    body: RegenerateSectionRequest,
    user=Depends(get_current_user),
    storage: SupabaseStorage = Depends(get_storage),
    image_repo: ImageRepository = Depends(get_image_repo),
    section_repo: SectionRepository = Depends(get_section_repo),
    ledger: SectionLedger = Depends(get_section_ledger),
    raster: RasterService = Depends(get_raster_service),
    outpainter: GeminiOutpaintingClient = Depends(get_outpainting_client),
):
    uc = RegenerateSectionUseCase(
        storage=storage,
        image_repo=image_repo,
        section_repo=section_repo,
        ledger=ledger,
        raster=raster,
        outpainter=outpainter,
    )
    try:
        result = uc.execute(
            user.id,
            section_id,
            mode=body.mode,
            style=body.style,
            color_scheme=body.color_scheme,
            custom_prompt=body.custom_prompt,
            context_style=body.context_style,
            design_definition=body.design_definition,
            style_reference_url=body.style_reference_url,
        )
    except SectionEngineError as exc:
        raise http_error(exc) from exc

    return RegenerateSectionResponse(
        section_id=result.section_id,
        previous_image_id=result.previous_image_id,
        new_image_id=result.image.id,
        new_image_url=storage.public_url(result.image.path),
        width=result.image.width,
        height=result.image.height,
    )
