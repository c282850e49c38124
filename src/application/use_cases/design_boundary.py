from __future__ import annotations

import logging
from dataclasses import dataclass, field

from src.application.services.section_images import load_current_image
from src.application.services.section_ledger import SectionLedger
from src.domain.constants import (
    MAX_BOUNDARIES_PER_BATCH,
    MAX_EXTEND_AMOUNT,
    MIN_TOTAL_EXTEND_AMOUNT,
    NEIGHBOR_CONTEXT_STRIP,
    ActionType,
    SourceType,
)
from src.domain.entities.image import ImageEntity
from src.domain.entities.section import SectionEntity
from src.domain.exceptions import (
    InvalidRequestError,
    ModelUnavailableError,
    RasterError,
    SectionEngineError,
)
from src.domain.services import synthesis_prompts
from src.domain.services.geometry import clamp_cut, context_strip_height
from src.domain.services.raster_service import RasterService
from src.infrastructure.ai.gemini_client import ContextImage, GeminiOutpaintingClient
from src.infrastructure.database.postgres_client import transaction_scope
from src.infrastructure.database.repositories.image_repository import ImageRepository
from src.infrastructure.database.repositories.section_repository import SectionRepository
from src.infrastructure.storage.supabase_storage import StorageResult, SupabaseStorage

logger = logging.getLogger(__name__)

BOUNDARY_ROLE = "boundary"


@dataclass(frozen=True)
class BoundaryDesign:
    upper_image: ImageEntity
    lower_image: ImageEntity
    bridge_image: ImageEntity
    bridge_section: SectionEntity


@dataclass(frozen=True)
class BoundaryCut:
    upper_section_id: str
    lower_section_id: str
    upper_cut: int
    lower_cut: int


@dataclass
class BoundaryBatch:
    designed: list[tuple[int, BoundaryDesign]] = field(default_factory=list)
    failed: list[tuple[int, SectionEngineError]] = field(default_factory=list)


@dataclass
class DesignBoundaryUseCase:
    """
    Replace a hard seam with a synthesized bridge section.

    The upper image loses `upper_cut` rows at the bottom and the lower image
    loses `lower_cut` rows at the top. A new section of height
    `upper_cut + lower_cut` is generated from both exposed edges and inserted
    between them, pushing every following section down one position.

    `execute_batch` handles up to 20 seams in order. A seam that fails is
    logged and reported, and the remaining seams are still processed.
    """

    storage: SupabaseStorage
    image_repo: ImageRepository
    section_repo: SectionRepository
    ledger: SectionLedger
    raster: RasterService
    outpainter: GeminiOutpaintingClient

    def execute(
        self,
        user_id: str,
        upper_section_id: str,
        lower_section_id: str,
        upper_cut: int,
        lower_cut: int,
        reference_image: bytes | None = None,
        reference_mime: str = "image/png",
    ) -> BoundaryDesign:
        for name, amount in (("upper_cut", upper_cut), ("lower_cut", lower_cut)):
            if amount < 0 or amount > MAX_EXTEND_AMOUNT:
                raise InvalidRequestError(f"{name} must be between 0 and {MAX_EXTEND_AMOUNT}")
        if str(upper_section_id) == str(lower_section_id):
            raise InvalidRequestError("upper and lower sections must differ")

        upper_section, upper_meta = load_current_image(self.ledger, self.image_repo, upper_section_id)
        lower_section, lower_meta = load_current_image(self.ledger, self.image_repo, lower_section_id)
        if upper_section.page_id != lower_section.page_id:
            raise InvalidRequestError("sections must belong to the same page")

        upper = self.storage.download_to_numpy(upper_meta.path)
        lower = self.storage.download_to_numpy(lower_meta.path)
        upper_w, upper_h = self.raster.size(upper)
        lower_w, lower_h = self.raster.size(lower)

        cut_upper = clamp_cut(upper_cut, upper_h)
        cut_lower = clamp_cut(lower_cut, lower_h)
        bridge_height = cut_upper + cut_lower
        if bridge_height < MIN_TOTAL_EXTEND_AMOUNT:
            raise InvalidRequestError(
                f"Boundary too small: at least {MIN_TOTAL_EXTEND_AMOUNT}px in total is required"
            )
        bridge_width = min(upper_w, lower_w)
        logger.info(
            "Designing boundary %s/%s: cut %dpx + %dpx, bridge %dx%d",
            upper_section.id, lower_section.id, cut_upper, cut_lower, bridge_width, bridge_height,
        )

        new_upper = self.raster.drop_bottom_rows(upper, cut_upper)
        new_lower = self.raster.drop_top_rows(lower, cut_lower)

        context = [
            self._edge(new_upper, "bottom", "Bottom edge of the upper section."),
            self._edge(new_lower, "top", "Top edge of the lower section."),
        ]
        if reference_image:
            context.append(ContextImage(reference_image, reference_mime, synthesis_prompts.reference_caption()))
        instruction = synthesis_prompts.bridge_instruction(
            bridge_width, bridge_height, has_reference=bool(reference_image)
        )
        data = self.outpainter.synthesize(context, instruction)
        if data is None:
            raise ModelUnavailableError()
        try:
            bridge = self.raster.resize_fit(
                self.raster.decode(data), bridge_width, bridge_height, fit="cover", anchor="center"
            )
        except RasterError as exc:
            logger.error("Model returned an unusable bridge image: %s", exc)
            raise ModelUnavailableError() from exc

        stored_upper = self.storage.upload_numpy(user_id, new_upper, "png", name_hint="boundary-cut-upper")
        stored_lower = self.storage.upload_numpy(user_id, new_lower, "png", name_hint="boundary-cut-lower")
        stored_bridge = self.storage.upload_numpy(user_id, bridge, "png", name_hint="boundary-generated")

        with transaction_scope():
            upper_image = self._create_image(user_id, stored_upper, SourceType.BOUNDARY_CUT)
            lower_image = self._create_image(user_id, stored_lower, SourceType.BOUNDARY_CUT)
            bridge_image = self._create_image(user_id, stored_bridge, SourceType.BOUNDARY_GENERATED)
            self.ledger.substitute(
                upper_section.id, upper_image.id, ActionType.BOUNDARY_DESIGN, user_id=user_id
            )
            self.ledger.substitute(
                lower_section.id, lower_image.id, ActionType.BOUNDARY_DESIGN, user_id=user_id
            )
            insert_at = lower_section.order
            self.section_repo.shift_orders(lower_section.page_id, insert_at, by=1)
            bridge_section = self.section_repo.create(
                page_id=lower_section.page_id,
                order=insert_at,
                role=BOUNDARY_ROLE,
                image_id=bridge_image.id,
            )

        logger.info(
            "Boundary section %s inserted at order %d", bridge_section.id, bridge_section.order
        )
        return BoundaryDesign(
            upper_image=upper_image,
            lower_image=lower_image,
            bridge_image=bridge_image,
            bridge_section=bridge_section,
        )

    def execute_batch(
        self,
        user_id: str,
        cuts: list[BoundaryCut],
        reference_image: bytes | None = None,
        reference_mime: str = "image/png",
    ) -> BoundaryBatch:
        if not cuts or len(cuts) > MAX_BOUNDARIES_PER_BATCH:
            raise InvalidRequestError(
                f"between 1 and {MAX_BOUNDARIES_PER_BATCH} boundaries are required"
            )
        batch = BoundaryBatch()
        for index, cut in enumerate(cuts):
            logger.info("Boundary %d/%d", index + 1, len(cuts))
            try:
                design = self.execute(
                    user_id,
                    cut.upper_section_id,
                    cut.lower_section_id,
                    cut.upper_cut,
                    cut.lower_cut,
                    reference_image=reference_image,
                    reference_mime=reference_mime,
                )
            except SectionEngineError as exc:
                logger.error("Boundary %d/%d failed: %s", index + 1, len(cuts), exc.message)
                batch.failed.append((index, exc))
                continue
            batch.designed.append((index, design))
        logger.info("Designed %d/%d boundaries", len(batch.designed), len(cuts))
        return batch

    def _edge(self, raster, edge: str, caption: str) -> ContextImage:
        _, height = self.raster.size(raster)
        rows = context_strip_height(height, *NEIGHBOR_CONTEXT_STRIP)
        strip = self.raster.bottom_rows(raster, rows) if edge == "bottom" else self.raster.top_rows(raster, rows)
        data, mime = self.raster.encode(strip)
        return ContextImage(data, mime, caption)

    def _create_image(self, user_id: str, stored: StorageResult, source_type: str) -> ImageEntity:
        return self.image_repo.create(
            user_id=user_id,
            path=stored.path,
            width=stored.width,
            height=stored.height,
            mime_type=stored.content_type,
            source_type=source_type,
            file_size=stored.size,
        )
