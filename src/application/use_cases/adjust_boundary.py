from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from src.application.services.section_images import load_current_image
from src.application.services.section_ledger import SectionLedger
from src.domain.constants import DEFAULT_DISPLAY_WIDTH, ActionType, SourceType
from src.domain.entities.image import ImageEntity
from src.domain.exceptions import InvalidRequestError
from src.domain.services.geometry import GeometryResolver, clamp_cut
from src.domain.services.raster_service import RasterService
from src.infrastructure.database.postgres_client import transaction_scope
from src.infrastructure.database.repositories.image_repository import ImageRepository
from src.infrastructure.storage.supabase_storage import StorageResult, SupabaseStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundaryAdjustment:
    upper_image: ImageEntity
    lower_image: ImageEntity
    scale_factor: float
    actual_offset: int  # source pixels, signed
    cut_amount: int  # rows actually removed after clamping


@dataclass
class AdjustBoundaryUseCase:
    """
    Move the seam between two stacked sections by redistributing existing pixels.

    No model is involved. The offset arrives in editor display pixels and is
    scaled by `upper_width / display_width`:

    - offset > 0 (seam moves down): the lower image loses its top rows
    - offset < 0 (seam moves up): the upper image loses its bottom rows

    A cut never leaves an image shorter than 100 px; when the clamp leaves
    nothing to remove the call still succeeds with a zero cut.

    Both sections always receive freshly uploaded images and both moves are
    logged in the ledger. The side whose pixels did not change is re-uploaded
    from its original bytes, so its format and alpha channel are kept as is.
    """

    storage: SupabaseStorage
    image_repo: ImageRepository
    ledger: SectionLedger
    raster: RasterService

    def execute(
        self,
        user_id: str,
        upper_section_id: str,
        lower_section_id: str,
        offset_pixels: int,
        display_width: int = DEFAULT_DISPLAY_WIDTH,
    ) -> BoundaryAdjustment:
        if offset_pixels == 0:
            raise InvalidRequestError("offset_pixels must be non-zero")
        if str(upper_section_id) == str(lower_section_id):
            raise InvalidRequestError("upper and lower sections must differ")

        upper_section, upper_meta = load_current_image(self.ledger, self.image_repo, upper_section_id)
        lower_section, lower_meta = load_current_image(self.ledger, self.image_repo, lower_section_id)

        upper_bytes = self.storage.download_bytes(upper_meta.path)
        lower_bytes = self.storage.download_bytes(lower_meta.path)
        upper = self.raster.decode(upper_bytes)
        lower = self.raster.decode(lower_bytes)
        upper_w, upper_h = self.raster.size(upper)
        lower_w, lower_h = self.raster.size(lower)
        logger.info(
            "Adjusting boundary %s/%s by %+dpx (upper %dx%d, lower %dx%d)",
            upper_section.id, lower_section.id, offset_pixels, upper_w, upper_h, lower_w, lower_h,
        )

        geometry = GeometryResolver(source_width=upper_w, display_width=display_width)
        actual_offset = geometry.display_to_source(offset_pixels)

        new_upper = new_lower = None
        if actual_offset > 0:
            cut = clamp_cut(actual_offset, lower_h)
            if cut:
                new_lower = self.raster.drop_top_rows(lower, cut)
            logger.info("Cut %dpx from top of lower section %s", cut, lower_section.id)
        elif actual_offset < 0:
            cut = clamp_cut(-actual_offset, upper_h)
            if cut:
                new_upper = self.raster.drop_bottom_rows(upper, cut)
            logger.info("Cut %dpx from bottom of upper section %s", cut, upper_section.id)
        else:
            cut = 0
        if cut != abs(actual_offset):
            logger.warning(
                "Requested %dpx clamped to %dpx to keep sections at least 100px tall",
                abs(actual_offset), cut,
            )

        stored_upper = self._upload(user_id, new_upper, upper_bytes, upper_meta, "boundary-adj-upper")
        stored_lower = self._upload(user_id, new_lower, lower_bytes, lower_meta, "boundary-adj-lower")

        with transaction_scope():
            upper_image = self.image_repo.create(
                user_id=user_id,
                path=stored_upper.path,
                width=stored_upper.width,
                height=stored_upper.height,
                mime_type=stored_upper.content_type,
                source_type=SourceType.BOUNDARY_ADJUST,
                file_size=stored_upper.size,
            )
            lower_image = self.image_repo.create(
                user_id=user_id,
                path=stored_lower.path,
                width=stored_lower.width,
                height=stored_lower.height,
                mime_type=stored_lower.content_type,
                source_type=SourceType.BOUNDARY_ADJUST,
                file_size=stored_lower.size,
            )
            self.ledger.substitute(
                upper_section.id, upper_image.id, ActionType.BOUNDARY_ADJUST, user_id=user_id
            )
            self.ledger.substitute(
                lower_section.id, lower_image.id, ActionType.BOUNDARY_ADJUST, user_id=user_id
            )

        logger.info(
            "Boundary adjusted: upper %dpx, lower %dpx", upper_image.height, lower_image.height
        )
        return BoundaryAdjustment(
            upper_image=upper_image,
            lower_image=lower_image,
            scale_factor=geometry.scale_factor,
            actual_offset=actual_offset,
            cut_amount=cut,
        )

    def _upload(
        self,
        user_id: str,
        cut: np.ndarray | None,
        original: bytes,
        meta: ImageEntity,
        name_hint: str,
    ) -> StorageResult:
        if cut is None:
            return self.storage.upload_bytes(user_id, original, meta.mime_type, name_hint=name_hint)
        return self.storage.upload_numpy(user_id, cut, "png", name_hint=name_hint)
