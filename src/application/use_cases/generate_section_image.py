from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from src.domain.constants import (
    DEFAULT_SECTION_HEIGHT,
    DEFAULT_SECTION_WIDTH,
    MAX_SECTION_DIMENSION,
    MIN_SECTION_DIMENSION,
    NEIGHBOR_CONTEXT_STRIP,
    SourceType,
)
from src.domain.entities.image import ImageEntity
from src.domain.exceptions import InvalidRequestError, ModelUnavailableError, RasterError
from src.domain.services import synthesis_prompts
from src.domain.services.geometry import context_strip_height
from src.domain.services.raster_service import RasterService
from src.infrastructure.ai.gemini_client import ContextImage, GeminiOutpaintingClient
from src.infrastructure.database.repositories.image_repository import ImageRepository
from src.infrastructure.storage.supabase_storage import SupabaseStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratedSectionImage:
    image: ImageEntity
    url: str


@dataclass
class GenerateSectionImageUseCase:
    """
    Synthesize the image for a brand-new section placed between two others.

    The bottom edge of the section above and the top edge of the section below
    (min(100px, 15%) each) anchor the continuity. A neighbor that cannot be
    fetched is skipped. No section is repointed, so nothing is written to the ledger.
    """

    storage: SupabaseStorage
    image_repo: ImageRepository
    raster: RasterService
    outpainter: GeminiOutpaintingClient

    def execute(
        self,
        user_id: str,
        prompt: str,
        width: int = DEFAULT_SECTION_WIDTH,
        height: int = DEFAULT_SECTION_HEIGHT,
        prev_image_url: str | None = None,
        next_image_url: str | None = None,
        design_definition: dict[str, Any] | None = None,
    ) -> GeneratedSectionImage:
        if not prompt or not prompt.strip():
            raise InvalidRequestError("prompt must not be empty")
        for name, value in (("width", width), ("height", height)):
            if value < MIN_SECTION_DIMENSION or value > MAX_SECTION_DIMENSION:
                raise InvalidRequestError(
                    f"{name} must be between {MIN_SECTION_DIMENSION} and {MAX_SECTION_DIMENSION}"
                )

        logger.info("Generating section image %dx%dpx", width, height)
        prev_strip = self._neighbor_strip(prev_image_url, "above") if prev_image_url else None
        next_strip = self._neighbor_strip(next_image_url, "below") if next_image_url else None
        context = [strip for strip in (prev_strip, next_strip) if strip is not None]

        instruction = synthesis_prompts.new_section_instruction(
            prompt,
            width,
            height,
            has_prev=prev_strip is not None,
            has_next=next_strip is not None,
            design_definition=design_definition,
        )
        data = self.outpainter.synthesize(context, instruction)
        if data is None:
            raise ModelUnavailableError()
        try:
            generated = self.raster.decode(data)
        except RasterError as exc:
            logger.error("Model returned an undecodable image: %s", exc)
            raise ModelUnavailableError() from exc
        fitted = self.raster.resize_fit(generated, width, height, fit="cover", anchor="center")

        stored = self.storage.upload_numpy(user_id, fitted, "png", name_hint="section-generated")
        image = self.image_repo.create(
            user_id=user_id,
            path=stored.path,
            width=stored.width,
            height=stored.height,
            mime_type=stored.content_type,
            source_type=SourceType.GENERATED,
            file_size=stored.size,
        )
        logger.info("Section image generated: %s (%dx%d)", image.id, image.width, image.height)
        return GeneratedSectionImage(image=image, url=self.storage.public_url(image.path))

    def _neighbor_strip(self, url: str, position: str) -> ContextImage | None:
        try:
            neighbor = self.raster.decode(self.storage.fetch(url))
        except (RuntimeError, RasterError) as exc:
            logger.error("Skipping %s context image %s: %s", position, url, exc)
            return None
        _, h = self.raster.size(neighbor)
        rows = context_strip_height(h, *NEIGHBOR_CONTEXT_STRIP)
        # the edge that touches the new section
        if position == "above":
            strip = self.raster.bottom_rows(neighbor, rows)
        else:
            strip = self.raster.top_rows(neighbor, rows)
        data, mime = self.raster.encode(strip)
        return ContextImage(data, mime, synthesis_prompts.neighbor_caption(position))
