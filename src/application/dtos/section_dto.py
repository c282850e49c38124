from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from src.application.dtos.common_dto import ImageRef
from src.domain.constants import (
    DEFAULT_DISPLAY_WIDTH,
    DEFAULT_SECTION_HEIGHT,
    DEFAULT_SECTION_WIDTH,
    MAX_BOUNDARIES_PER_BATCH,
    MAX_CUSTOM_PROMPT_LENGTH,
    MAX_EXTEND_AMOUNT,
    MAX_SECTION_DIMENSION,
    MIN_SECTION_DIMENSION,
)


# Boundary adjustment
class BoundaryAdjustRequest(BaseModel):
    """Move the seam between two stacked sections."""
    upper_section_id: str = Field(..., description="Section above the seam", example="12")
    lower_section_id: str = Field(..., description="Section below the seam", example="13")
    offset_pixels: int = Field(
        ...,
        description="Seam movement in editor display pixels (> 0 moves down, < 0 moves up)",
        example=50,
    )
    display_width: int = Field(
        DEFAULT_DISPLAY_WIDTH,
        description="Width of the editor preview the offset was measured in",
        example=600,
        gt=0,
    )


class BoundaryAdjustResponse(BaseModel):
    success: bool = Field(True)
    upper_image: ImageRef = Field(..., description="New image of the upper section")
    lower_image: ImageRef = Field(..., description="New image of the lower section")
    actual_offset: int = Field(..., description="Offset in source pixels after scaling", example=67)
    scale_factor: float = Field(..., description="source width / display width", example=1.3333)
    cut_amount: int = Field(..., description="Rows actually removed after clamping", example=67, ge=0)


# Boundary design
class BoundaryDesignRequest(BaseModel):
    """Cut both sides of a seam and insert a generated bridge section."""
    upper_section_id: str = Field(..., description="Section above the seam", example="12")
    lower_section_id: str = Field(..., description="Section below the seam", example="13")
    upper_cut: int = Field(..., description="Rows removed from the bottom of the upper image", example=80, ge=0, le=MAX_EXTEND_AMOUNT)
    lower_cut: int = Field(..., description="Rows removed from the top of the lower image", example=80, ge=0, le=MAX_EXTEND_AMOUNT)
    reference_image: Optional[str] = Field(None, description="Optional style reference as base64 or data URL")


class BoundaryDesignResponse(BaseModel):
    success: bool = Field(True)
    upper_image: ImageRef
    lower_image: ImageRef
    boundary_image: ImageRef
    boundary_section_id: str = Field(..., description="Id of the inserted bridge section", example="27")
    boundary_section_order: int = Field(..., description="Position of the bridge section on the page", example=4)


class BoundaryCutModel(BaseModel):
    upper_section_id: str = Field(..., description="Section above the seam", example="12")
    lower_section_id: str = Field(..., description="Section below the seam", example="13")
    upper_cut: int = Field(..., description="Rows removed from the bottom of the upper image", example=80, ge=0, le=MAX_EXTEND_AMOUNT)
    lower_cut: int = Field(..., description="Rows removed from the top of the lower image", example=80, ge=0, le=MAX_EXTEND_AMOUNT)


class BoundaryDesignBatchRequest(BaseModel):
    """Design several seams of a page in one request."""
    boundaries: list[BoundaryCutModel] = Field(..., min_length=1, max_length=MAX_BOUNDARIES_PER_BATCH)
    reference_image: Optional[str] = Field(None, description="Optional style reference as base64 or data URL")


class BoundaryDesignItem(BoundaryDesignResponse):
    index: int = Field(..., description="Position of the seam in the request", example=0)


class BoundaryDesignFailure(BaseModel):
    index: int = Field(..., example=1)
    error: str = Field(..., example="model_unavailable")
    message: str
    retryable: bool


class BoundaryDesignBatchResponse(BaseModel):
    success: bool = Field(True)
    total: int = Field(..., example=3)
    results: list[BoundaryDesignItem]
    failures: list[BoundaryDesignFailure] = Field(default_factory=list)


# Extension
class ExtendSectionRequest(BaseModel):
    """Restore content beyond the top and/or bottom edge of a section image."""
    direction: Literal["top", "bottom", "both"] = Field(..., description="Edge(s) to extend", example="bottom")
    top_amount: int = Field(0, description="Pixels to add above", example=0, ge=0, le=MAX_EXTEND_AMOUNT)
    bottom_amount: int = Field(0, description="Pixels to add below", example=200, ge=0, le=MAX_EXTEND_AMOUNT)
    prompt: str = Field(..., description="What the restored content should show", example="continue the pricing table", min_length=1, max_length=1000)
    reference_image: Optional[str] = Field(None, description="Optional style reference as base64 or data URL")
    creativity: Literal["low", "medium", "high"] = Field("medium", description="How freely the model may invent content")


class ExtendSectionResponse(BaseModel):
    success: bool = Field(True)
    new_image_id: str = Field(..., example="img_43")
    new_image_path: str = Field(..., example="user123/section-restored-12-9c1e.png")
    new_image_url: str = Field(..., example="/local-storage/user123/section-restored-12-9c1e.png")
    new_width: int = Field(..., example=800)
    new_height: int = Field(..., example=600)
    added_top: int = Field(..., example=0)
    added_bottom: int = Field(..., example=200)


# New section
class GenerateSectionRequest(BaseModel):
    """Generate the image for a new section between two existing ones."""
    prompt: str = Field(..., description="Content of the new section", example="testimonial carousel", min_length=1, max_length=2000)
    width: int = Field(DEFAULT_SECTION_WIDTH, ge=MIN_SECTION_DIMENSION, le=MAX_SECTION_DIMENSION, example=750)
    height: int = Field(DEFAULT_SECTION_HEIGHT, ge=MIN_SECTION_DIMENSION, le=MAX_SECTION_DIMENSION, example=400)
    prev_image_url: Optional[str] = Field(None, description="Image of the section above")
    next_image_url: Optional[str] = Field(None, description="Image of the section below")
    design_definition: Optional[dict[str, Any]] = Field(
        None,
        description="Design definition: vibe, description, colorPalette, typography, style",
        example={"vibe": "calm", "colorPalette": {"primary": "#1d4ed8"}},
    )


class GenerateSectionResponse(BaseModel):
    success: bool = Field(True)
    image_url: str = Field(..., example="/local-storage/user123/section-generated-77aa.png")
    media_id: str = Field(..., example="img_44")
    width: int = Field(..., example=750)
    height: int = Field(..., example=400)


# Crop / split
class CropMetadataModel(BaseModel):
    start_y: int = Field(..., description="First kept row in source pixels", example=0, ge=0)
    end_y: int = Field(..., description="Row after the last kept row", example=640, gt=0)
    action: Literal["crop", "split"] = Field(..., example="crop")


class CropSectionRequest(BaseModel):
    """Store an image the editor already cropped."""
    section_id: str = Field(..., description="Numeric id, or an editor-only id such as temp-3", example="12")
    cropped_image: str = Field(..., description="Cropped image as data URL or base64")
    crop_metadata: CropMetadataModel
    page_id: Optional[str] = Field(None, description="Page of the section", example="5")


class CropSectionResponse(BaseModel):
    success: bool = Field(True)
    image: ImageRef
    message: str = Field(..., example="Section image cropped")


# Regeneration
class RegenerateSectionRequest(BaseModel):
    """Restyle a section image while keeping it continuous with its neighbors."""
    mode: Literal["light", "heavy"] = Field("light", description="light keeps the layout, heavy may rework it")
    style: Literal[
        "sampling", "professional", "pops", "luxury", "minimal", "emotional", "design-definition"
    ] = Field("professional", description="Style preset, or design-definition to follow design_definition")
    color_scheme: Optional[Literal["original", "blue", "green", "purple", "orange", "monochrome"]] = Field(None)
    custom_prompt: Optional[str] = Field(None, description="Extra instruction", max_length=MAX_CUSTOM_PROMPT_LENGTH)
    context_style: Optional[str] = Field(None, description="Style notes taken from neighboring sections")
    design_definition: Optional[dict[str, Any]] = Field(
        None,
        description="Page-wide design definition used with style=design-definition",
        example={"vibe": "calm", "colorPalette": {"primary": "#1d4ed8"}},
    )
    style_reference_url: Optional[str] = Field(None, description="Image whose style should be copied")


class RegenerateSectionResponse(BaseModel):
    success: bool = Field(True)
    section_id: str = Field(..., example="12")
    previous_image_id: Optional[str] = Field(None, example="img_41")
    new_image_id: str = Field(..., example="img_45")
    new_image_url: str = Field(..., example="/local-storage/user123/regenerate-light-sec-12-51c0.png")
    width: int = Field(..., example=750)
    height: int = Field(..., example=400)
