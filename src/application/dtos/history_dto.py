from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class HistoryImage(BaseModel):
    """Image referenced by a history entry."""
    id: str = Field(..., description="Unique identifier of the image", example="img_42")
    path: str = Field(..., description="Storage path of the image file")
    url: str = Field(..., description="Public URL to access the image")
    width: int = Field(..., example=800)
    height: int = Field(..., example=1200)
    source_type: str = Field(..., description="How the image was produced", example="cropped")
    created_at: datetime = Field(..., description="ISO timestamp when the image was created")


class HistoryItem(BaseModel):
    """One substitution of a section's image."""
    id: str = Field(..., description="Unique identifier of the history entry", example="hist_7")
    section_id: str = Field(..., description="Section the entry was logged against", example="12")
    user_id: Optional[str] = Field(None, description="ID of the user who performed the change")
    previous_image_id: Optional[str] = Field(None, description="Image shown before the change", example="img_41")
    new_image_id: str = Field(..., description="Image shown after the change", example="img_42")
    action_type: str = Field(..., description="Kind of change", example="crop")
    prompt: Optional[str] = Field(None, description="Prompt used for AI edits")
    created_at: datetime = Field(..., description="ISO timestamp of the change")
    previous_image: Optional[HistoryImage] = None
    new_image: Optional[HistoryImage] = None


class SectionHistoryResponse(BaseModel):
    """Recent history of a section."""
    section_id: str = Field(..., example="12")
    section_order: int = Field(..., description="Position of the section on its page", example=3)
    current_image_id: Optional[str] = Field(None, example="img_42")
    history: list[HistoryItem] = Field(..., description="Newest first, at most 10 entries")
    original_images: list[HistoryImage] = Field(
        default_factory=list, description="Images the page import produced for this section"
    )


class RevertRequest(BaseModel):
    image_id: str = Field(..., description="Image to show again", example="img_41")


class RevertResponse(BaseModel):
    success: bool = Field(True)
    section_id: str = Field(..., example="12")
    previous_image_id: Optional[str] = Field(None, example="img_42")
    new_image_id: str = Field(..., example="img_41")
    new_image_url: str = Field(..., example="/local-storage/user123/section-cropped-3f2a.png")


class LogHistoryRequest(BaseModel):
    """A substitution the editor applied on its own."""
    previous_image_id: Optional[str] = Field(None, example="img_41")
    new_image_id: str = Field(..., example="img_42")
    action_type: Literal[
        "crop",
        "restore",
        "revert",
        "manual",
        "boundary-adjust",
        "boundary-design",
        "regenerate-light",
        "regenerate-heavy",
    ] = Field("manual", description="Kind of change")
    prompt: Optional[str] = Field(None, max_length=2000)
