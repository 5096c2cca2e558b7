from pydantic import BaseModel, Field


class ItemDescriptionRequest(BaseModel):
    """Keywords describing a piece, e.g. "22k gold bangle antique finish"."""

    keywords: str = Field(..., min_length=1, max_length=300)


class ItemDescriptionResponse(BaseModel):
    description: str
    generated_by: str = Field(
        ..., description="Model name, or 'fallback' when no model was used"
    )
