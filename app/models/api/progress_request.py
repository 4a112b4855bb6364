# app/models/api/progress_request.py
from pydantic import BaseModel, ConfigDict, Field


class ProgressSampleRequest(BaseModel):
    """Request body for reporting a playback position."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1)
    video_id: str = Field(..., alias="videoId", min_length=1)
    progress_seconds: float = Field(
        ...,
        alias="progressSeconds",
        ge=0,
        allow_inf_nan=False,
        description="Current playback position in seconds",
    )
