# models/api/progress_response.py
"""
Watch-progress API response models.
Field names are camelCase on the wire to match the player client.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models.domain.progress_domain import Sample


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SampleResponse(CamelModel):
    id: str
    user_id: str
    video_id: str
    progress_seconds: float
    created_at: datetime

    @classmethod
    def from_domain(cls, sample: Sample) -> "SampleResponse":
        return cls(
            id=sample.id,
            user_id=sample.user_id,
            video_id=sample.video_id,
            progress_seconds=sample.progress_seconds,
            created_at=sample.created_at,
        )


class QueueSampleResponse(CamelModel):
    ok: bool = True
    item: SampleResponse


class FurthestProgressResponse(CamelModel):
    user_id: str
    video_id: str
    furthest_seconds: float = Field(default=0, description="0 when nothing is committed")
    last_updated: datetime | None = Field(default=None, description="Time of the last raise")


class MergeRunResponse(CamelModel):
    ok: bool = True
    scanned_keys: int
    raised_keys: int


class StatsResponse(CamelModel):
    pending_keys: int
    pending_samples: int
    committed_keys: int
    storage: dict = Field(default_factory=dict)


class VideoResponse(CamelModel):
    video_id: str
    url: str
    title: str
    duration: float


class OkResponse(BaseModel):
    ok: bool = True
