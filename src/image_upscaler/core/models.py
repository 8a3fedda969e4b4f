"""Shared data models for the image upscaler."""

from enum import Enum
from typing import Any, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    PositiveInt,
    model_validator,
)


class ImageDimensions(BaseModel):
    """Pixel size of an image."""

    model_config = ConfigDict(frozen=True)

    width: PositiveInt
    height: PositiveInt

    @property
    def max_dimension(self) -> int:
        return max(self.width, self.height)

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


class ProcessingSettings(BaseModel):
    """Settings supplied once per batch run.

    ``target_size`` only matters when ``enable_upscaling`` is set.
    """

    model_config = ConfigDict(frozen=True)

    max_dimension: PositiveInt = 1300
    enable_upscaling: bool = True
    target_size: PositiveInt = 2560
    name_prefix: Optional[str] = None


class SourceImage(BaseModel):
    """An image as submitted by the caller."""

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(repr=False)
    mime_type: str
    original_name: str
    size_in_bytes: NonNegativeInt = 0

    @model_validator(mode="before")
    @classmethod
    def _default_size(cls, values: Any) -> Any:
        if isinstance(values, dict) and values.get("size_in_bytes") is None:
            data = values.get("data")
            if isinstance(data, (bytes, bytearray)):
                values = {**values, "size_in_bytes": len(data)}
        return values


class ProcessingOutcome(BaseModel):
    """Terminal record of what happened to one submitted image."""

    success: bool = False
    error: Optional[str] = None
    original_name: str = ""
    original_size: Optional[ImageDimensions] = None
    final_size: Optional[ImageDimensions] = None
    was_resized: bool = False
    was_upscaled: bool = False
    scale_factor: Optional[float] = None
    applied_scale_factor: Optional[float] = None
    download_url: Optional[str] = None
    processed_name: Optional[str] = None
    artifact_key: Optional[str] = None
    upscale_error: Optional[str] = None


class UpscaleResult(BaseModel):
    """Signal returned by the upscale stage.

    ``skipped`` is the non-error "nothing to do" case; ``success`` is only
    set when a new, larger artifact was stored.
    """

    success: bool = False
    skipped: bool = False
    error: Optional[str] = None
    scale_factor: Optional[float] = None
    applied_scale_factor: Optional[float] = None
    final_size: Optional[ImageDimensions] = None
    download_url: Optional[str] = None
    artifact_key: Optional[str] = None


class BatchState(str, Enum):
    """Lifecycle of one batch run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


class BatchProgress(BaseModel):
    """Progress event emitted after each item finishes."""

    run_id: str
    index: int
    completed: int
    total: int
    outcome: ProcessingOutcome

    @property
    def fraction(self) -> float:
        return self.completed / self.total if self.total else 1.0


class BatchResult(BaseModel):
    """Terminal record of a batch run."""

    run_id: str
    state: BatchState = BatchState.COMPLETED
    outcomes: List[ProcessingOutcome] = Field(default_factory=list)
    artifact_keys: List[str] = Field(default_factory=list)
    logs: List[str] = Field(default_factory=list)
    processing_time: float = 0.0

    @property
    def success_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failure_count(self) -> int:
        return len(self.outcomes) - self.success_count
