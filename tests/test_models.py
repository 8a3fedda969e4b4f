"""Tests for core data models."""

import pydantic
import pytest

from image_upscaler.core.models import (
    BatchProgress,
    BatchResult,
    BatchState,
    ImageDimensions,
    ProcessingOutcome,
    ProcessingSettings,
    SourceImage,
)


class TestImageDimensions:
    """Tests for ImageDimensions."""

    def test_max_dimension(self):
        assert ImageDimensions(width=300, height=1200).max_dimension == 1200

    def test_str(self):
        assert str(ImageDimensions(width=1300, height=975)) == "1300x975"

    @pytest.mark.parametrize("width,height", [(0, 10), (10, 0), (-1, 5)])
    def test_non_positive_sides_are_rejected(self, width, height):
        with pytest.raises(pydantic.ValidationError):
            ImageDimensions(width=width, height=height)

    def test_is_immutable(self):
        size = ImageDimensions(width=1, height=2)
        with pytest.raises(pydantic.ValidationError):
            size.width = 5


class TestProcessingSettings:
    """Tests for ProcessingSettings."""

    def test_defaults(self):
        settings = ProcessingSettings()
        assert settings.max_dimension == 1300
        assert settings.enable_upscaling is True
        assert settings.target_size == 2560
        assert settings.name_prefix is None

    def test_rejects_non_positive_bounds(self):
        with pytest.raises(pydantic.ValidationError):
            ProcessingSettings(max_dimension=0)
        with pytest.raises(pydantic.ValidationError):
            ProcessingSettings(target_size=-5)


class TestSourceImage:
    """Tests for SourceImage."""

    def test_size_defaults_to_data_length(self):
        source = SourceImage(data=b"12345", mime_type="image/png", original_name="a.png")
        assert source.size_in_bytes == 5

    def test_explicit_size_is_kept(self):
        source = SourceImage(
            data=b"12345", mime_type="image/png", original_name="a.png", size_in_bytes=99
        )
        assert source.size_in_bytes == 99

    def test_repr_hides_data(self):
        source = SourceImage(data=b"secret", mime_type="image/png", original_name="a.png")
        assert "secret" not in repr(source)


class TestBatchModels:
    """Tests for ProcessingOutcome, BatchProgress and BatchResult."""

    def test_outcome_defaults_to_failure(self):
        outcome = ProcessingOutcome(original_name="a.png")
        assert outcome.success is False
        assert outcome.was_resized is False
        assert outcome.was_upscaled is False
        assert outcome.download_url is None

    def test_progress_fraction(self):
        event = BatchProgress(
            run_id="r", index=0, completed=1, total=4, outcome=ProcessingOutcome()
        )
        assert event.fraction == 0.25

    def test_progress_fraction_for_empty_batch(self):
        event = BatchProgress(
            run_id="r", index=0, completed=0, total=0, outcome=ProcessingOutcome()
        )
        assert event.fraction == 1.0

    def test_result_counts(self):
        result = BatchResult(
            run_id="r",
            outcomes=[
                ProcessingOutcome(success=True),
                ProcessingOutcome(success=False, error="x"),
                ProcessingOutcome(success=True),
            ],
        )
        assert result.success_count == 2
        assert result.failure_count == 1
        assert result.state is BatchState.COMPLETED
