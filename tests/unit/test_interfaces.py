import json
import math

import pytest

from scribe_dispatch.core.interfaces import (
    AudioInput,
    CapabilityDescriptor,
    TranscriptResult,
    TranscriptSegment,
    TranscriptionAdapter,
)


@pytest.fixture
def descriptor() -> CapabilityDescriptor:
    return CapabilityDescriptor(
        model_id="engine",
        model_family="whisper",
        display_name="Engine",
        version="1.0.0",
        supported_languages=frozenset({"en", "auto"}),
        supported_formats=frozenset({"WAV", ".mp3"}),
        features={"timestamps": True},
        metadata={"platform": "darwin"},
    )


class TestCapabilityDescriptor:
    def test_should_normalize_formats(self, descriptor) -> None:
        assert descriptor.supported_formats == frozenset({"wav", "mp3"})
        assert descriptor.supports_format("wav")
        assert descriptor.supports_format(".MP3")
        assert not descriptor.supports_format("ogg")

    def test_should_answer_language_queries(self, descriptor) -> None:
        assert descriptor.supports_language("en")
        assert not descriptor.supports_language("fr")

    def test_should_answer_feature_queries(self, descriptor) -> None:
        assert descriptor.has_feature("timestamps") is True
        assert descriptor.has_feature("diarization") is False

    def test_should_be_immutable(self, descriptor) -> None:
        with pytest.raises(AttributeError):
            descriptor.model_id = "other"  # type: ignore[misc]
        with pytest.raises(TypeError):
            descriptor.features["timestamps"] = False  # type: ignore[index]
        with pytest.raises(TypeError):
            descriptor.metadata["platform"] = "linux"  # type: ignore[index]

    def test_should_not_share_caller_mapping(self) -> None:
        features = {"timestamps": True}
        descriptor = CapabilityDescriptor(
            model_id="x", model_family="x", display_name="x", version="1", features=features
        )
        features["timestamps"] = False

        assert descriptor.has_feature("timestamps") is True


class TestAudioInput:
    def test_should_derive_format_from_extension(self) -> None:
        assert AudioInput(file_path="/tmp/Talk.FLAC").format == "flac"
        assert AudioInput(file_path="/tmp/noext").format == ""


class TestTranscriptResult:
    def test_should_serialize_strictly_even_with_non_finite_times(self) -> None:
        result = TranscriptResult(
            text="hi",
            language="en",
            model_used="m",
            segments=[TranscriptSegment(start=math.nan, end=math.inf, text="hi")],
        )

        encoded = json.dumps(result.to_dict(), allow_nan=False)

        assert json.loads(encoded)["segments"] == [{"start": None, "end": None, "text": "hi"}]

    def test_should_store_segments_as_tuple(self) -> None:
        result = TranscriptResult(text="", language=None, model_used="m", segments=[])
        assert result.segments == ()


def test_fake_adapter_satisfies_protocol(fake_adapter) -> None:
    assert isinstance(fake_adapter, TranscriptionAdapter)
