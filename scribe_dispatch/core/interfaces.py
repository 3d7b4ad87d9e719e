"""
Transcription adapter contract.

Adapters are independent variants that satisfy the TranscriptionAdapter Protocol
(structural subtyping) and are registered by name. Shared behaviour is composed
from UvEnvironment, ExecutionUnit and parse_result rather than inherited.
"""

import asyncio
import math
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Protocol, runtime_checkable

from scribe_dispatch.core.parameters import ParameterSchema


@dataclass(frozen=True)
class CapabilityDescriptor:
    """
    Declares what an engine supports and which parameters it accepts.

    Frozen so capabilities are immutable after adapter construction.
    Used by callers to validate requests before they reach the engine.
    """

    model_id: str
    model_family: str
    display_name: str
    version: str
    description: str = ""
    supported_languages: frozenset[str] = frozenset()
    supported_formats: frozenset[str] = frozenset()
    requires_gpu: bool = False
    memory_requirement_mb: int = 0
    features: Mapping[str, bool] = field(default_factory=dict)
    metadata: Mapping[str, str] = field(default_factory=dict)
    parameters: ParameterSchema = field(default_factory=ParameterSchema)

    def __post_init__(self) -> None:
        object.__setattr__(self, "supported_languages", frozenset(self.supported_languages))
        object.__setattr__(
            self,
            "supported_formats",
            frozenset(fmt.lower().lstrip(".") for fmt in self.supported_formats),
        )
        object.__setattr__(self, "features", MappingProxyType(dict(self.features)))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def supports_language(self, code: str) -> bool:
        return code in self.supported_languages

    def supports_format(self, fmt: str) -> bool:
        return fmt.lower().lstrip(".") in self.supported_formats

    def has_feature(self, name: str) -> bool:
        return self.features.get(name, False)


@dataclass(frozen=True)
class AudioInput:
    """Audio file handed to an adapter. Read-only to the adapter."""

    file_path: Path
    duration: float | None = None
    sample_rate: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "file_path", Path(self.file_path))

    @property
    def format(self) -> str:
        return self.file_path.suffix.lower().lstrip(".")


@dataclass(frozen=True)
class ProcessingContext:
    """
    Per-job context: where engine logs go and which ids to log with.

    Setting ``cancel_event`` kills a running engine and fails the job with
    ExecutionCancelled.
    """

    output_directory: Path
    job_id: str
    request_id: str = "unknown"
    cancel_event: asyncio.Event | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "output_directory", Path(self.output_directory))


@dataclass(frozen=True)
class TranscriptSegment:
    """A timed piece of transcript. ``None`` times mean the engine gave no usable value."""

    start: float | None
    end: float | None
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"start": _finite_or_none(self.start), "end": _finite_or_none(self.end), "text": self.text}


@dataclass(frozen=True)
class TranscriptResult:
    text: str
    language: str | None
    model_used: str
    segments: tuple[TranscriptSegment, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "segments", tuple(self.segments))

    def to_dict(self) -> dict[str, Any]:
        """Plain dict that always survives ``json.dumps(..., allow_nan=False)``."""
        return {
            "text": self.text,
            "language": self.language,
            "model": self.model_used,
            "segments": [segment.to_dict() for segment in self.segments],
        }


@dataclass
class EnvironmentState:
    """
    Shared per-adapter readiness flag.

    Starts unset; flipped to ready once by the provisioner and never unset.
    """

    path: Path
    ready: bool = False


def _finite_or_none(value: float | None) -> float | None:
    if value is None or not math.isfinite(value):
        return None
    return value


@runtime_checkable
class TranscriptionAdapter(Protocol):
    """
    Transcription adapter interface.
    All engine adapters must follow this interface.
    """

    @property
    def name(self) -> str:
        """Registry name of the adapter (e.g. "mlx_whisper")."""
        ...

    @property
    def capabilities(self) -> CapabilityDescriptor:
        ...

    @property
    def environment(self) -> EnvironmentState:
        ...

    def get_capabilities(self) -> CapabilityDescriptor:
        ...

    def get_parameter_schema(self) -> ParameterSchema:
        ...

    def get_supported_models(self) -> list[str]:
        ...

    async def prepare_environment(self) -> None:
        """
        Make sure the engine's runtime dependencies exist.

        Idempotent and cheap once ready. May be slow the first time
        (network installs). Raises UnsupportedPlatform / ProvisioningFailed.
        """
        ...

    async def transcribe(
        self,
        audio: AudioInput,
        params: Mapping[str, Any],
        proc_ctx: ProcessingContext,
        timeout: float | None = None,
    ) -> TranscriptResult:
        """
        Run one transcription job as an isolated, cancellable unit of work.

        Args:
            audio: Input audio file.
            params: Engine parameters; resolved against the parameter schema.
            proc_ctx: Output directory and ids for this job.
            timeout: Optional deadline in seconds for the engine process.

        Returns:
            Normalized, immutable TranscriptResult.
        """
        ...
