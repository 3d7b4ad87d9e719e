"""faster-whisper (CTranslate2) adapter, usable on any host OS."""

import logging
from pathlib import Path
from typing import Any, Mapping

from scribe_dispatch.config import UV_BINARY
from scribe_dispatch.core.environment import UvEnvironment
from scribe_dispatch.core.errors import InvalidParameter
from scribe_dispatch.core.execution import (
    ExecutionUnit,
    validate_audio_input,
    validate_processing_context,
)
from scribe_dispatch.core.interfaces import (
    AudioInput,
    CapabilityDescriptor,
    EnvironmentState,
    ProcessingContext,
    TranscriptResult,
)
from scribe_dispatch.core.normalizer import parse_result
from scribe_dispatch.core.parameters import ParameterSchema, ParameterSpec

logger = logging.getLogger(__name__)

ADAPTER_NAME = "faster_whisper"
ENV_DIR = "FasterWhisper"

SUPPORTED_MODELS = ["tiny", "base", "small", "medium", "large-v3", "distil-large-v3"]

DRIVER_SCRIPT = '''
import argparse
import json
import math

from faster_whisper import WhisperModel


def clean_obj(obj):
    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            return None
        return obj
    elif isinstance(obj, dict):
        return {k: clean_obj(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [clean_obj(v) for v in obj]
    return obj


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--audio", required=True)
    parser.add_argument("--model", required=True)
    parser.add_argument("--output", required=True)
    parser.add_argument("--device", default="cpu")
    parser.add_argument("--compute-type", default="int8")
    parser.add_argument("--language", default="auto")
    parser.add_argument("--beam-size", type=int, default=5)
    parser.add_argument("--word-timestamps", action="store_true")
    args = parser.parse_args()

    print(f"Loading model {args.model} on {args.device} ({args.compute_type})...", flush=True)
    model = WhisperModel(args.model, device=args.device, compute_type=args.compute_type)

    segments, info = model.transcribe(
        args.audio,
        language=None if args.language == "auto" else args.language,
        beam_size=args.beam_size,
        word_timestamps=args.word_timestamps,
    )

    out_segments = []
    for segment in segments:
        item = {"start": segment.start, "end": segment.end, "text": segment.text}
        if segment.words:
            item["words"] = [
                {"start": w.start, "end": w.end, "word": w.word, "probability": w.probability}
                for w in segment.words
            ]
        out_segments.append(item)

    result = {
        "text": "".join(s["text"] for s in out_segments),
        "language": info.language,
        "language_probability": info.language_probability,
        "segments": out_segments,
    }
    with open(args.output, "w") as f:
        json.dump(clean_obj(result), f, indent=2)


if __name__ == "__main__":
    main()
'''


def build_capabilities() -> CapabilityDescriptor:
    return CapabilityDescriptor(
        model_id=ADAPTER_NAME,
        model_family="whisper",
        display_name="faster-whisper",
        description="CTranslate2 Whisper, fast on CPU and CUDA",
        version="1.0.0",
        supported_languages=frozenset(
            {"auto", "en", "es", "fr", "de", "it", "pt", "nl", "ja", "zh", "ko", "ru", "pl", "uk", "ar", "hi"}
        ),
        supported_formats=frozenset({"wav", "mp3", "flac", "m4a", "ogg", "webm", "mp4"}),
        requires_gpu=False,
        memory_requirement_mb=2048,
        features={"timestamps": True, "word_level": True, "language_detect": True},
        metadata={"engine": "ctranslate2"},
        parameters=ParameterSchema(
            (
                ParameterSpec(
                    name="model",
                    type="string",
                    default="small",
                    options=tuple(SUPPORTED_MODELS),
                    description="Whisper model size or local model directory",
                ),
                ParameterSpec(
                    name="language",
                    type="string",
                    default="auto",
                    description="Spoken language code, or 'auto' to detect",
                ),
                ParameterSpec(
                    name="device",
                    type="enum",
                    default="cpu",
                    options=("cpu", "cuda", "auto"),
                    description="Inference device",
                    group="advanced",
                ),
                ParameterSpec(
                    name="compute_type",
                    type="enum",
                    default="int8",
                    options=("int8", "int8_float16", "float16", "float32"),
                    description="CTranslate2 compute type",
                    group="advanced",
                ),
                ParameterSpec(
                    name="beam_size",
                    type="number",
                    default=5,
                    description="Beam search width",
                    group="advanced",
                ),
                ParameterSpec(
                    name="word_timestamps",
                    type="bool",
                    default=False,
                    description="Compute word-level timestamps",
                    group="advanced",
                ),
            )
        ),
    )


class FasterWhisperAdapter:
    """Transcription adapter backed by the `faster-whisper` library."""

    name = ADAPTER_NAME

    def __init__(self, env_path: str | Path, uv_binary: str = UV_BINARY, provision_timeout: float | None = None):
        self._capabilities = build_capabilities()
        root = Path(env_path) / ENV_DIR
        self._env = UvEnvironment(
            root,
            project_name="scribe-faster-whisper-wrapper",
            packages=("faster-whisper",),
            probe_module="faster_whisper",
            uv_binary=uv_binary,
            timeout=provision_timeout,
        )
        self.execution = ExecutionUnit("faster_whisper", root)

    @property
    def capabilities(self) -> CapabilityDescriptor:
        return self._capabilities

    @property
    def environment(self) -> EnvironmentState:
        return self._env.state

    def get_capabilities(self) -> CapabilityDescriptor:
        return self._capabilities

    def get_parameter_schema(self) -> ParameterSchema:
        return self._capabilities.parameters

    def get_supported_models(self) -> list[str]:
        return list(SUPPORTED_MODELS)

    async def prepare_environment(self) -> None:
        await self._env.prepare()

    def _build_args(self, resolved: dict[str, Any]) -> list[str]:
        beam_size = resolved["beam_size"]
        if beam_size < 1 or beam_size != int(beam_size):
            raise InvalidParameter("beam_size", f"beam_size must be a positive integer, got {beam_size!r}")
        args = [
            "--model", resolved["model"],
            "--device", resolved["device"],
            "--compute-type", resolved["compute_type"],
            "--language", resolved["language"],
            "--beam-size", str(int(beam_size)),
        ]
        if resolved["word_timestamps"]:
            args.append("--word-timestamps")
        return args

    async def transcribe(
        self,
        audio: AudioInput,
        params: Mapping[str, Any],
        proc_ctx: ProcessingContext,
        timeout: float | None = None,
    ) -> TranscriptResult:
        with self.execution.processing(audio, proc_ctx):
            validate_audio_input(audio, self._capabilities)
            validate_processing_context(proc_ctx)
            resolved = self._capabilities.parameters.resolve(params)
            if not self._capabilities.supports_language(resolved["language"]):
                raise InvalidParameter("language", f"Unsupported language: {resolved['language']!r}")
            engine_args = self._build_args(resolved)

            await self.prepare_environment()

            with self.execution.workspace(proc_ctx) as workspace:
                script_path = self.execution.write_driver(workspace, "transcribe_faster_whisper.py", DRIVER_SCRIPT)
                output_json = workspace / "output.json"
                command = [
                    *self._env.python_command(),
                    str(script_path),
                    "--audio", str(audio.file_path.resolve()),
                    "--output", str(output_json),
                    *engine_args,
                ]
                await self.execution.execute(
                    command,
                    cwd=self._env.path,
                    proc_ctx=proc_ctx,
                    output_path=output_json,
                    timeout=timeout,
                )
                return parse_result(output_json, resolved["model"], declared_language=resolved["language"])
