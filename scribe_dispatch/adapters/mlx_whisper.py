"""
Apple MLX Whisper adapter.
Runs mlx-whisper inside its own uv environment (macOS / Apple Silicon only).
"""

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

ADAPTER_NAME = "mlx_whisper"
ENV_DIR = "MLX"
DEFAULT_MODEL = "mlx-community/whisper-large-v3-mlx"

SUPPORTED_MODELS = [
    "mlx-community/whisper-large-v3-mlx",
    "mlx-community/whisper-large-v3-turbo",
    "mlx-community/whisper-base-mlx",
]

# Bridge between mlx_whisper and our JSON artifact.
# clean_obj drops NaN/Infinity, which strict JSON consumers reject.
DRIVER_SCRIPT = '''
import argparse
import json
import math

import mlx_whisper


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
    parser.add_argument("--language", default="auto")
    parser.add_argument("--word-timestamps", action="store_true")
    args = parser.parse_args()

    print(f"Loading model {args.model}...", flush=True)

    result = mlx_whisper.transcribe(
        args.audio,
        path_or_hf_repo=args.model,
        language=None if args.language == "auto" else args.language,
        word_timestamps=args.word_timestamps,
    )

    with open(args.output, "w") as f:
        json.dump(clean_obj(result), f, indent=2)


if __name__ == "__main__":
    main()
'''


def build_capabilities() -> CapabilityDescriptor:
    return CapabilityDescriptor(
        model_id=ADAPTER_NAME,
        model_family="whisper",
        display_name="Apple MLX Whisper",
        description="Optimized Whisper models for Apple Silicon",
        version="1.0.0",
        supported_languages=frozenset(
            {"auto", "en", "es", "fr", "de", "it", "pt", "nl", "ja", "zh", "ko"}
        ),
        supported_formats=frozenset({"wav", "mp3", "flac", "m4a"}),
        requires_gpu=False,  # unified memory / neural engine
        memory_requirement_mb=4096,
        features={"timestamps": True, "word_level": True, "fast_mode": True},
        metadata={"engine": "mlx", "platform": "darwin"},
        parameters=ParameterSchema(
            (
                ParameterSpec(
                    name="model",
                    type="string",
                    default=DEFAULT_MODEL,
                    options=tuple(SUPPORTED_MODELS),
                    description="Hugging Face model ID for MLX",
                    group="basic",
                ),
                ParameterSpec(
                    name="language",
                    type="string",
                    default="auto",
                    description="Spoken language code, or 'auto' to detect",
                    group="basic",
                ),
                ParameterSpec(
                    name="word_timestamps",
                    type="bool",
                    default=True,
                    description="Compute word-level timestamps",
                    group="advanced",
                ),
            )
        ),
    )


class MLXWhisperAdapter:
    """Transcription adapter for Apple MLX Whisper."""

    name = ADAPTER_NAME

    def __init__(self, env_path: str | Path, uv_binary: str = UV_BINARY, provision_timeout: float | None = None):
        self._capabilities = build_capabilities()
        root = Path(env_path) / ENV_DIR
        self._env = UvEnvironment(
            root,
            # distinct project name so it does not shadow the 'mlx' package
            project_name="scribe-mlx-wrapper",
            packages=("mlx-whisper", "ffmpeg-python"),
            probe_module="mlx_whisper",
            required_platform="Darwin",
            uv_binary=uv_binary,
            timeout=provision_timeout,
        )
        self.execution = ExecutionUnit("mlx", root)

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

            await self.prepare_environment()

            with self.execution.workspace(proc_ctx) as workspace:
                script_path = self.execution.write_driver(workspace, "transcribe_mlx.py", DRIVER_SCRIPT)
                output_json = workspace / "output.json"

                command = [
                    *self._env.python_command(),
                    str(script_path),
                    "--audio", str(audio.file_path.resolve()),
                    "--model", resolved["model"],
                    "--output", str(output_json),
                    "--language", resolved["language"],
                ]
                if resolved["word_timestamps"]:
                    command.append("--word-timestamps")

                await self.execution.execute(
                    command,
                    cwd=self._env.path,
                    proc_ctx=proc_ctx,
                    output_path=output_json,
                    timeout=timeout,
                )
                return parse_result(output_json, resolved["model"], declared_language=resolved["language"])
