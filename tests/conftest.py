"""
Shared fixtures.

FakeAdapter is a deterministic adapter whose engine is a real Python
subprocess (the test interpreter), so workspace handling, cancellation and
log capture run for real without any model installed.
"""

import sys
import wave
from pathlib import Path
from typing import Any, Mapping

import pytest

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

FAKE_DRIVER = '''
import argparse
import json
import os
import sys
import time

parser = argparse.ArgumentParser()
parser.add_argument("--audio", required=True)
parser.add_argument("--output", required=True)
parser.add_argument("--mode", default="ok")
args = parser.parse_args()

print(f"pid={os.getpid()}", flush=True)
print(f"workspace={os.path.dirname(os.path.abspath(args.output))}", flush=True)

if args.mode == "ok":
    result = {
        "text": "  hello world ",
        "language": "en",
        "segments": [
            {"start": 0.0, "end": 1.0, "text": " hello "},
            {"start": float("nan"), "end": 2.0, "text": " world "},
        ],
        "extra": {"confidence": [float("inf"), 0.5, float("-inf")]},
    }
    with open(args.output, "w") as f:
        json.dump(result, f)
elif args.mode == "fail":
    print("engine exploded: out of memory", file=sys.stderr, flush=True)
    sys.exit(3)
elif args.mode == "silent":
    pass
elif args.mode == "garbage":
    with open(args.output, "w") as f:
        f.write("{not json")
elif args.mode == "sleep":
    time.sleep(60)
'''


class FakeAdapter:
    """Deterministic adapter driving FAKE_DRIVER."""

    name = "fake"

    def __init__(self, root: Path):
        self._capabilities = CapabilityDescriptor(
            model_id="fake",
            model_family="fake",
            display_name="Fake Engine",
            version="0.0.1",
            supported_languages=frozenset({"auto", "en"}),
            supported_formats=frozenset({"wav"}),
            parameters=ParameterSchema(
                (
                    ParameterSpec(
                        name="mode",
                        type="enum",
                        default="ok",
                        options=("ok", "fail", "silent", "garbage", "sleep"),
                    ),
                    ParameterSpec(name="model", type="string", default="fake-model"),
                )
            ),
        )
        self._state = EnvironmentState(path=Path(root))
        self.execution = ExecutionUnit("fake", root)
        self.prepare_calls = 0

    @property
    def capabilities(self) -> CapabilityDescriptor:
        return self._capabilities

    @property
    def environment(self) -> EnvironmentState:
        return self._state

    def get_capabilities(self) -> CapabilityDescriptor:
        return self._capabilities

    def get_parameter_schema(self) -> ParameterSchema:
        return self._capabilities.parameters

    def get_supported_models(self) -> list[str]:
        return ["fake-model"]

    async def prepare_environment(self) -> None:
        self.prepare_calls += 1
        self._state.path.mkdir(parents=True, exist_ok=True)
        self._state.ready = True

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
            await self.prepare_environment()
            with self.execution.workspace(proc_ctx) as workspace:
                script = self.execution.write_driver(workspace, "fake_driver.py", FAKE_DRIVER)
                output_json = workspace / "output.json"
                command = [
                    sys.executable,
                    str(script),
                    "--audio", str(audio.file_path),
                    "--output", str(output_json),
                    "--mode", resolved["mode"],
                ]
                await self.execution.execute(
                    command,
                    cwd=self._state.path,
                    proc_ctx=proc_ctx,
                    output_path=output_json,
                    timeout=timeout,
                )
                return parse_result(output_json, resolved["model"])


def write_wav(path: Path, seconds: float = 0.1, sample_rate: int = 16000) -> Path:
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(b"\x00\x00" * int(seconds * sample_rate))
    return path


@pytest.fixture
def audio_file(tmp_path) -> Path:
    return write_wav(tmp_path / "speech.wav")


@pytest.fixture
def output_dir(tmp_path) -> Path:
    path = tmp_path / "out"
    path.mkdir()
    return path


@pytest.fixture
def fake_adapter(tmp_path) -> FakeAdapter:
    return FakeAdapter(tmp_path / "env" / "Fake")
