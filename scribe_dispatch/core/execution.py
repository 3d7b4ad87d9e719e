"""
Execution unit: runs one transcription job against a prepared environment.

Per job:
1. validate input + context (before anything touches disk or spawns a process)
2. create a scoped workspace ``<root>/workspaces/<job>_XXXX/``
3. write the engine's driver script into it
4. run the engine with output going to ``<output_dir>/<engine>_transcription.log``
5. hand the output artifact to the normalizer
6. remove the workspace on every exit path; the log file stays
"""

import logging
import os
import re
import shutil
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence

from scribe_dispatch.core.errors import EngineExecutionFailed, InvalidInput
from scribe_dispatch.core.interfaces import AudioInput, CapabilityDescriptor, ProcessingContext
from scribe_dispatch.core.process import read_tail, run_logged

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def validate_audio_input(audio: AudioInput, capabilities: CapabilityDescriptor) -> None:
    path = audio.file_path
    if not path.exists():
        raise InvalidInput(f"Audio file does not exist: {path}")
    if not path.is_file():
        raise InvalidInput(f"Audio path is not a regular file: {path}")
    if not os.access(path, os.R_OK):
        raise InvalidInput(f"Audio file is not readable: {path}")
    if not capabilities.supports_format(audio.format):
        raise InvalidInput(
            f"Unsupported audio format '{audio.format or '<none>'}' for {capabilities.model_id}. "
            f"Supported: {sorted(capabilities.supported_formats)}"
        )


def validate_processing_context(proc_ctx: ProcessingContext) -> None:
    if not proc_ctx.output_directory.is_dir():
        raise InvalidInput(f"Output directory does not exist: {proc_ctx.output_directory}")


class ExecutionUnit:
    """Workspace, subprocess and log handling shared by all subprocess-backed adapters."""

    def __init__(self, engine_name: str, root: Path, log_name: str | None = None):
        self.engine_name = engine_name
        self.workspace_root = Path(root) / "workspaces"
        self.log_name = log_name or f"{engine_name}_transcription.log"

    def log_path(self, proc_ctx: ProcessingContext) -> Path:
        return proc_ctx.output_directory / self.log_name

    @contextmanager
    def processing(self, audio: AudioInput, proc_ctx: ProcessingContext) -> Iterator[None]:
        """Log start/end of a job with its elapsed time."""
        logger.info(f"[{proc_ctx.job_id}] 🎙️ {self.engine_name}: processing {audio.file_path.name}")
        start_time = time.time()
        try:
            yield
        except BaseException as e:
            logger.warning(
                f"[{proc_ctx.job_id}] ❌ {self.engine_name}: failed after {time.time() - start_time:.2f}s "
                f"({type(e).__name__})"
            )
            raise
        logger.info(f"[{proc_ctx.job_id}] ✅ {self.engine_name}: done in {time.time() - start_time:.2f}s")

    @contextmanager
    def workspace(self, proc_ctx: ProcessingContext) -> Iterator[Path]:
        """Create a private workspace for one job and always remove it afterwards."""
        self.workspace_root.mkdir(parents=True, exist_ok=True)
        prefix = _UNSAFE_CHARS.sub("_", proc_ctx.job_id) or "job"
        path = Path(tempfile.mkdtemp(prefix=f"{prefix}_", dir=self.workspace_root))
        try:
            yield path
        finally:
            shutil.rmtree(path, ignore_errors=True)

    def write_driver(self, workspace: Path, filename: str, source: str) -> Path:
        script_path = workspace / filename
        script_path.write_text(source, encoding="utf-8")
        return script_path

    async def execute(
        self,
        command: Sequence[str],
        *,
        cwd: Path,
        proc_ctx: ProcessingContext,
        output_path: Path,
        timeout: float | None = None,
    ) -> Path:
        """
        Run the engine and return the path of its output artifact.

        Raises:
            EngineExecutionFailed: the engine could not start, exited non-zero,
                or exited cleanly without writing ``output_path``.
            ExecutionCancelled / ExecutionTimeout: the engine was killed.
            asyncio.CancelledError: the calling task was cancelled; the engine
                was killed before it propagates.
        """
        log_path = self.log_path(proc_ctx)
        try:
            returncode = await run_logged(
                command, log_path, cwd=cwd, timeout=timeout, cancel_event=proc_ctx.cancel_event
            )
        except OSError as e:
            raise EngineExecutionFailed(f"{self.engine_name} could not be started: {e}") from e

        if returncode != 0:
            logger.error(f"[{proc_ctx.job_id}] {self.engine_name} exited with code {returncode}, log: {log_path}")
            raise EngineExecutionFailed(
                f"{self.engine_name} execution failed with exit code {returncode}",
                output=read_tail(log_path),
                returncode=returncode,
            )
        if not output_path.is_file():
            raise EngineExecutionFailed(
                f"{self.engine_name} exited successfully but wrote no output file",
                output=read_tail(log_path),
                returncode=returncode,
            )
        return output_path
