import asyncio
import logging
import os
import shutil
import tempfile
import time
import uuid
from pathlib import Path
from typing import Any, Mapping

from fastapi import UploadFile

from scribe_dispatch.core.interfaces import AudioInput, ProcessingContext, TranscriptResult
from scribe_dispatch.core.registry import AdapterRegistry


class TranscriptionService:
    """
    Transcription job dispatcher.
    Responsibilities:
    1. Resolve the requested adapter from the registry
    2. Make sure its environment is provisioned before the first job
    3. Run jobs concurrently, bounded by a semaphore
    4. Own the lifecycle of uploaded temp files and per-job output directories
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        output_root: str | Path,
        max_concurrent_jobs: int = 2,
        max_queue_size: int = 50,
        execution_timeout: float | None = None,
    ):
        self.registry = registry
        self.output_root = Path(output_root)
        self.max_queue_size = max_queue_size
        self.execution_timeout = execution_timeout
        self.logger = logging.getLogger(__name__)
        self._slots = asyncio.Semaphore(max_concurrent_jobs)
        self._pending = 0
        self.logger.info(
            f"🚦 Service initialized. Concurrent jobs: {max_concurrent_jobs}, queue size: {max_queue_size}"
        )

    @property
    def pending_jobs(self) -> int:
        return self._pending

    async def prepare(self, adapter_name: str) -> None:
        """Provision an adapter's environment (no-op once ready)."""
        adapter = self.registry.get(adapter_name)
        start_time = time.time()
        await adapter.prepare_environment()
        self.logger.info(f"✅ Adapter '{adapter_name}' ready ({time.time() - start_time:.2f}s)")

    async def prepare_in_background(self, adapter_name: str) -> None:
        """Startup warm-up: failures are logged, the service keeps running."""
        try:
            await self.prepare(adapter_name)
        except Exception as e:
            self.logger.error(f"❌ Background provisioning of '{adapter_name}' failed: {e}", exc_info=True)

    async def submit(
        self,
        file: UploadFile,
        adapter_name: str,
        params: Mapping[str, Any],
        request_id: str | None = None,
    ) -> TranscriptResult:
        """
        Run one transcription job (called by the API layer).

        The upload is stored in a private temp dir that is removed afterwards.
        Each job gets its own ``<output_root>/<request_id>_XXXX/`` directory
        (kept, it holds the engine log), so jobs sharing a request id never
        overwrite each other's logs.
        """
        request_id = request_id or str(uuid.uuid4())
        adapter = self.registry.get(adapter_name)

        if self._pending >= self.max_queue_size:
            self.logger.warning(f"[{request_id}] Queue full, rejecting request")
            raise RuntimeError("Service busy: Queue is full.")

        self._pending += 1
        temp_dir = tempfile.mkdtemp(prefix="scribe_upload_")
        try:
            file_ext = os.path.splitext(file.filename or "upload.wav")[1] or ".wav"
            temp_path = os.path.join(temp_dir, f"original{file_ext.lower()}")
            with open(temp_path, "wb") as buffer:
                shutil.copyfileobj(file.file, buffer)

            self.output_root.mkdir(parents=True, exist_ok=True)
            output_dir = Path(tempfile.mkdtemp(prefix=f"{request_id}_", dir=self.output_root))
            proc_ctx = ProcessingContext(output_directory=output_dir, job_id=output_dir.name, request_id=request_id)

            received_at = time.time()
            async with self._slots:
                queue_time = time.time() - received_at
                self.logger.info(
                    f"[{request_id}] Starting transcription with '{adapter_name}' (queue_time={queue_time:.2f}s)"
                )
                result = await adapter.transcribe(
                    AudioInput(file_path=Path(temp_path)),
                    params,
                    proc_ctx,
                    timeout=self.execution_timeout,
                )

            self.logger.info(
                f"[{request_id}] Transcription completed: segments={len(result.segments)}, "
                f"total_time={time.time() - received_at:.2f}s"
            )
            return result

        finally:
            self._pending -= 1
            if os.path.exists(temp_dir):
                shutil.rmtree(temp_dir, ignore_errors=True)
