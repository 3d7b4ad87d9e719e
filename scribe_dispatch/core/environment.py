"""
Idempotent provisioning of an engine's isolated uv environment.

Layout: ``<env_root>/<EngineDir>/`` holds a uv project (``pyproject.toml`` is the
manifest) and is the working directory for every run of that engine.
"""

import asyncio
import logging
import platform
import time
from pathlib import Path
from typing import Sequence

from scribe_dispatch.config import UV_BINARY
from scribe_dispatch.core.errors import ProvisioningFailed, UnsupportedPlatform
from scribe_dispatch.core.interfaces import EnvironmentState
from scribe_dispatch.core.process import CommandResult, format_command, run_command

logger = logging.getLogger(__name__)

MANIFEST_FILE = "pyproject.toml"


class UvEnvironment:
    """
    Provisioner for one adapter instance.

    ``prepare()`` is safe to call from many concurrent jobs: attempts are
    serialized by a per-instance lock, and callers that were waiting on an
    attempt that succeeded return without running anything.
    """

    def __init__(
        self,
        path: Path,
        project_name: str,
        packages: Sequence[str],
        probe_module: str,
        required_platform: str | None = None,
        uv_binary: str = UV_BINARY,
        timeout: float | None = None,
    ):
        self.state = EnvironmentState(path=Path(path))
        self.project_name = project_name
        self.packages = tuple(packages)
        self.probe_module = probe_module
        self.required_platform = required_platform
        self.uv_binary = uv_binary
        self.timeout = timeout
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self.state.path

    @property
    def ready(self) -> bool:
        return self.state.ready

    def python_command(self, sync: bool = True) -> list[str]:
        """Command prefix that runs ``python`` inside this environment."""
        if sync:
            return [self.uv_binary, "run", "--project", str(self.path), "python"]
        # --no-sync: run against the existing .venv without installing anything
        return [self.uv_binary, "run", "--no-sync", "--project", str(self.path), "python"]

    def check_platform(self) -> None:
        if self.required_platform is None:
            return
        current = platform.system()
        if current != self.required_platform:
            raise UnsupportedPlatform(
                f"{self.project_name} only runs on {self.required_platform}, this host is {current or 'unknown'}"
            )

    async def probe(self) -> bool:
        """Cheap readiness check: can the engine module be imported without installing anything?"""
        if not self.path.is_dir():
            return False
        try:
            result = await run_command(
                [*self.python_command(sync=False), "-c", f"import {self.probe_module}"],
                cwd=self.path,
                timeout=self.timeout,
            )
        except OSError as e:
            logger.debug(f"Readiness probe could not start for {self.path}: {e}")
            return False
        return result.ok

    async def prepare(self) -> None:
        # Platform check first: on the wrong OS nothing may be touched.
        self.check_platform()
        if self.state.ready:
            return

        async with self._lock:
            if self.state.ready:
                return

            if await self.probe():
                logger.info(f"✅ Environment already usable: {self.path}")
                self.state.ready = True
                return

            logger.info(f"📦 Provisioning environment {self.path} ({', '.join(self.packages)})")
            start_time = time.time()

            try:
                self.path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ProvisioningFailed(f"Could not create environment directory {self.path}: {e}") from e

            # An existing manifest may carry local customizations; never re-init over it.
            if not (self.path / MANIFEST_FILE).exists():
                await self._run_step("uv init", [self.uv_binary, "init", "--name", self.project_name])

            await self._run_step("uv add", [self.uv_binary, "add", *self.packages])

            self.state.ready = True
            logger.info(f"✅ Environment ready in {time.time() - start_time:.2f}s: {self.path}")

    async def _run_step(self, step: str, args: list[str]) -> CommandResult:
        try:
            result = await run_command(args, cwd=self.path, timeout=self.timeout)
        except OSError as e:
            raise ProvisioningFailed(f"{step} could not start ({format_command(args)}): {e}") from e
        if not result.ok:
            logger.error(f"❌ {step} failed with exit code {result.returncode} in {self.path}")
            raise ProvisioningFailed(
                f"{step} failed with exit code {result.returncode}: {format_command(args)}",
                output=result.output,
            )
        return result
