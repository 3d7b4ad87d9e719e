"""
Tests for scribe_dispatch/core/environment.py

All uv invocations go through run_command, which is replaced by a recorder,
so nothing is installed.
"""

import asyncio

import pytest

from scribe_dispatch.core import environment as environment_module
from scribe_dispatch.core.environment import UvEnvironment
from scribe_dispatch.core.errors import ProvisioningFailed, UnsupportedPlatform
from scribe_dispatch.core.process import CommandResult


class RecordingRunner:
    """Stand-in for run_command; fails commands whose verb is listed in ``fail``."""

    def __init__(self, probe_ok: bool = False, fail: tuple[str, ...] = (), delay: float = 0.0):
        self.calls: list[tuple[str, ...]] = []
        self.probe_ok = probe_ok
        self.fail = fail
        self.delay = delay

    def verbs(self) -> list[str]:
        return [self._verb(args) for args in self.calls]

    @staticmethod
    def _verb(args: tuple[str, ...]) -> str:
        if "-c" in args:
            return "probe"
        return args[1]

    async def __call__(self, args, cwd=None, timeout=None) -> CommandResult:
        args = tuple(args)
        self.calls.append(args)
        if self.delay:
            await asyncio.sleep(self.delay)
        verb = self._verb(args)
        if verb == "probe":
            return CommandResult(args, 0 if self.probe_ok else 1, "" if self.probe_ok else "ModuleNotFoundError")
        if verb in self.fail:
            return CommandResult(args, 2, f"error: {verb} blew up")
        return CommandResult(args, 0, f"{verb} ok")


@pytest.fixture
def runner(monkeypatch) -> RecordingRunner:
    recorder = RecordingRunner()
    monkeypatch.setattr(environment_module, "run_command", recorder)
    return recorder


@pytest.fixture
def env(tmp_path) -> UvEnvironment:
    return UvEnvironment(
        tmp_path / "MLX",
        project_name="scribe-test-wrapper",
        packages=("mlx-whisper", "ffmpeg-python"),
        probe_module="mlx_whisper",
        uv_binary="uv",
    )


@pytest.mark.asyncio
class TestPrepare:
    async def test_should_init_and_install_fresh_environment(self, env, runner) -> None:
        await env.prepare()

        assert env.ready is True
        assert env.path.is_dir()
        # no probe: the directory did not exist yet
        assert runner.calls == [
            ("uv", "init", "--name", "scribe-test-wrapper"),
            ("uv", "add", "mlx-whisper", "ffmpeg-python"),
        ]

    async def test_should_be_idempotent(self, env, runner) -> None:
        await env.prepare()
        calls_after_first = len(runner.calls)

        await env.prepare()

        assert len(runner.calls) == calls_after_first

    async def test_should_mark_ready_when_probe_succeeds(self, env, runner) -> None:
        env.path.mkdir(parents=True)
        runner.probe_ok = True

        await env.prepare()

        assert env.ready is True
        assert runner.verbs() == ["probe"]
        assert runner.calls[0] == (
            "uv", "run", "--no-sync", "--project", str(env.path), "python", "-c", "import mlx_whisper",
        )

    async def test_should_skip_init_when_manifest_exists(self, env, runner) -> None:
        env.path.mkdir(parents=True)
        (env.path / "pyproject.toml").write_text("[project]\nname = 'custom'\n")

        await env.prepare()

        assert runner.verbs() == ["probe", "add"]
        assert "custom" in (env.path / "pyproject.toml").read_text()

    async def test_should_raise_provisioning_failed_with_output(self, env, runner) -> None:
        runner.fail = ("add",)

        with pytest.raises(ProvisioningFailed) as exc_info:
            await env.prepare()

        assert env.ready is False
        assert "add blew up" in exc_info.value.output
        assert "add blew up" in str(exc_info.value)
        # partial provisioning is not rolled back
        assert env.path.is_dir()

    async def test_should_retry_after_failure(self, env, runner) -> None:
        runner.fail = ("init",)
        with pytest.raises(ProvisioningFailed):
            await env.prepare()

        runner.fail = ()
        await env.prepare()

        assert env.ready is True

    async def test_should_wrap_missing_uv_binary(self, env, monkeypatch) -> None:
        async def missing(args, cwd=None, timeout=None):
            raise FileNotFoundError(2, "No such file or directory", args[0])

        monkeypatch.setattr(environment_module, "run_command", missing)

        with pytest.raises(ProvisioningFailed, match="could not start"):
            await env.prepare()

    async def test_should_serialize_concurrent_attempts(self, env, runner) -> None:
        runner.delay = 0.02

        await asyncio.gather(*(env.prepare() for _ in range(5)))

        assert env.ready is True
        assert runner.verbs() == ["init", "add"]


@pytest.mark.asyncio
class TestPlatformRestriction:
    async def test_should_refuse_other_platform_without_side_effects(self, tmp_path, runner, monkeypatch) -> None:
        monkeypatch.setattr(environment_module.platform, "system", lambda: "Linux")
        env = UvEnvironment(
            tmp_path / "MLX",
            project_name="p",
            packages=("mlx-whisper",),
            probe_module="mlx_whisper",
            required_platform="Darwin",
        )

        with pytest.raises(UnsupportedPlatform, match="Darwin"):
            await env.prepare()

        assert env.ready is False
        assert not env.path.exists()
        assert runner.calls == []

    async def test_should_provision_on_required_platform(self, tmp_path, runner, monkeypatch) -> None:
        monkeypatch.setattr(environment_module.platform, "system", lambda: "Darwin")
        env = UvEnvironment(
            tmp_path / "MLX",
            project_name="p",
            packages=("mlx-whisper",),
            probe_module="mlx_whisper",
            required_platform="Darwin",
        )

        await env.prepare()

        assert env.ready is True


def test_python_command_targets_project(env) -> None:
    assert env.python_command() == ["uv", "run", "--project", str(env.path), "python"]


def test_probe_command_never_syncs(env) -> None:
    assert env.python_command(sync=False) == ["uv", "run", "--no-sync", "--project", str(env.path), "python"]
