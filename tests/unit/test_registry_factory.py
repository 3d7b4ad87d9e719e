import importlib
from unittest.mock import patch

import pytest

from scribe_dispatch.core.registry import AdapterRegistry


class TestConfig:
    """Tests for scribe_dispatch/config.py"""

    def test_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            import scribe_dispatch.config

            importlib.reload(scribe_dispatch.config)

            assert scribe_dispatch.config.DEFAULT_ADAPTER == "faster_whisper"
            assert scribe_dispatch.config.ENV_PATH == "./data/env"
            assert scribe_dispatch.config.UV_BINARY == "uv"
            assert scribe_dispatch.config.MAX_CONCURRENT_JOBS == 2
            assert scribe_dispatch.config.PREPARE_ON_STARTUP is False
            assert scribe_dispatch.config.get_execution_timeout() is None
            assert scribe_dispatch.config.get_provision_timeout() is None

    def test_overrides(self):
        with patch.dict(
            "os.environ",
            {
                "DEFAULT_ADAPTER": "mlx_whisper",
                "EXECUTION_TIMEOUT_SECONDS": "90",
                "PROVISION_TIMEOUT_SECONDS": "600",
                "PREPARE_ON_STARTUP": "true",
            },
        ):
            import scribe_dispatch.config

            importlib.reload(scribe_dispatch.config)

            assert scribe_dispatch.config.DEFAULT_ADAPTER == "mlx_whisper"
            assert scribe_dispatch.config.get_execution_timeout() == 90.0
            assert scribe_dispatch.config.get_provision_timeout() == 600.0
            assert scribe_dispatch.config.PREPARE_ON_STARTUP is True

    def teardown_method(self):
        import scribe_dispatch.config

        importlib.reload(scribe_dispatch.config)


class TestFactory:
    """Tests for scribe_dispatch/core/factory.py"""

    def test_create_mlx_adapter(self, tmp_path):
        from scribe_dispatch.adapters.mlx_whisper import MLXWhisperAdapter
        from scribe_dispatch.core.factory import create_adapter

        adapter = create_adapter("mlx_whisper", tmp_path)

        assert isinstance(adapter, MLXWhisperAdapter)
        assert adapter.environment.path == tmp_path / "MLX"

    def test_create_faster_whisper_adapter(self, tmp_path):
        from scribe_dispatch.adapters.faster_whisper import FasterWhisperAdapter
        from scribe_dispatch.core.factory import create_adapter

        adapter = create_adapter("faster_whisper", tmp_path)

        assert isinstance(adapter, FasterWhisperAdapter)

    def test_create_adapter_invalid_name(self, tmp_path):
        from scribe_dispatch.core.factory import create_adapter

        with pytest.raises(ValueError, match="Unsupported adapter"):
            create_adapter("whisper.cpp", tmp_path)

    def test_create_registry_registers_builtins(self, tmp_path):
        from scribe_dispatch.core.factory import create_registry

        registry = create_registry(tmp_path)

        assert "mlx_whisper" in registry
        assert "faster_whisper" in registry
        assert len(registry) == 2
        # construction never provisions anything
        assert not tmp_path.joinpath("MLX").exists()


class TestRegistry:
    def test_should_resolve_registered_adapter(self, fake_adapter):
        registry = AdapterRegistry()
        registry.register(fake_adapter)

        assert registry.get("fake") is fake_adapter

    def test_should_register_under_custom_name(self, fake_adapter):
        registry = AdapterRegistry()
        registry.register(fake_adapter, name="fake-v2")

        assert "fake-v2" in registry
        assert "fake" not in registry

    def test_should_raise_for_unknown_adapter(self):
        with pytest.raises(ValueError, match="Unknown adapter: 'nope'"):
            AdapterRegistry().get("nope")

    def test_should_reject_duplicate_names(self, fake_adapter):
        registry = AdapterRegistry()
        registry.register(fake_adapter)

        with pytest.raises(ValueError, match="already registered"):
            registry.register(fake_adapter)

    def test_should_reject_objects_missing_the_contract(self):
        with pytest.raises(TypeError):
            AdapterRegistry().register(object())  # type: ignore[arg-type]
