"""
Adapter factory.
Builds adapter instances and the default registry from configuration.
"""

import logging
from pathlib import Path

from scribe_dispatch.config import ENV_PATH, UV_BINARY, get_provision_timeout
from scribe_dispatch.core.interfaces import TranscriptionAdapter
from scribe_dispatch.core.registry import AdapterRegistry

logger = logging.getLogger(__name__)

BUILTIN_ADAPTERS = ("mlx_whisper", "faster_whisper")


def create_adapter(name: str, env_path: str | Path = ENV_PATH) -> TranscriptionAdapter:
    if name == "mlx_whisper":
        from scribe_dispatch.adapters.mlx_whisper import MLXWhisperAdapter

        logger.info(f"🏭 Creating MLX Whisper adapter (env: {env_path})")
        return MLXWhisperAdapter(env_path, uv_binary=UV_BINARY, provision_timeout=get_provision_timeout())

    elif name == "faster_whisper":
        from scribe_dispatch.adapters.faster_whisper import FasterWhisperAdapter

        logger.info(f"🏭 Creating faster-whisper adapter (env: {env_path})")
        return FasterWhisperAdapter(env_path, uv_binary=UV_BINARY, provision_timeout=get_provision_timeout())

    else:
        raise ValueError(f"Unsupported adapter: '{name}'. Must be one of {list(BUILTIN_ADAPTERS)}.")


def create_registry(env_path: str | Path = ENV_PATH) -> AdapterRegistry:
    """Registry with every built-in adapter (platform checks happen at provisioning time)."""
    registry = AdapterRegistry()
    for name in BUILTIN_ADAPTERS:
        registry.register(create_adapter(name, env_path))
    return registry
