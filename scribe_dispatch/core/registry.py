"""
Adapter registry: maps adapter names to live adapter instances.

Selection policy (which adapter serves a request) belongs to the caller;
the registry only resolves names.
"""

import logging

from scribe_dispatch.core.interfaces import TranscriptionAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Named TranscriptionAdapter instances, one per engine."""

    def __init__(self) -> None:
        self._adapters: dict[str, TranscriptionAdapter] = {}

    def register(self, adapter: TranscriptionAdapter, name: str | None = None) -> None:
        if not isinstance(adapter, TranscriptionAdapter):
            raise TypeError(f"{type(adapter).__name__} does not implement TranscriptionAdapter")
        key = name or adapter.name
        if key in self._adapters:
            raise ValueError(f"Adapter already registered: '{key}'")
        self._adapters[key] = adapter
        logger.info(f"🧩 Registered adapter '{key}' ({adapter.get_capabilities().display_name})")

    def get(self, name: str) -> TranscriptionAdapter:
        """
        Resolve an adapter by name.

        Raises:
            ValueError: if no adapter is registered under ``name``.
        """
        try:
            return self._adapters[name]
        except KeyError:
            raise ValueError(
                f"Unknown adapter: '{name}'. Registered adapters: {', '.join(sorted(self._adapters)) or 'none'}"
            ) from None

    def __contains__(self, name: object) -> bool:
        return name in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)
