"""
Parameter schema for transcription adapters.

Each adapter declares the knobs it understands as an ordered ParameterSchema.
Requests are resolved against it before anything is executed.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Iterator, Literal, Mapping

from scribe_dispatch.core.errors import InvalidParameter, MissingParameter

ParameterType = Literal["string", "number", "bool", "enum"]

_PARAMETER_TYPES: frozenset[str] = frozenset({"string", "number", "bool", "enum"})


def _matches_type(param_type: str, value: Any) -> bool:
    if param_type in ("string", "enum"):
        return isinstance(value, str)
    if param_type == "number":
        # bool is an int subclass, but True is not a beam size
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return isinstance(value, int) or math.isfinite(value)
    if param_type == "bool":
        return isinstance(value, bool)
    return False


@dataclass(frozen=True)
class ParameterSpec:
    """
    One configurable engine parameter.

    Options are only enforced for ``enum`` parameters. For ``string`` parameters
    they are suggestions (e.g. well-known model ids), so custom values still pass.
    """

    name: str
    type: ParameterType
    required: bool = False
    default: Any = None
    options: tuple[str, ...] = ()
    group: str = "basic"
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Parameter name must be a non-empty string")
        if self.type not in _PARAMETER_TYPES:
            raise ValueError(f"Parameter '{self.name}': unknown type '{self.type}'")
        object.__setattr__(self, "options", tuple(self.options))
        if self.type == "enum" and not self.options:
            raise ValueError(f"Parameter '{self.name}': enum parameters need options")
        if not self.required and self.default is None:
            raise ValueError(f"Parameter '{self.name}': optional parameters need a default")
        if self.default is not None:
            if not _matches_type(self.type, self.default):
                raise ValueError(
                    f"Parameter '{self.name}': default {self.default!r} is not of type '{self.type}'"
                )
            if self.type == "enum" and self.default not in self.options:
                raise ValueError(
                    f"Parameter '{self.name}': default {self.default!r} is not one of {list(self.options)}"
                )

    def validate(self, value: Any) -> Any:
        """Return ``value`` if it fits this parameter, else raise InvalidParameter."""
        if self.type == "number" and isinstance(value, float) and not math.isfinite(value):
            raise InvalidParameter(self.name, f"Parameter '{self.name}' must be a finite number, got {value!r}")
        if not _matches_type(self.type, value):
            raise InvalidParameter(
                self.name,
                f"Parameter '{self.name}' must be of type '{self.type}', got {type(value).__name__}",
            )
        if self.type == "enum" and value not in self.options:
            raise InvalidParameter(
                self.name,
                f"Parameter '{self.name}' must be one of {list(self.options)}, got {value!r}",
            )
        return value


@dataclass(frozen=True)
class ParameterSchema:
    """Ordered, name-unique collection of ParameterSpec."""

    parameters: tuple[ParameterSpec, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", tuple(self.parameters))
        seen: set[str] = set()
        for spec in self.parameters:
            if spec.name in seen:
                raise ValueError(f"Duplicate parameter name in schema: '{spec.name}'")
            seen.add(spec.name)

    def __iter__(self) -> Iterator[ParameterSpec]:
        return iter(self.parameters)

    def __len__(self) -> int:
        return len(self.parameters)

    def __contains__(self, name: object) -> bool:
        return any(spec.name == name for spec in self.parameters)

    def get(self, name: str) -> ParameterSpec | None:
        for spec in self.parameters:
            if spec.name == name:
                return spec
        return None

    def defaults(self) -> dict[str, Any]:
        return {spec.name: spec.default for spec in self.parameters if spec.default is not None}

    def resolve(self, params: Mapping[str, Any] | None) -> dict[str, Any]:
        """
        Resolve request parameters against the schema.

        Unknown keys are dropped (forward compatibility with newer clients),
        absent optional keys get their default, absent required keys raise
        MissingParameter and ill-typed values raise InvalidParameter.
        An explicit ``None`` counts as absent.
        """
        params = params or {}
        resolved: dict[str, Any] = {}
        for spec in self.parameters:
            value = params.get(spec.name)
            if value is None:
                if spec.required:
                    raise MissingParameter(spec.name, f"Missing required parameter '{spec.name}'")
                resolved[spec.name] = spec.default
                continue
            resolved[spec.name] = spec.validate(value)
        return resolved
