"""
Configuration for the dispute arbitration windows.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from .config import (
    DEFAULT_AUTO_RESOLVE_TIMEOUT,
    DEFAULT_DISPUTE_WINDOW,
    DEFAULT_RESPONSE_WINDOW,
    ENV_AUTO_RESOLVE_TIMEOUT,
    ENV_DISPUTE_WINDOW,
    ENV_RESPONSE_WINDOW,
)
from .errors import ErrorCode, SpecError


def _duration(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise SpecError(ErrorCode.INVALID_CONFIG, f"{name} must be an integer number of seconds")
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError as exc:
            raise SpecError(ErrorCode.INVALID_CONFIG, f"{name} is not an integer: {value!r}") from exc
    if not isinstance(value, int):
        raise SpecError(ErrorCode.INVALID_CONFIG, f"{name} must be an integer number of seconds")
    if value <= 0:
        raise SpecError(ErrorCode.INVALID_CONFIG, f"{name} must be > 0")
    return value


@dataclass(frozen=True)
class ArbitrationSettings:
    """The three durations fixed for the lifetime of an arbitration instance."""
    dispute_window: int = DEFAULT_DISPUTE_WINDOW
    response_window: int = DEFAULT_RESPONSE_WINDOW
    auto_resolve_timeout: int = DEFAULT_AUTO_RESOLVE_TIMEOUT

    def __post_init__(self) -> None:
        for f in fields(self):
            object.__setattr__(self, f.name, _duration(f.name, getattr(self, f.name)))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ArbitrationSettings":
        """Load settings from environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        return cls(
            dispute_window=env.get(ENV_DISPUTE_WINDOW, DEFAULT_DISPUTE_WINDOW),
            response_window=env.get(ENV_RESPONSE_WINDOW, DEFAULT_RESPONSE_WINDOW),
            auto_resolve_timeout=env.get(ENV_AUTO_RESOLVE_TIMEOUT, DEFAULT_AUTO_RESOLVE_TIMEOUT),
        )

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "ArbitrationSettings":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise SpecError(ErrorCode.INVALID_CONFIG, f"unknown settings: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, source: Union[str, Path]) -> "ArbitrationSettings":
        """Load settings from a YAML file, or from YAML text when given a str."""
        if isinstance(source, Path) or (isinstance(source, str) and os.path.isfile(source)):
            text = Path(source).read_text()
        else:
            text = source
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise SpecError(ErrorCode.INVALID_CONFIG, f"invalid settings YAML: {exc}") from exc
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise SpecError(ErrorCode.INVALID_CONFIG, "settings YAML must be a mapping")
        return cls.from_mapping(data)

    def to_dict(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
