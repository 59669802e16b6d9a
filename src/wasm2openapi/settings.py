import os
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import TypeVar

ENV_PREFIX = "WASM2OPENAPI_"

T = TypeVar("T", int, float)
V = TypeVar("V")


class InstancePolicy(str, Enum):
    """How invocation contexts are shared between requests."""

    SHARED = "shared"
    PER_REQUEST = "per-request"


@dataclass(frozen=True)
class Settings:
    host: str = "127.0.0.1"
    port: int = 8080
    policy: InstancePolicy = InstancePolicy.SHARED
    timeout: float = 5.0
    epoch_tick_ms: int = 10
    wasi: bool = True

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.epoch_tick_ms <= 0:
            raise ValueError(f"epoch_tick_ms must be positive, got {self.epoch_tick_ms}")
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port must be between 0 and 65535, got {self.port}")

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def with_overrides(self, **overrides: object) -> "Settings":
        """Copy with every non-``None`` override applied (CLI options win over the environment)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _env(name: str, default: str) -> str:
    return os.getenv(ENV_PREFIX + name, default)


def _parse(name: str, default: str, convert: Callable[[str], V]) -> V:
    raw = _env(name, default)
    try:
        return convert(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid value {raw!r} for {ENV_PREFIX}{name}: {exc}") from exc


def _positive(convert: Callable[[str], T]) -> Callable[[str], T]:
    def parse(raw: str) -> T:
        value = convert(raw)
        if value <= 0:
            raise ValueError("must be positive")
        return value

    return parse


def _flag(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError("expected a boolean")


def get_settings() -> Settings:
    defaults = Settings()
    return Settings(
        host=_env("HOST", defaults.host),
        port=_parse("PORT", str(defaults.port), int),
        policy=_parse("POLICY", defaults.policy.value, InstancePolicy),
        timeout=_parse("TIMEOUT", str(defaults.timeout), _positive(float)),
        epoch_tick_ms=_parse("EPOCH_TICK_MS", str(defaults.epoch_tick_ms), _positive(int)),
        wasi=_parse("WASI", "true", _flag),
    )
